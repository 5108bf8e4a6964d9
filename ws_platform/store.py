# ws_platform/store.py
# WatchStats - read side of the watch event store (memory and JSON file backends)
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

import json
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Protocol

from _logging import log
from ws_platform.config_base import _write_json_atomic, data_path, section
from ws_platform.errors import NotFoundError
from ws_platform.models import Account, Catalog, Profile, WatchEvent, catalog_to_dict


class WatchEventStore(Protocol):
    def catalog(self) -> Catalog: ...
    def list_accounts(self) -> list[Account]: ...
    def get_account(self, account_id: int) -> Account | None: ...
    def get_profile(self, profile_id: int) -> Profile | None: ...
    def record_event(self, event: WatchEvent) -> WatchEvent: ...
    def invalidate_events(self, profile_id: int, content_type: str, content_id: int) -> int: ...


class MemoryWatchEventStore:
    """Snapshot held in memory; every read hands out the live objects, writes go through the lock."""

    def __init__(self, catalog: Catalog | None = None, accounts: list[Account] | None = None) -> None:
        self.lock = threading.Lock()
        self._catalog = catalog or Catalog()
        self._accounts: dict[int, Account] = {a.id: a for a in (accounts or [])}
        self._listeners: list[Callable[[int], None]] = []

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "MemoryWatchEventStore":
        return cls(
            Catalog.from_dict(d.get("catalog") or {}),
            [Account.from_dict(a) for a in d.get("accounts") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        with self.lock:
            return {
                "catalog": catalog_to_dict(self._catalog),
                "accounts": [a.to_dict() for a in self._accounts.values()],
            }

    # change notification (cache invalidation hooks)
    def subscribe(self, fn: Callable[[int], None]) -> None:
        self._listeners.append(fn)

    def _notify(self, profile_id: int) -> None:
        for fn in list(self._listeners):
            fn(profile_id)

    # reads
    def catalog(self) -> Catalog:
        return self._catalog

    def list_accounts(self) -> list[Account]:
        with self.lock:
            return sorted(self._accounts.values(), key=lambda a: a.id)

    def get_account(self, account_id: int) -> Account | None:
        with self.lock:
            return self._accounts.get(int(account_id))

    def get_profile(self, profile_id: int) -> Profile | None:
        with self.lock:
            for a in self._accounts.values():
                for p in a.profiles:
                    if p.id == int(profile_id):
                        return p
        return None

    # writes
    def record_event(self, event: WatchEvent) -> WatchEvent:
        prof = self.get_profile(event.profile_id)
        if prof is None:
            raise NotFoundError("profile", event.profile_id)
        if event.is_episode and event.show_id is None:
            ep = self._catalog.episodes.get(event.content_id)
            if ep is not None:
                event = replace(event, show_id=ep.show_id)
        with self.lock:
            prof.events.append(event)
        self._persist()
        self._notify(prof.id)
        return event

    def invalidate_events(self, profile_id: int, content_type: str, content_id: int) -> int:
        prof = self.get_profile(profile_id)
        if prof is None:
            raise NotFoundError("profile", profile_id)
        n = 0
        with self.lock:
            for i, e in enumerate(prof.events):
                if not e.invalidated and e.content_type == content_type and e.content_id == int(content_id):
                    prof.events[i] = replace(e, invalidated=True)
                    n += 1
        if n:
            self._persist()
            self._notify(prof.id)
        return n

    def _persist(self) -> None:
        return None


class FileWatchEventStore(MemoryWatchEventStore):
    """JSON snapshot on disk ({"catalog": ..., "accounts": [...]}), reloaded when the file changes."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._mtime = -1.0
        self._reload_if_changed()

    def _reload_if_changed(self) -> None:
        try:
            mtime = self.path.stat().st_mtime
        except OSError:
            return
        if mtime == self._mtime:
            return
        try:
            with self.path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            log(f"snapshot unreadable: {self.path}: {e}", level="ERROR", module="STORE")
            return
        fresh = MemoryWatchEventStore.from_dict(raw if isinstance(raw, dict) else {})
        with self.lock:
            self._catalog = fresh._catalog
            self._accounts = fresh._accounts
            self._mtime = mtime
        log(f"snapshot loaded: {len(self._accounts)} accounts, {len(self._catalog.shows)} shows, "
            f"{len(self._catalog.movies)} movies", level="DEBUG", module="STORE")

    def catalog(self) -> Catalog:
        self._reload_if_changed()
        return super().catalog()

    def list_accounts(self) -> list[Account]:
        self._reload_if_changed()
        return super().list_accounts()

    def get_account(self, account_id: int) -> Account | None:
        self._reload_if_changed()
        return super().get_account(account_id)

    def get_profile(self, profile_id: int) -> Profile | None:
        self._reload_if_changed()
        return super().get_profile(profile_id)

    def _persist(self) -> None:
        _write_json_atomic(self.path, self.to_dict())
        try:
            self._mtime = self.path.stat().st_mtime
        except OSError:
            self._mtime = -1.0


def store_from_config(cfg: dict[str, Any]) -> WatchEventStore:
    sc = section(cfg, "store")
    typ = str(sc.get("type") or "file").strip().lower()
    if typ == "http":
        from ws_platform.http_store import HttpWatchEventStore
        return HttpWatchEventStore(
            str(sc.get("base_url") or ""),
            api_key=str(sc.get("api_key") or ""),
            timeout=float(sc.get("timeout") or 10.0),
            max_retries=int(sc.get("max_retries") or 3),
            catalog_ttl=float(sc.get("catalog_ttl_sec", 300.0)),
        )
    return FileWatchEventStore(data_path(cfg, "store", "path", "watchstats.json"))


__all__ = ["WatchEventStore", "MemoryWatchEventStore", "FileWatchEventStore", "store_from_config"]
