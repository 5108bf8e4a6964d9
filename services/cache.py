# services/cache.py
# WatchStats - derivation cache keyed by entity and a content hash of its inputs
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

import hashlib
import json
import threading
from collections import OrderedDict
from collections.abc import Iterable
from datetime import date
from typing import Any, Callable

from _logging import log
from ws_platform.config_base import section
from ws_platform.models import Catalog, Profile


def fingerprint(profiles: Iterable[Profile], catalog: Catalog, today: date, extra: Any = None) -> str:
    """Content hash of everything a derivation reads."""
    h = hashlib.sha256()
    for p in sorted(profiles, key=lambda p: p.id):
        h.update(json.dumps(p.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8"))
    h.update(f"|catalog:{catalog.digest}".encode())
    h.update(f"|today:{today.isoformat()}".encode())
    if extra is not None:
        h.update(json.dumps(extra, sort_keys=True, default=str, separators=(",", ":")).encode("utf-8"))
    return h.hexdigest()


class DerivationCache:
    def __init__(self, max_entries: int = 512, enabled: bool = True) -> None:
        self.max_entries = max(1, int(max_entries))
        self.enabled = enabled
        self.lock = threading.Lock()
        self._entries: OrderedDict[tuple[str, int, str], tuple[frozenset[int], Any]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "DerivationCache":
        cc = section(cfg, "cache")
        return cls(int(cc["max_entries"]), bool(cc["enabled"]))

    def get_or_compute(
        self,
        kind: str,
        entity_id: int,
        digest: str,
        depends_on: Iterable[int],
        compute: Callable[[], Any],
    ) -> Any:
        if not self.enabled:
            return compute()
        key = (kind, int(entity_id), digest)
        with self.lock:
            hit = self._entries.get(key)
            if hit is not None:
                self._entries.move_to_end(key)
                self.hits += 1
                return hit[1]
            self.misses += 1
        value = compute()
        with self.lock:
            self._entries[key] = (frozenset(int(x) for x in depends_on), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return value

    def invalidate_profile(self, profile_id: int) -> int:
        """Drop every entry derived from this profile's events (its own and its account's)."""
        pid = int(profile_id)
        with self.lock:
            dead = [k for k, (deps, _) in self._entries.items() if pid in deps]
            for k in dead:
                del self._entries[k]
        if dead:
            log(f"cache: dropped {len(dead)} entries for profile {pid}", level="DEBUG", module="CACHE")
        return len(dead)

    def clear(self) -> None:
        with self.lock:
            self._entries.clear()

    def stats(self) -> dict[str, Any]:
        with self.lock:
            return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses, "enabled": self.enabled}


__all__ = ["DerivationCache", "fingerprint"]
