# ws_platform/http_store.py
# WatchStats - watch event store backed by the upstream tracking service
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

import os
import threading
import time
from typing import Any, Callable

import requests

from _logging import log
from ws_platform.errors import NotFoundError, StatsError
from ws_platform.models import Account, Catalog, Profile, WatchEvent

UA = os.getenv("WS_UA", "WatchStats/1.0")
RETRY_STATUS = (429, 500, 502, 503, 504)


def _decode(resp: requests.Response) -> Any:
    # the service answers some writes with 2xx and an empty body
    if not (resp.text or "").strip():
        return None
    try:
        return resp.json()
    except ValueError:
        log(f"non-JSON body from {resp.request.method} {resp.url}", level="WARN", module="STORE")
        return None


class HttpWatchEventStore:
    """Snapshot reads plus event writes, proxied to the tracking service."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        catalog_ttl: float = 300.0,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not base_url:
            raise StatsError("store.base_url is required for the http store")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.backoff_base = backoff_base
        self.catalog_ttl = float(catalog_ttl)
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json", "User-Agent": UA})
        if api_key:
            self.session.headers["Authorization"] = f"Bearer {api_key}"
        self._clock = clock
        self._lock = threading.Lock()
        self._catalog: Catalog | None = None
        self._catalog_at = 0.0

    # ---------- transport

    def _backoff(self, attempt: int, resp: requests.Response | None = None) -> float:
        wait = self.backoff_base * (2**attempt)
        if resp is not None and resp.status_code == 429:
            try:
                wait = max(wait, float(resp.headers.get("Retry-After") or 0))
            except ValueError:
                pass
        return wait

    def _request(self, method: str, path: str, *, missing: tuple[str, Any] | None = None, **kwargs: Any) -> Any:
        """Decoded JSON body of one upstream call.

        429/5xx and transport errors are retried with exponential backoff up to max_retries attempts.
        404 gives None, or NotFoundError(*missing) when the caller names the entity.
        Anything else that is not 2xx raises StatsError.
        """
        url = f"{self.base_url}{path}"
        for attempt in range(self.max_retries):
            final = attempt == self.max_retries - 1
            try:
                resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.RequestException as e:
                if final:
                    raise StatsError(f"{method} {path} failed: {e}") from e
                wait = self._backoff(attempt)
                log(f"{method} {path}: {e}, retry in {wait:.1f}s", level="DEBUG", module="STORE")
                time.sleep(wait)
                continue

            if resp.status_code in RETRY_STATUS and not final:
                wait = self._backoff(attempt, resp)
                log(f"{method} {path} -> {resp.status_code}, retry in {wait:.1f}s", level="DEBUG", module="STORE")
                time.sleep(wait)
                continue
            if resp.status_code == 404:
                if missing is not None:
                    raise NotFoundError(*missing)
                return None
            if not resp.ok:
                raise StatsError(f"{method} {path} failed: HTTP {resp.status_code}")
            return _decode(resp)
        raise StatsError(f"{method} {path} failed: no attempts made")

    # ---------- reads

    def catalog(self) -> Catalog:
        now = self._clock()
        with self._lock:
            if self._catalog is not None and now - self._catalog_at < self.catalog_ttl:
                return self._catalog
        fresh = Catalog.from_dict(self._request("GET", "/catalog") or {})
        with self._lock:
            self._catalog, self._catalog_at = fresh, now
        log(f"catalog fetched: {len(fresh.shows)} shows, {len(fresh.movies)} movies", level="DEBUG", module="STORE")
        return fresh

    def refresh_catalog(self) -> None:
        with self._lock:
            self._catalog = None

    def list_accounts(self) -> list[Account]:
        rows = self._request("GET", "/accounts") or []
        return sorted((Account.from_dict(a) for a in rows if isinstance(a, dict)), key=lambda a: a.id)

    def get_account(self, account_id: int) -> Account | None:
        d = self._request("GET", f"/accounts/{int(account_id)}")
        return Account.from_dict(d) if isinstance(d, dict) and d else None

    def get_profile(self, profile_id: int) -> Profile | None:
        d = self._request("GET", f"/profiles/{int(profile_id)}")
        if not isinstance(d, dict) or not d:
            return None
        return Profile.from_dict(d, account_id=int(d.get("accountId") or 0))

    # ---------- writes

    def record_event(self, event: WatchEvent) -> WatchEvent:
        body = self._request(
            "POST",
            f"/profiles/{event.profile_id}/events",
            missing=("profile", event.profile_id),
            json=event.to_dict(),
        )
        return WatchEvent.from_dict(body or {}, profile_id=event.profile_id) or event

    def invalidate_events(self, profile_id: int, content_type: str, content_id: int) -> int:
        body = self._request(
            "POST",
            f"/profiles/{int(profile_id)}/events/invalidate",
            missing=("profile", profile_id),
            json={"contentType": content_type, "contentId": int(content_id)},
        )
        try:
            return int((body or {}).get("invalidated") or 0)
        except (TypeError, ValueError, AttributeError):
            return 0


__all__ = ["HttpWatchEventStore"]
