# services/scheduling.py
# WatchStats - periodic batch refresh of account statistics
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from services.milestones import AchievementLedger, profile_achievements
from services.statistics import StatisticsComposer
from ws_platform.config_base import _write_json_atomic, data_path, section
from ws_platform.errors import ComputationTimeout


def _now_ts() -> int:
    return int(time.time())


def _iso(ts: int) -> str:
    if ts <= 0:
        return ""
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class StatsRefreshScheduler:
    """Recomputes every account on an interval; one failing account never stops the batch."""

    def __init__(
        self,
        load_config: Callable[[], dict[str, Any]],
        composer: StatisticsComposer,
        *,
        ledger: AchievementLedger | None = None,
        log_fn: Callable[..., Any] | None = None,
        results_path: Path | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.load_config_cb = load_config
        self.composer = composer
        self.ledger = ledger
        self.log_fn = log_fn
        self.sleep = sleep
        self.results_path = results_path or data_path(load_config() or {}, "scheduling", "results_path", "statistics_cache.json")

        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._poke = threading.Event()
        self._lock = threading.Lock()
        self._batch_lock = threading.Lock()

        self._status: dict[str, Any] = {
            "running": False,
            "last_tick": 0,
            "last_run_ok": None,
            "last_run_at": 0,
            "next_run_at": 0,
            "next_run_iso": "",
            "last_error": "",
            "last_batch": {},
        }
        self._results: dict[str, Any] = self._load_results()
        self._next_ts = 0

    def _log(self, msg: str, *, level: str = "INFO") -> None:
        if self.log_fn:
            self.log_fn(msg, level=level, module="SCHED")

    def _sched_cfg(self) -> dict[str, Any]:
        return section(self.load_config_cb() or {}, "scheduling")

    # ---------- last-known-good results

    def _load_results(self) -> dict[str, Any]:
        p = self.results_path
        if not p.exists():
            return {"accounts": {}}
        try:
            with p.open("r", encoding="utf-8") as f:
                d = json.load(f)
        except (OSError, ValueError) as e:
            self._log(f"results cache unreadable: {e}", level="WARN")
            return {"accounts": {}}
        return d if isinstance(d, dict) and isinstance(d.get("accounts"), dict) else {"accounts": {}}

    def last_known_good(self, account_id: int) -> dict[str, Any] | None:
        with self._lock:
            return self._results["accounts"].get(str(int(account_id)))

    # ---------- jobs

    def _refresh_account(self, account_id: int) -> dict[str, Any]:
        stats = self.composer.get_account_statistics(account_id)
        enhanced = self.composer.get_enhanced_account_statistics(account_id)
        if self.ledger is not None:
            acc = self.composer.store.get_account(account_id)
            for prof in (acc.profiles if acc else []):
                self.ledger.record(profile_achievements(self.composer.profile_scope(prof), self.composer.cfg))
        return {"statistics": stats, "enhanced": enhanced, "refreshedAt": _iso(_now_ts())}

    def run_job(self, entity: str, fn: Callable[[], Any]) -> tuple[bool, Any]:
        """Bounded retries with exponential backoff; a timed-out attempt is abandoned, not killed."""
        sch = self._sched_cfg()
        budget = float(sch["job_timeout_sec"])
        retries = max(1, int(sch["max_retries"]))
        backoff = float(sch["backoff_base"])
        err: Exception | None = None
        for attempt in range(1, retries + 1):
            box: dict[str, Any] = {}

            def _target(box: dict[str, Any]) -> None:
                try:
                    box["value"] = fn()
                except Exception as e:
                    box["error"] = e

            t = threading.Thread(target=_target, args=(box,), name=f"StatsJob-{entity}", daemon=True)
            t.start()
            t.join(budget)
            if t.is_alive():
                err = ComputationTimeout(entity, budget)
            elif "error" in box:
                err = box["error"]
            else:
                return True, box.get("value")
            if attempt < retries:
                wait = backoff * (2 ** (attempt - 1))
                self._log(f"{entity}: attempt {attempt}/{retries} failed ({err}); retry in {wait:.1f}s", level="WARN")
                self.sleep(wait)
        self._log(f"{entity}: giving up after {retries} attempts: {err}", level="ERROR")
        return False, err

    def run_batch(self) -> dict[str, Any]:
        if not self._batch_lock.acquire(blocking=False):
            self._log("batch skipped: already running", level="INFO")
            return {"ok": False, "skipped": True}
        started = time.monotonic()
        try:
            # each batch starts from a current catalog
            refresh = getattr(self.composer.store, "refresh_catalog", None)
            if callable(refresh):
                refresh()
            accounts = [a.id for a in self.composer.store.list_accounts()]
            ok_ids: list[int] = []
            failed: dict[str, str] = {}
            workers = max(1, min(len(accounts), int(section(self.composer.cfg, "runtime")["workers"])))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="StatsBatch") as ex:
                futs = {
                    ex.submit(self.run_job, f"account {aid}", lambda aid=aid: self._refresh_account(aid)): aid
                    for aid in accounts
                }
                for fut in as_completed(futs):
                    aid = futs[fut]
                    ok, value = fut.result()
                    if ok:
                        ok_ids.append(aid)
                        with self._lock:
                            self._results["accounts"][str(aid)] = value
                    else:
                        failed[str(aid)] = str(value)
            with self._lock:
                snapshot = json.loads(json.dumps(self._results, default=str))
            _write_json_atomic(self.results_path, snapshot)

            summary = {
                "ok": not failed,
                "refreshed": sorted(ok_ids),
                "failed": failed,
                "duration_sec": round(time.monotonic() - started, 3),
            }
            with self._lock:
                self._status["last_run_ok"] = not failed
                self._status["last_run_at"] = _now_ts()
                self._status["last_error"] = "; ".join(f"account {k}: {v}" for k, v in sorted(failed.items()))
                self._status["last_batch"] = summary
            self._log(
                f"batch done: {len(ok_ids)} refreshed, {len(failed)} failed",
                level="INFO" if not failed else "WARN",
            )
            return summary
        finally:
            self._batch_lock.release()

    # ---------- thread

    def status(self) -> dict[str, Any]:
        with self._lock:
            st = dict(self._status)
        st["config"] = self._sched_cfg()
        return st

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._poke.clear()
        self._thread = threading.Thread(target=self._loop, name="StatsRefreshScheduler", daemon=True)
        self._thread.start()
        self._log("scheduler thread started", level="INFO")

    def stop(self) -> None:
        self._stop.set()
        self._poke.set()
        t = self._thread
        if t and t.is_alive():
            t.join(timeout=3.0)
        self._log("scheduler thread stopped", level="INFO")

    def refresh(self) -> None:
        """Run the next batch on the scheduler thread as soon as it wakes."""
        self._next_ts = _now_ts()
        self._poke.set()
        if not self._thread or not self._thread.is_alive():
            self.start()

    def _update_next(self, ts: int) -> None:
        with self._lock:
            self._status["next_run_at"] = ts
            self._status["next_run_iso"] = _iso(ts)

    def _loop(self) -> None:
        with self._lock:
            self._status["running"] = True
        try:
            while not self._stop.is_set():
                with self._lock:
                    self._status["last_tick"] = _now_ts()
                sch = self._sched_cfg()
                if not sch.get("enabled"):
                    self._next_ts = 0
                    self._update_next(0)
                    self._sleep_or_poke(1.0)
                    continue

                every = max(1, int(sch["every_n_minutes"])) * 60
                now = _now_ts()
                if self._next_ts <= 0:
                    self._next_ts = now + every
                self._update_next(self._next_ts)

                if now >= self._next_ts:
                    try:
                        self.run_batch()
                    except Exception as e:
                        with self._lock:
                            self._status["last_run_ok"] = False
                            self._status["last_error"] = str(e)
                        self._log(f"batch crashed: {e}", level="ERROR")
                    self._next_ts = _now_ts() + every
                    self._update_next(self._next_ts)
                    continue

                self._sleep_or_poke(min(30.0, max(0.5, self._next_ts - now)))
        finally:
            with self._lock:
                self._status["running"] = False

    def _sleep_or_poke(self, seconds: float) -> None:
        if seconds <= 0:
            return
        self._poke.wait(timeout=seconds)
        self._poke.clear()


__all__ = ["StatsRefreshScheduler"]
