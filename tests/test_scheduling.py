# WatchStats test scripts
from __future__ import annotations

import json
import threading
import time
from collections import Counter
from pathlib import Path
from typing import Any

from services.scheduling import StatsRefreshScheduler
from ws_platform.errors import ComputationTimeout, StatsError
from ws_platform.models import Account


class _Store:
    def __init__(self, ids: list[int]) -> None:
        self.accounts = [Account(i) for i in ids]

    def list_accounts(self) -> list[Account]:
        return list(self.accounts)

    def get_account(self, account_id: int) -> Account | None:
        return next((a for a in self.accounts if a.id == account_id), None)


class _Composer:
    def __init__(self, ids: list[int], fail: set[int] | None = None) -> None:
        self.store = _Store(ids)
        self.cfg: dict[str, Any] = {"runtime": {"workers": 2}}
        self.fail = set(fail or ())
        self.calls: Counter[int] = Counter()
        self.lock = threading.Lock()

    def get_account_statistics(self, account_id: int) -> dict[str, Any]:
        with self.lock:
            self.calls[account_id] += 1
        if account_id in self.fail:
            raise StatsError("upstream down")
        return {"accountId": account_id}

    def get_enhanced_account_statistics(self, account_id: int) -> dict[str, Any]:
        return {"accountId": account_id, "sectionStatus": {}}


def _scheduler(composer: _Composer, tmp_path: Path, sleeps: list[float], **sched: Any) -> StatsRefreshScheduler:
    cfg = {"scheduling": {"job_timeout_sec": 5.0, "max_retries": 3, "backoff_base": 1.0, **sched}}
    return StatsRefreshScheduler(
        lambda: cfg,
        composer,  # type: ignore[arg-type]
        results_path=tmp_path / "statistics_cache.json",
        sleep=sleeps.append,
    )


def test_failing_account_does_not_stop_batch(tmp_path: Path) -> None:
    composer = _Composer([1, 2, 3], fail={2})
    sleeps: list[float] = []
    sched = _scheduler(composer, tmp_path, sleeps)

    summary = sched.run_batch()

    assert summary["ok"] is False
    assert summary["refreshed"] == [1, 3]
    assert summary["failed"] == {"2": "upstream down"}
    assert composer.calls[2] == 3
    assert composer.calls[1] == 1
    assert sorted(sleeps) == [1.0, 2.0]

    saved = json.loads((tmp_path / "statistics_cache.json").read_text(encoding="utf-8"))
    assert sorted(saved["accounts"]) == ["1", "3"]
    assert sched.status()["last_batch"] == summary
    assert "account 2: upstream down" in sched.status()["last_error"]


def test_retry_recovers_after_transient_failure(tmp_path: Path) -> None:
    sleeps: list[float] = []
    sched = _scheduler(_Composer([]), tmp_path, sleeps, backoff_base=0.5)
    attempts = {"n": 0}

    def flaky() -> str:
        attempts["n"] += 1
        if attempts["n"] < 2:
            raise StatsError("blip")
        return "done"

    assert sched.run_job("account 7", flaky) == (True, "done")
    assert sleeps == [0.5]


def test_slow_job_times_out(tmp_path: Path) -> None:
    sched = _scheduler(_Composer([]), tmp_path, [], job_timeout_sec=0.05, max_retries=1)
    gate = threading.Event()

    ok, err = sched.run_job("account 9", lambda: gate.wait(2.0))
    gate.set()

    assert ok is False
    assert isinstance(err, ComputationTimeout)
    assert err.entity == "account 9"


def test_last_known_good_survives_failures_and_restarts(tmp_path: Path) -> None:
    composer = _Composer([1])
    sched = _scheduler(composer, tmp_path, [])
    assert sched.run_batch()["ok"] is True
    good = sched.last_known_good(1)
    assert good is not None and good["statistics"] == {"accountId": 1}

    composer.fail = {1}
    assert sched.run_batch()["failed"] == {"1": "upstream down"}
    assert sched.last_known_good(1) == good

    restarted = _scheduler(composer, tmp_path, [])
    assert restarted.last_known_good(1) == good
    assert restarted.last_known_good(2) is None


def test_overlapping_batch_is_skipped(tmp_path: Path) -> None:
    sched = _scheduler(_Composer([1]), tmp_path, [])
    sched._batch_lock.acquire()
    try:
        assert sched.run_batch() == {"ok": False, "skipped": True}
    finally:
        sched._batch_lock.release()


def test_scheduler_thread_starts_and_stops(tmp_path: Path) -> None:
    sched = _scheduler(_Composer([]), tmp_path, [])
    sched.start()
    try:
        deadline = time.time() + 2.0
        while not sched.status()["running"] and time.time() < deadline:
            time.sleep(0.01)
        assert sched.status()["running"] is True
        assert sched.status()["config"]["enabled"] is False
    finally:
        sched.stop()
    assert sched.status()["running"] is False


def test_batch_starts_from_a_fresh_catalog(tmp_path: Path) -> None:
    composer = _Composer([1, 2])
    refreshed: list[int] = []
    composer.store.refresh_catalog = lambda: refreshed.append(1)  # type: ignore[attr-defined]
    sched = _scheduler(composer, tmp_path, [])

    sched.run_batch()
    sched.run_batch()

    assert refreshed == [1, 1]
