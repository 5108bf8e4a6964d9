# ws_platform/config_base.py
# WatchStats - configuration loading, defaults and atomic persistence
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

import copy
import json
import os
import secrets
import threading
import time
from pathlib import Path
from typing import Any, Dict

# ------------------------------------------------------------
# Base dir resolution
# ------------------------------------------------------------
def CONFIG_BASE() -> Path:
    """
    Determine the base directory for config and data files.

    Priority:
      1) $CONFIG_BASE if set
      2) /config (when running in a container that mounts /config)
      3) Project root (one level up from this file)
    """
    env = os.getenv("CONFIG_BASE")
    if env:
        return Path(env)

    if Path("/app").exists():
        return Path("/config")

    return Path(__file__).resolve().parents[1]


# Default config structure
DEFAULT_CFG: Dict[str, Any] = {
    # --- Runtime -------------------------------------------------------------
    "runtime": {
        "debug": False,                                 # Enables DEBUG lines from _logging
        "log_level": "info",                            # debug | info | warn | error | silent
        "color": True,                                  # ANSI level tags on the console (NO_COLOR env wins)
        "debug_http": False,                            # uvicorn access log
        "json_log": "",                                 # Optional JSON-lines log file path
        "workers": 4,                                   # Thread pool size for per-profile fan-out
    },

    # --- Data source ---------------------------------------------------------
    "store": {
        "type": "file",                                 # "file" | "http"
        "path": "",                                     # Snapshot file; empty = CONFIG_BASE/watchstats.json
        "base_url": "",                                 # Upstream service when type == "http"
        "api_key": "",                                  # Sent as Bearer token when set
        "timeout": 10.0,                                # HTTP timeout (seconds)
        "max_retries": 3,                               # Retry budget for 429/5xx
        "catalog_ttl_sec": 300.0,                       # Re-fetch the http catalog after this many seconds
    },

    # --- Statistics ----------------------------------------------------------
    "statistics": {
        "timezone": "UTC",                              # IANA zone for day/hour bucketing
    },
    "velocity": {
        "window_days": 90,                              # Trailing window for pace + trend
        "trend_threshold_pct": 10.0,                    # Relative change that flips the trend label
    },
    "timeline": {
        "daily_days": 30,
        "weekly_weeks": 12,
        "monthly_months": 12,
    },
    "binge": {
        "max_gap_hours": 24,                            # Gap that closes a session
        "min_episodes": 3,                              # Smallest run reported as a binge
        "top_shows": 5,
    },
    "streaks": {
        "grace_days": 1,                                # 1 = a streak survives through the following day
        "long_streak_days": 7,
    },
    "milestones": {
        "episodes": [100, 500, 1000, 5000],
        "movies": [25, 50, 100, 500],
        "hours": [100, 500, 1000, 5000],
        "streak_days": [7, 30, 100],
        "binge_episodes": [5, 10, 20],
        "recent_limit": 10,
        "default_episode_runtime": 0,                   # Minutes used when an episode has no runtime
        "default_movie_runtime": 0,
        "ledger_path": "",                              # Empty = CONFIG_BASE/achievements.json
    },
    "risk": {
        "abandonment_days": 30,
        "backlog_days": [30, 90, 365],
        "fastest_limit": 5,
    },
    "discovery": {
        "window_days": 365,
    },
    "admin": {
        "active_days": 30,                              # Activity window that makes an account "active"
        "trend_days": 30,
        "trend_threshold_pct": 10.0,
        "top_limit": 5,
    },
    "cache": {
        "enabled": True,
        "max_entries": 512,
    },

    # --- Scheduling ----------------------------------------------------------
    "scheduling": {
        "enabled": False,                               # Master toggle for periodic recomputation
        "every_n_minutes": 60,                          # Interval between batch refreshes
        "job_timeout_sec": 30.0,                        # Time budget per account refresh
        "max_retries": 3,                               # Bounded retries per entity
        "backoff_base": 1.0,                            # Seconds, doubled per retry
        "results_path": "",                             # Empty = CONFIG_BASE/statistics_cache.json
    },
}


# ------------------------------------------------------------
# Helpers: paths, IO, merging
# ------------------------------------------------------------
def _cfg_file() -> Path:
    return CONFIG_BASE() / "config.json"

def config_path() -> Path:
    return _cfg_file()


def data_path(cfg: Dict[str, Any], section: str, key: str, default_name: str) -> Path:
    raw = str(((cfg.get(section) or {}).get(key)) or "").strip()
    return Path(raw) if raw else CONFIG_BASE() / default_name


def _read_json(p: Path) -> Dict[str, Any]:
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def _write_json_atomic(p: Path, data: Dict[str, Any]) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    suffix = f".{time.time_ns()}.{os.getpid()}.{threading.get_ident()}.{secrets.token_hex(4)}.tmp"
    tmp = p.with_suffix(suffix)

    with tmp.open("w", encoding="utf-8", newline="\n") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")
    tmp.replace(p)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)  # type: ignore[assignment]
        else:
            out[k] = v
    return out


def section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Config section merged over its defaults, so callers never see missing keys."""
    return _deep_merge(DEFAULT_CFG.get(name) or {}, (cfg or {}).get(name) or {})


# ------------------------------------------------------------
# Public API
# ------------------------------------------------------------
def load_config() -> Dict[str, Any]:
    """
    Read config.json merged over DEFAULT_CFG
    """
    p = _cfg_file()
    user_cfg: Dict[str, Any] = {}
    if p.exists():
        try:
            user_cfg = _read_json(p)
        except (OSError, ValueError):
            user_cfg = {}
    return _deep_merge(DEFAULT_CFG, user_cfg)


def save_config(cfg: Dict[str, Any]) -> None:
    """
    Write to config.json
    """
    _write_json_atomic(_cfg_file(), dict(cfg or {}))
