# services/velocity.py
# WatchStats - watching pace and trend over a trailing window
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from datetime import timedelta
from typing import Any

from services.rollup import WatchScope
from ws_platform.config_base import section
from ws_platform.errors import MissingDataError
from ws_platform.timeutil import WEEKDAYS, change_pct, local_day


def trend_label(recent_rate: float, prior_rate: float, threshold_pct: float) -> str:
    if prior_rate <= 0:
        return "increasing" if recent_rate > 0 else "stable"
    delta = change_pct(recent_rate, prior_rate, digits=6)
    if delta > threshold_pct:
        return "increasing"
    if delta < -threshold_pct:
        return "decreasing"
    return "stable"


def watching_velocity(scope: WatchScope, cfg: dict[str, Any] | None = None) -> dict[str, Any]:
    vc = section(cfg or {}, "velocity")
    window = max(2, int(vc["window_days"]))
    threshold = float(vc["trend_threshold_pct"])

    today = scope.today
    floor = today - timedelta(days=window - 1)
    days = []
    for e in scope.episode_events:
        d = local_day(e.watched_at, scope.tz)
        if floor <= d <= today:
            days.append((d, e.watched_at.astimezone(scope.tz)))
    if not days:
        raise MissingDataError(f"no episodes in the last {window} days")

    by_weekday = [0] * 7
    by_hour = [0] * 24
    for d, local in days:
        by_weekday[d.weekday()] += 1
        by_hour[local.hour] += 1

    recent_len = window // 2
    prior_len = window - recent_len
    split = today - timedelta(days=recent_len - 1)
    recent = sum(1 for d, _ in days if d >= split)
    prior = len(days) - recent

    n = len(days)
    return {
        "averageEpisodesPerDay": round(n / window, 2),
        "episodesPerWeek": round(n * 7 / window, 2),
        "episodesPerMonth": round(n * 30 / window, 2),
        "mostActiveDay": WEEKDAYS[max(range(7), key=lambda i: by_weekday[i])],
        "mostActiveHour": max(range(24), key=lambda h: by_hour[h]),
        "velocityTrend": trend_label(recent / recent_len, prior / prior_len, threshold),
    }


__all__ = ["watching_velocity", "trend_label"]
