# services/timeline.py
# WatchStats - daily/weekly/monthly activity buckets and seasonal viewing patterns
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from collections import defaultdict
from datetime import timedelta
from typing import Any

from services.rollup import WatchScope
from ws_platform.config_base import section
from ws_platform.errors import MissingDataError
from ws_platform.timeutil import MONTHS, iso_day, local_day, week_start

SEASONS = {
    "spring": (3, 4, 5),
    "summer": (6, 7, 8),
    "fall": (9, 10, 11),
    "winter": (12, 1, 2),
}


def activity_timeline(scope: WatchScope, cfg: dict[str, Any] | None = None) -> dict[str, Any]:
    """Sparse, ascending activity series in the configured zone."""
    tc = section(cfg or {}, "timeline")
    if not scope.events:
        raise MissingDataError("no watch events")

    today = scope.today
    day_floor = today - timedelta(days=max(1, int(tc["daily_days"])) - 1)
    week_floor = week_start(today) - timedelta(weeks=max(1, int(tc["weekly_weeks"])) - 1)
    cur_month = today.year * 12 + today.month - 1
    month_floor = cur_month - (max(1, int(tc["monthly_months"])) - 1)

    daily_eps: dict[str, int] = defaultdict(int)
    daily_shows: dict[str, set[int]] = defaultdict(set)
    weekly: dict[str, int] = defaultdict(int)
    monthly: dict[str, list[int]] = defaultdict(lambda: [0, 0])

    for e in scope.events:
        d = local_day(e.watched_at, scope.tz)
        if d > today:
            continue
        if (d.year * 12 + d.month - 1) >= month_floor:
            slot = monthly[f"{d.year:04d}-{d.month:02d}"]
            slot[0 if e.is_episode else 1] += 1
        if not e.is_episode:
            continue
        if d >= day_floor:
            key = iso_day(d)
            daily_eps[key] += 1
            if e.show_id is not None:
                daily_shows[key].add(e.show_id)
        ws = week_start(d)
        if ws >= week_floor:
            weekly[iso_day(ws)] += 1

    return {
        "dailyActivity": [
            {"date": k, "episodesWatched": daily_eps[k], "showsWatched": len(daily_shows[k])}
            for k in sorted(daily_eps)
        ],
        "weeklyActivity": [{"weekStart": k, "episodesWatched": weekly[k]} for k in sorted(weekly)],
        "monthlyActivity": [
            {"month": k, "episodesWatched": v[0], "moviesWatched": v[1]} for k, v in sorted(monthly.items())
        ],
    }


def seasonal_patterns(scope: WatchScope) -> dict[str, Any]:
    eps = scope.episode_events
    if not eps:
        raise MissingDataError("no episode events")

    by_month = [0] * 12
    for e in eps:
        by_month[local_day(e.watched_at, scope.tz).month - 1] += 1

    # max()/min() keep the first index on ties, i.e. the calendar-earliest month
    peak = max(range(12), key=lambda i: by_month[i])
    slow = min(range(12), key=lambda i: by_month[i])
    return {
        "viewingByMonth": {MONTHS[i]: by_month[i] for i in range(12)},
        "viewingBySeason": {name: sum(by_month[m - 1] for m in months) for name, months in SEASONS.items()},
        "peakViewingMonth": MONTHS[peak],
        "slowestViewingMonth": MONTHS[slow],
    }


__all__ = ["activity_timeline", "seasonal_patterns", "SEASONS"]
