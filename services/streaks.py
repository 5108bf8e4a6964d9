# services/streaks.py
# WatchStats - consecutive-day watch streaks
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from services.rollup import WatchScope
from ws_platform.config_base import section
from ws_platform.errors import MissingDataError
from ws_platform.timeutil import iso_day, local_day


@dataclass(frozen=True)
class Streak:
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def find_streaks(days: Iterable[date]) -> list[Streak]:
    ordered = sorted(set(days))
    out: list[Streak] = []
    for d in ordered:
        if out and d - out[-1].end == timedelta(days=1):
            out[-1] = Streak(out[-1].start, d)
        else:
            out.append(Streak(d, d))
    return out


def active_days(scope: WatchScope) -> set[date]:
    """Days with any valid event; episodes and movies count the same."""
    today = scope.today
    return {d for d in (local_day(e.watched_at, scope.tz) for e in scope.events) if d <= today}


def current_streak(streaks: list[Streak], today: date, grace_days: int = 1) -> Streak | None:
    if not streaks:
        return None
    last = streaks[-1]
    return last if (today - last.end).days <= max(0, int(grace_days)) else None


def streak_statistics(scope: WatchScope, cfg: dict[str, Any] | None = None) -> dict[str, Any]:
    sc = section(cfg or {}, "streaks")
    streaks = find_streaks(active_days(scope))
    if not streaks:
        raise MissingDataError("no watch events")

    cur = current_streak(streaks, scope.today, sc["grace_days"])
    closed = [s for s in streaks if s is not cur]
    longest = max(streaks, key=lambda s: (s.days, s.end))
    return {
        "currentStreak": cur.days if cur else 0,
        "currentStreakStartDate": iso_day(cur.start) if cur else "",
        "longestStreak": longest.days,
        "longestStreakPeriod": {
            "startDate": iso_day(longest.start),
            "endDate": iso_day(longest.end),
            "days": longest.days,
        },
        "streaksOver7Days": sum(1 for s in streaks if s.days >= int(sc["long_streak_days"])),
        "averageStreakLength": round(sum(s.days for s in closed) / len(closed), 2) if closed else 0.0,
    }


__all__ = ["Streak", "find_streaks", "active_days", "current_streak", "streak_statistics"]
