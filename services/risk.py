# services/risk.py
# WatchStats - abandonment risk, time-to-watch, backlog aging, discovery and unaired content
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from services.rollup import WatchScope
from ws_platform.config_base import section
from ws_platform.errors import MissingDataError
from ws_platform.timeutil import days_between, local_day, mean, percent
from ws_platform.watch_status import CAUGHT_UP, WatchStatus


# ---------- abandonment

def abandonment_risk(scope: WatchScope, cfg: dict[str, Any] | None = None) -> dict[str, Any]:
    rc = section(cfg or {}, "risk")
    idle_floor = int(rc["abandonment_days"])
    live = [t for t in scope.shows if not t.rollup.stale]

    at_risk = []
    for t in live:
        r = t.rollup
        if r.status != WatchStatus.WATCHING or r.last_watched_at is None:
            continue
        idle = scope.days_since(r.last_watched_at)
        if idle >= idle_floor:
            at_risk.append({
                "showId": t.show.id,
                "showTitle": t.show.title,
                "daysSinceLastWatch": idle,
                "unwatchedEpisodes": max(0, r.aired_episodes - r.watched_episodes),
                "status": r.status.value,
            })
    at_risk.sort(key=lambda x: (-x["daysSinceLastWatch"], x["showId"]))

    started = [t for t in live if t.rollup.started and not t.show.in_production]
    unfinished = [t for t in started if t.rollup.status not in CAUGHT_UP]
    return {
        "showsAtRisk": at_risk,
        "showAbandonmentRate": percent(len(unfinished), len(started)),
    }


# ---------- time to watch

def time_to_watch(scope: WatchScope, cfg: dict[str, Any] | None = None) -> dict[str, Any]:
    rc = section(cfg or {}, "risk")
    live = [t for t in scope.shows if not t.rollup.stale]
    if not live:
        raise MissingDataError("no favorited shows")

    to_start = [
        float(days_between(t.favorite.added_at, t.rollup.first_watched_at))
        for t in live
        if t.favorite.added_at is not None and t.rollup.first_watched_at is not None
    ]

    completions = []
    for t in live:
        r = t.rollup
        if r.status in CAUGHT_UP and r.first_watched_at is not None and r.last_watched_at is not None:
            completions.append({
                "showId": t.show.id,
                "showTitle": t.show.title,
                "daysToComplete": days_between(r.first_watched_at, r.last_watched_at),
            })
    completions.sort(key=lambda c: (c["daysToComplete"], c["showId"]))

    idle_days = [
        scope.days_since(t.favorite.added_at)
        for t in live
        if not t.rollup.started and t.favorite.added_at is not None
    ]
    b30, b90, b365 = (sorted(int(x) for x in rc["backlog_days"]) + [30, 90, 365])[:3]
    return {
        "averageDaysToStartShow": mean(to_start),
        "averageDaysToCompleteShow": mean([float(c["daysToComplete"]) for c in completions]),
        "fastestCompletions": completions[: int(rc["fastest_limit"])],
        "backlogAging": {
            "unwatchedOver30Days": sum(1 for d in idle_days if d > b30),
            "unwatchedOver90Days": sum(1 for d in idle_days if d > b90),
            "unwatchedOver365Days": sum(1 for d in idle_days if d > b365),
        },
    }


# ---------- discovery

def content_discovery(scope: WatchScope, cfg: dict[str, Any] | None = None) -> dict[str, Any]:
    dc = section(cfg or {}, "discovery")
    show_adds = [t.favorite.added_at for t in scope.shows if t.favorite.added_at is not None]
    movie_adds = [t.favorite.added_at for t in scope.movies if t.favorite.added_at is not None]
    adds = show_adds + movie_adds
    if not adds:
        raise MissingDataError("no content additions")

    today = scope.today
    start = max(today - timedelta(days=int(dc["window_days"])), min(local_day(a, scope.tz) for a in adds))
    months = max(1.0, (today - start).days / 30.0)

    def in_window(ts: datetime | None) -> bool:
        return ts is not None and start <= local_day(ts, scope.tz) <= today

    shows_added = sum(1 for a in show_adds if in_window(a))
    movies_added = sum(1 for a in movie_adds if in_window(a))
    shows_done = sum(
        1 for t in scope.shows
        if t.rollup.status == WatchStatus.WATCHED and in_window(t.rollup.last_watched_at)
    )
    movies_done = sum(1 for t in scope.movies if in_window(t.watched_at))

    def ratio(done: int, added: int) -> float:
        return round(done / added, 2) if added else float(done)

    return {
        "daysSinceLastContentAdded": scope.days_since(max(adds)),
        "contentAdditionRate": {
            "showsPerMonth": round(shows_added / months, 2),
            "moviesPerMonth": round(movies_added / months, 2),
        },
        "watchToAddRatio": {
            "shows": ratio(shows_done, shows_added),
            "movies": ratio(movies_done, movies_added),
        },
    }


# ---------- unaired

def unaired_content(scope: WatchScope) -> dict[str, Any]:
    today = scope.today
    live = [t for t in scope.shows if not t.rollup.stale]
    upcoming_movies = [t for t in scope.movies if t.movie.release_date is not None and t.movie.release_date > today]
    return {
        "unairedShowCount": sum(1 for t in live if t.rollup.unaired_episodes > 0),
        "unairedSeasonCount": sum(1 for t in live for s in t.rollup.seasons if s.aired_episodes == 0),
        "unairedEpisodeCount": sum(t.rollup.unaired_episodes for t in live),
        "unairedMovieCount": len(upcoming_movies),
        "airedUnwatchedEpisodeCount": sum(max(0, t.rollup.aired_episodes - t.rollup.watched_episodes) for t in live),
        "airedUnwatchedMovieCount": sum(
            1 for t in scope.movies
            if t.watched_at is None and (t.movie.release_date is None or t.movie.release_date <= today)
        ),
    }


__all__ = ["abandonment_risk", "time_to_watch", "content_discovery", "unaired_content"]
