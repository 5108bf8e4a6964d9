# services/progress.py
# WatchStats - show/movie/episode progress aggregates
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import date
from typing import Any

from services.rollup import ShowRollup, TrackedMovie, TrackedShow, WatchScope
from ws_platform.models import Movie
from ws_platform.timeutil import percent
from ws_platform.watch_status import BinaryWatchStatus, WatchStatus, widen

_SHOW_KEYS = {
    WatchStatus.UNAIRED: "unaired",
    WatchStatus.WATCHED: "watched",
    WatchStatus.WATCHING: "watching",
    WatchStatus.NOT_WATCHED: "notWatched",
    WatchStatus.UP_TO_DATE: "upToDate",
}


def distribution(groups: Iterable[Iterable[str]]) -> dict[str, int]:
    """One count per distinct value per item; most common first, then by name."""
    c: Counter[str] = Counter()
    for values in groups:
        c.update({v for v in values if v})
    return dict(sorted(c.items(), key=lambda kv: (-kv[1], kv[0])))


def _merge_dist(dists: Iterable[dict[str, int]]) -> dict[str, int]:
    c: Counter[str] = Counter()
    for d in dists:
        c.update(d or {})
    return dict(sorted(c.items(), key=lambda kv: (-kv[1], kv[0])))


# ---------- shows

def show_progress(r: ShowRollup) -> dict[str, Any]:
    return {
        "showId": r.show_id,
        "title": r.title,
        "status": r.status.value if r.status else None,
        "totalEpisodes": r.aired_episodes,
        "watchedEpisodes": r.watched_episodes,
        "percentComplete": r.percent_complete,
    }


def show_statistics(tracked: Iterable[TrackedShow]) -> dict[str, Any]:
    live = [t for t in tracked if not t.rollup.stale]
    counts = {k: 0 for k in _SHOW_KEYS.values()}
    for t in live:
        counts[_SHOW_KEYS[t.rollup.status]] += 1  # type: ignore[index]
    return {
        "total": len(live),
        "watchStatusCounts": counts,
        "genreDistribution": distribution(t.show.genres for t in live),
        "serviceDistribution": distribution(t.show.streaming_services for t in live),
        "watchProgress": percent(counts["watched"], len(live)),
    }


def merge_show_statistics(parts: list[dict[str, Any]]) -> dict[str, Any]:
    total = sum(int(p.get("total") or 0) for p in parts)
    counts = {k: sum(int((p.get("watchStatusCounts") or {}).get(k) or 0) for p in parts) for k in _SHOW_KEYS.values()}
    return {
        "total": total,
        "watchStatusCounts": counts,
        "genreDistribution": _merge_dist(p.get("genreDistribution") or {} for p in parts),
        "serviceDistribution": _merge_dist(p.get("serviceDistribution") or {} for p in parts),
        "watchProgress": percent(counts["watched"], total),
    }


# ---------- movies

def _movie_bucket(t: TrackedMovie, today: date) -> str:
    # movies share the show count keys; unreleased and unwatched reads as unaired
    m: Movie = t.movie
    if t.status == BinaryWatchStatus.NOT_WATCHED and m.release_date is not None and m.release_date > today:
        return _SHOW_KEYS[WatchStatus.UNAIRED]
    return _SHOW_KEYS[widen(t.status)]


def movie_statistics(tracked: Iterable[TrackedMovie], today: date) -> dict[str, Any]:
    items = list(tracked)
    counts = {"unaired": 0, "watched": 0, "notWatched": 0}
    for t in items:
        counts[_movie_bucket(t, today)] += 1
    return {
        "movieReferences": [{"id": t.movie.id, "title": t.movie.title, "tmdbId": t.movie.tmdb_id} for t in items],
        "total": len(items),
        "watchStatusCounts": counts,
        "genreDistribution": distribution(t.movie.genres for t in items),
        "serviceDistribution": distribution(t.movie.streaming_services for t in items),
        "watchProgress": percent(counts["watched"], len(items)),
    }


def merge_movie_statistics(parts: list[dict[str, Any]]) -> dict[str, Any]:
    total = sum(int(p.get("total") or 0) for p in parts)
    counts = {k: sum(int((p.get("watchStatusCounts") or {}).get(k) or 0) for p in parts) for k in ("unaired", "watched", "notWatched")}
    refs: dict[int, dict[str, Any]] = {}
    for p in parts:
        for ref in p.get("movieReferences") or []:
            refs.setdefault(int(ref["id"]), ref)
    return {
        "movieReferences": [refs[k] for k in sorted(refs)],
        "total": total,
        "watchStatusCounts": counts,
        "genreDistribution": _merge_dist(p.get("genreDistribution") or {} for p in parts),
        "serviceDistribution": _merge_dist(p.get("serviceDistribution") or {} for p in parts),
        "watchProgress": percent(counts["watched"], total),
    }


# ---------- episodes

def episode_watch_progress(tracked: Iterable[TrackedShow]) -> dict[str, Any]:
    """Aired episodes only in the denominator; stale rollups are left out of the totals."""
    live = [t.rollup for t in tracked if not t.rollup.stale]
    total = sum(r.aired_episodes for r in live)
    watched = sum(r.watched_episodes for r in live)
    return {
        "totalEpisodes": total,
        "watchedEpisodes": watched,
        "unairedEpisodes": sum(r.unaired_episodes for r in live),
        "overallProgress": percent(watched, total),
        "showsProgress": [show_progress(r) for r in live],
    }


def merge_episode_progress(parts: list[dict[str, Any]]) -> dict[str, Any]:
    total = sum(int(p.get("totalEpisodes") or 0) for p in parts)
    watched = sum(int(p.get("watchedEpisodes") or 0) for p in parts)
    return {"totalEpisodes": total, "watchedEpisodes": watched, "watchProgress": percent(watched, total)}


def profile_progress(scope: WatchScope) -> dict[str, Any]:
    return {
        "showStatistics": show_statistics(scope.shows),
        "movieStatistics": movie_statistics(scope.movies, scope.today),
        "episodeWatchProgress": episode_watch_progress(scope.shows),
    }


__all__ = [
    "distribution",
    "show_progress",
    "show_statistics",
    "merge_show_statistics",
    "movie_statistics",
    "merge_movie_statistics",
    "episode_watch_progress",
    "merge_episode_progress",
    "profile_progress",
]
