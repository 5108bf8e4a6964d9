# services/depth.py
# WatchStats - content depth (size, runtime, release year and maturity mix)
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from collections import Counter
from typing import Any

from services.rollup import WatchScope
from ws_platform.errors import MissingDataError
from ws_platform.timeutil import mean


def content_depth(scope: WatchScope) -> dict[str, Any]:
    # content traits: each show/movie counts once even when several profiles track it
    shows = {t.show.id: t.show for t in scope.shows}
    movies = {t.movie.id: t.movie for t in scope.movies}
    if not shows and not movies:
        raise MissingDataError("no favorited content")

    years: Counter[str] = Counter()
    ratings: Counter[str] = Counter()
    for s in shows.values():
        if s.release_date is not None:
            years[str(s.release_date.year)] += 1
        ratings[s.content_rating or "Unknown"] += 1
    for m in movies.values():
        if m.release_date is not None:
            years[str(m.release_date.year)] += 1
        ratings[m.content_rating or "Unknown"] += 1

    return {
        "averageEpisodeCountPerShow": mean([float(len(s.episodes)) for s in shows.values()]),
        "averageMovieRuntime": mean([float(m.runtime) for m in movies.values() if m.runtime]),
        "releaseYearDistribution": dict(sorted(years.items())),
        "contentMaturityDistribution": dict(sorted(ratings.items(), key=lambda kv: (-kv[1], kv[0]))),
    }


__all__ = ["content_depth"]
