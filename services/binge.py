# services/binge.py
# WatchStats - binge session detection
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from services.rollup import WatchScope
from ws_platform.config_base import section
from ws_platform.errors import MissingDataError
from ws_platform.models import Catalog, WatchEvent
from ws_platform.timeutil import iso_day, local_day


@dataclass(frozen=True)
class BingeSession:
    profile_id: int
    events: tuple[WatchEvent, ...]

    @property
    def started_at(self) -> datetime:
        return self.events[0].watched_at

    @property
    def ended_at(self) -> datetime:
        return self.events[-1].watched_at

    @property
    def episode_count(self) -> int:
        return len(self.events)

    @property
    def show_ids(self) -> set[int]:
        return {e.show_id for e in self.events if e.show_id is not None}

    @property
    def main_show_id(self) -> int | None:
        counts: Counter[int] = Counter()
        first_seen: dict[int, int] = {}
        for i, e in enumerate(self.events):
            if e.show_id is None:
                continue
            counts[e.show_id] += 1
            first_seen.setdefault(e.show_id, i)
        if not counts:
            return None
        return min(counts, key=lambda s: (-counts[s], first_seen[s]))


def _runs(events: list[WatchEvent], max_gap: timedelta) -> Iterable[list[WatchEvent]]:
    run: list[WatchEvent] = []
    for e in events:
        if run and (e.watched_at - run[-1].watched_at) >= max_gap:
            yield run
            run = []
        run.append(e)
    if run:
        yield run


def detect_sessions(events: Iterable[WatchEvent], *, max_gap_hours: float = 24, min_episodes: int = 3) -> list[BingeSession]:
    """Greedy chronological grouping per profile; runs below min_episodes are dropped."""
    per_profile: dict[int, list[WatchEvent]] = defaultdict(list)
    for e in events:
        if e.is_episode and not e.invalidated:
            per_profile[e.profile_id].append(e)

    gap = timedelta(hours=float(max_gap_hours))
    out: list[BingeSession] = []
    for pid in sorted(per_profile):
        evs = sorted(per_profile[pid], key=lambda e: (e.watched_at, e.content_id))
        for run in _runs(evs, gap):
            if len(run) >= int(min_episodes):
                out.append(BingeSession(pid, tuple(run)))
    out.sort(key=lambda s: (s.started_at, s.profile_id))
    return out


def sessions_for(scope: WatchScope, cfg: dict[str, Any] | None = None) -> list[BingeSession]:
    bc = section(cfg or {}, "binge")
    return detect_sessions(scope.events, max_gap_hours=bc["max_gap_hours"], min_episodes=bc["min_episodes"])


def _title(catalog: Catalog, show_id: int | None) -> str:
    show = catalog.shows.get(show_id) if show_id is not None else None
    return show.title if show else ""


def binge_statistics(scope: WatchScope, cfg: dict[str, Any] | None = None, *, with_profile: bool = False) -> dict[str, Any]:
    if not scope.episode_events:
        raise MissingDataError("no episode events")
    bc = section(cfg or {}, "binge")
    sessions = sessions_for(scope, cfg)

    longest: dict[str, Any] | None = None
    if sessions:
        best = max(sessions, key=lambda s: (s.episode_count, s.started_at))
        longest = {
            "showTitle": _title(scope.catalog, best.main_show_id),
            "episodeCount": best.episode_count,
            "date": iso_day(local_day(best.started_at, scope.tz)),
        }
        if with_profile:
            longest["profileName"] = scope.profile_name(best.profile_id)

    per_show: Counter[int] = Counter()
    for s in sessions:
        per_show.update(s.show_ids)
    top = sorted(per_show.items(), key=lambda kv: (-kv[1], kv[0]))[: int(bc["top_shows"])]

    return {
        "bingeSessionCount": len(sessions),
        "averageEpisodesPerBinge": round(sum(s.episode_count for s in sessions) / len(sessions), 2) if sessions else 0.0,
        "longestBingeSession": longest,
        "topBingedShows": [
            {"showId": sid, "showTitle": _title(scope.catalog, sid), "bingeSessionCount": n} for sid, n in top
        ],
    }


__all__ = ["BingeSession", "detect_sessions", "sessions_for", "binge_statistics"]
