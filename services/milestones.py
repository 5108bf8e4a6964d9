# services/milestones.py
# WatchStats - milestone ladders and one-time achievements
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

import json
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from _logging import log
from services.binge import sessions_for
from services.rollup import WatchScope
from services.streaks import active_days, find_streaks
from ws_platform.config_base import _write_json_atomic, data_path, section
from ws_platform.models import WatchEvent
from ws_platform.timeutil import iso_z, local_day, percent
from ws_platform.watch_status import WatchStatus

EPISODES_WATCHED = "EPISODES_WATCHED"
MOVIES_WATCHED = "MOVIES_WATCHED"
HOURS_WATCHED = "HOURS_WATCHED"
FIRST_EPISODE = "FIRST_EPISODE"
FIRST_MOVIE = "FIRST_MOVIE"
SHOW_COMPLETED = "SHOW_COMPLETED"
WATCH_STREAK = "WATCH_STREAK"
BINGE_SESSION = "BINGE_SESSION"
PROFILE_ANNIVERSARY = "PROFILE_ANNIVERSARY"


@dataclass(frozen=True)
class Achievement:
    profile_id: int
    type: str
    subject_id: int
    achieved_at: datetime
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
    profile_name: str = field(default="", compare=False)

    @property
    def key(self) -> str:
        return f"{self.profile_id}:{self.type}:{self.subject_id}"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": self.type,
            "description": self.description,
            "achievedDate": iso_z(self.achieved_at),
        }
        if self.profile_name:
            d["profileName"] = self.profile_name
        if self.metadata:
            d["metadata"] = dict(self.metadata)
        return d


# ---------- totals

def _runtime(scope: WatchScope, e: WatchEvent, mc: dict[str, Any]) -> int:
    if e.is_episode:
        ep = scope.catalog.episodes.get(e.content_id)
        rt = ep.runtime if ep else None
        return int(rt if rt is not None else mc["default_episode_runtime"])
    mv = scope.catalog.movies.get(e.content_id)
    rt = mv.runtime if mv else None
    return int(rt if rt is not None else mc["default_movie_runtime"])


def _first_watches(events: Iterable[WatchEvent]) -> list[WatchEvent]:
    """First valid event per (profile, content), chronological."""
    seen: set[tuple[int, str, int]] = set()
    out: list[WatchEvent] = []
    for e in events:
        k = (e.profile_id, e.content_type, e.content_id)
        if k in seen:
            continue
        seen.add(k)
        out.append(e)
    return out


def watch_totals(scope: WatchScope, cfg: dict[str, Any] | None = None) -> dict[str, Any]:
    mc = section(cfg or {}, "milestones")
    firsts = _first_watches(scope.events)
    minutes = sum(_runtime(scope, e, mc) for e in firsts)
    return {
        "episodes": sum(1 for e in firsts if e.is_episode),
        "movies": sum(1 for e in firsts if not e.is_episode),
        "hours": round(minutes / 60.0, 2),
    }


def milestone_ladder(kind: str, total: float, thresholds: Iterable[int]) -> list[dict[str, Any]]:
    return [
        {"type": kind, "threshold": int(t), "achieved": total >= t, "progress": percent(total, t)}
        for t in sorted(int(x) for x in thresholds)
    ]


# ---------- achievements

def _crossings(firsts: list[WatchEvent], weight, thresholds: Iterable[int]) -> list[tuple[int, WatchEvent]]:
    """(rung, event) for every ladder rung, dated at the event that crossed it."""
    out: list[tuple[int, WatchEvent]] = []
    ladder = sorted(int(t) for t in thresholds)
    acc = 0.0
    i = 0
    for e in firsts:
        acc += weight(e)
        while i < len(ladder) and acc >= ladder[i]:
            out.append((ladder[i], e))
            i += 1
    return out


def _show_meta(scope: WatchScope, show_id: int | None) -> dict[str, Any]:
    if show_id is None:
        return {}
    show = scope.catalog.shows.get(show_id)
    return {"showId": show_id, "showTitle": show.title if show else ""}


def profile_achievements(scope: WatchScope, cfg: dict[str, Any] | None = None) -> list[Achievement]:
    """Every achievement a single profile has earned, dated at the crossing event."""
    mc = section(cfg or {}, "milestones")
    shared = len(scope.profiles) > 1
    out: list[Achievement] = []
    for prof in scope.profiles:
        mine = scope.for_profile(prof.id)
        firsts = _first_watches(mine.events)
        eps = [e for e in firsts if e.is_episode]
        movies = [e for e in firsts if not e.is_episode]

        def add(typ: str, subject: int, when: datetime, desc: str, **meta: Any) -> None:
            out.append(Achievement(prof.id, typ, subject, when, desc, meta, prof.name if shared else ""))

        if eps:
            ep = scope.catalog.episodes.get(eps[0].content_id)
            meta = _show_meta(scope, ep.show_id if ep else eps[0].show_id)
            desc = f"First episode: {meta['showTitle']}" if meta.get("showTitle") else "First episode"
            add(FIRST_EPISODE, eps[0].content_id, eps[0].watched_at, desc, episodeId=eps[0].content_id, **meta)
        if movies:
            mv = scope.catalog.movies.get(movies[0].content_id)
            desc = f"First movie: {mv.title}" if mv else "First movie"
            add(FIRST_MOVIE, movies[0].content_id, movies[0].watched_at, desc,
                movieId=movies[0].content_id, movieTitle=mv.title if mv else "")

        ladders = (
            (EPISODES_WATCHED, eps, lambda e: 1, mc["episodes"], "episodes watched"),
            (MOVIES_WATCHED, movies, lambda e: 1, mc["movies"], "movies watched"),
            (HOURS_WATCHED, firsts, lambda e: _runtime(scope, e, mc) / 60.0, mc["hours"], "hours watched"),
        )
        for typ, rows, weight, thresholds, unit in ladders:
            for rung, e in _crossings(rows, weight, thresholds):
                add(typ, rung, e.watched_at, f"{rung} {unit}", threshold=rung)

        for t in mine.shows:
            if t.rollup.status == WatchStatus.WATCHED and t.rollup.last_watched_at is not None:
                add(SHOW_COMPLETED, t.show.id, t.rollup.last_watched_at, f"Completed {t.show.title}",
                    showId=t.show.id, showTitle=t.show.title)

        first_on_day: dict[Any, datetime] = {}
        for e in mine.events:
            first_on_day.setdefault(local_day(e.watched_at, scope.tz), e.watched_at)
        streaks = find_streaks(active_days(mine))
        for rung in sorted(int(x) for x in mc["streak_days"]):
            hit = next((s for s in streaks if s.days >= rung), None)
            if hit is not None:
                when = first_on_day[hit.start + timedelta(days=rung - 1)]
                add(WATCH_STREAK, rung, when, f"{rung}-day watch streak", streakDays=rung)

        sessions = sessions_for(mine, cfg)
        for rung in sorted(int(x) for x in mc["binge_episodes"]):
            hit_s = next((s for s in sessions if s.episode_count >= rung), None)
            if hit_s is not None:
                add(BINGE_SESSION, rung, hit_s.events[rung - 1].watched_at, f"{rung}-episode binge",
                    episodeCount=rung, **_show_meta(scope, hit_s.main_show_id))

        if prof.created_at is not None:
            years = 1
            while True:
                try:
                    when = prof.created_at.replace(year=prof.created_at.year + years)
                except ValueError:  # Feb 29
                    when = prof.created_at.replace(year=prof.created_at.year + years, day=28)
                if local_day(when, scope.tz) > scope.today:
                    break
                add(PROFILE_ANNIVERSARY, years, when, f"{years} year anniversary", years=years)
                years += 1

    out.sort(key=lambda a: (a.achieved_at, a.profile_id, a.type, a.subject_id))
    return out


class AchievementLedger:
    """Remembers which achievement keys were already emitted so they go out once."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path) if path else None
        self.lock = threading.Lock()
        self.data: dict[str, Any] = {"emitted": {}}
        self._load()

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "AchievementLedger":
        return cls(data_path(cfg, "milestones", "ledger_path", "achievements.json"))

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            with self.path.open("r", encoding="utf-8") as f:
                d = json.load(f)
        except (OSError, ValueError) as e:
            log(f"achievement ledger unreadable: {e}", level="WARN", module="MILESTONES")
            return
        if isinstance(d, dict) and isinstance(d.get("emitted"), dict):
            self.data = d

    def _save(self) -> None:
        if self.path is not None:
            _write_json_atomic(self.path, self.data)

    def record(self, achievements: Iterable[Achievement]) -> list[Achievement]:
        fresh: list[Achievement] = []
        with self.lock:
            emitted = self.data["emitted"]
            for a in achievements:
                if a.key in emitted:
                    continue
                emitted[a.key] = iso_z(a.achieved_at)
                fresh.append(a)
            if fresh:
                self._save()
        for a in fresh:
            log(f"achievement: profile {a.profile_id} {a.type} {a.subject_id}", level="INFO", module="MILESTONES")
        return fresh


# ---------- section

def milestone_statistics(scope: WatchScope, cfg: dict[str, Any] | None = None) -> dict[str, Any]:
    mc = section(cfg or {}, "milestones")
    totals = watch_totals(scope, cfg)
    firsts = _first_watches(scope.events)
    first_ep = next((e for e in firsts if e.is_episode), None)
    first_mv = next((e for e in firsts if not e.is_episode), None)

    ep_meta: dict[str, Any] | None = None
    if first_ep is not None:
        ep = scope.catalog.episodes.get(first_ep.content_id)
        show = scope.catalog.shows.get(ep.show_id) if ep else None
        ep_meta = {
            "showId": ep.show_id if ep else first_ep.show_id,
            "showTitle": show.title if show else "",
            "episodeId": first_ep.content_id,
            "seasonNumber": ep.season_number if ep else None,
            "episodeNumber": ep.episode_number if ep else None,
        }
    mv_meta: dict[str, Any] | None = None
    if first_mv is not None:
        mv = scope.catalog.movies.get(first_mv.content_id)
        mv_meta = {"movieId": first_mv.content_id, "title": mv.title if mv else ""}

    achievements = profile_achievements(scope, cfg)
    recent = sorted(achievements, key=lambda a: (a.achieved_at, a.profile_id, a.type, a.subject_id), reverse=True)
    return {
        "totalEpisodesWatched": totals["episodes"],
        "totalMoviesWatched": totals["movies"],
        "totalHoursWatched": totals["hours"],
        "createdAt": iso_z(scope.created_at),
        "firstEpisodeWatchedAt": iso_z(first_ep.watched_at) if first_ep else None,
        "firstMovieWatchedAt": iso_z(first_mv.watched_at) if first_mv else None,
        "milestones": (
            milestone_ladder("episodes", totals["episodes"], mc["episodes"])
            + milestone_ladder("movies", totals["movies"], mc["movies"])
            + milestone_ladder("hours", totals["hours"], mc["hours"])
        ),
        "recentAchievements": [a.to_dict() for a in recent[: int(mc["recent_limit"])]],
        "firstEpisodeMetadata": ep_meta,
        "firstMovieMetadata": mv_meta,
    }


__all__ = [
    "Achievement",
    "AchievementLedger",
    "watch_totals",
    "milestone_ladder",
    "profile_achievements",
    "milestone_statistics",
]
