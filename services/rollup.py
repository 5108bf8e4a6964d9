# services/rollup.py
# WatchStats - episode/season/show watch status rollup
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any

from _logging import log
from ws_platform.errors import InconsistentStateError
from ws_platform.models import Catalog, Episode, Favorite, Movie, Profile, Season, Show, WatchEvent, valid_events
from ws_platform.timeutil import iso_day, iso_z, local_day, percent
from ws_platform.watch_status import BinaryWatchStatus, WatchStatus


@dataclass(frozen=True)
class EpisodeRef:
    episode_id: int
    season_number: int
    episode_number: int
    title: str = ""
    air_date: date | None = None

    @classmethod
    def of(cls, e: Episode) -> "EpisodeRef":
        return cls(e.id, e.season_number, e.episode_number, e.title, e.air_date)

    def to_dict(self) -> dict[str, Any]:
        return {
            "episodeId": self.episode_id,
            "seasonNumber": self.season_number,
            "episodeNumber": self.episode_number,
            "title": self.title,
            "airDate": iso_day(self.air_date) or None,
        }


@dataclass(frozen=True)
class SeasonRollup:
    season_id: int
    season_number: int
    status: WatchStatus | None
    aired_episodes: int
    watched_episodes: int
    unaired_episodes: int
    stale: bool = False
    reason: str = ""

    @property
    def percent_complete(self) -> float:
        return percent(self.watched_episodes, self.aired_episodes)


@dataclass(frozen=True)
class ShowRollup:
    show_id: int
    title: str
    status: WatchStatus | None
    in_production: bool
    seasons: tuple[SeasonRollup, ...] = ()
    aired_episodes: int = 0
    watched_episodes: int = 0
    unaired_episodes: int = 0
    last_watched: EpisodeRef | None = None
    next_to_watch: EpisodeRef | None = None
    first_watched_at: datetime | None = None
    last_watched_at: datetime | None = None
    stale: bool = False
    reason: str = ""
    watched_at: Mapping[int, datetime] = field(default_factory=dict, compare=False, repr=False)

    @property
    def percent_complete(self) -> float:
        return percent(self.watched_episodes, self.aired_episodes)

    @property
    def started(self) -> bool:
        return self.watched_episodes > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "showId": self.show_id,
            "title": self.title,
            "status": self.status.value if self.status else None,
            "stale": self.stale,
            "airedEpisodes": self.aired_episodes,
            "watchedEpisodes": self.watched_episodes,
            "unairedEpisodes": self.unaired_episodes,
            "lastWatched": self.last_watched.to_dict() if self.last_watched else None,
            "nextToWatch": self.next_to_watch.to_dict() if self.next_to_watch else None,
            "lastWatchedAt": iso_z(self.last_watched_at),
            "seasons": [
                {
                    "seasonId": s.season_id,
                    "seasonNumber": s.season_number,
                    "status": s.status.value if s.status else None,
                    "episodesWatched": s.watched_episodes,
                    "episodesTotal": s.aired_episodes,
                    "stale": s.stale,
                }
                for s in self.seasons
            ],
        }


# ---------- pure status rules

def episode_status(episode: Episode, watched: Mapping[int, Any], today: date) -> BinaryWatchStatus:
    if episode.id in watched:
        return BinaryWatchStatus.WATCHED
    if not episode.aired(today):
        raise ValueError(f"episode {episode.id} has not aired; it has no watch status")
    return BinaryWatchStatus.NOT_WATCHED


def season_status(aired: int, watched: int, still_airing: bool) -> WatchStatus:
    if aired <= 0:
        return WatchStatus.UNAIRED
    if watched <= 0:
        return WatchStatus.NOT_WATCHED
    if watched >= aired and still_airing:
        return WatchStatus.UP_TO_DATE
    if watched >= aired:
        return WatchStatus.WATCHED
    return WatchStatus.WATCHING


def fold_show_status(seasons: Iterable[WatchStatus], in_production: bool) -> WatchStatus:
    statuses = list(seasons)
    aired = [s for s in statuses if s != WatchStatus.UNAIRED]
    if not aired:
        return WatchStatus.UNAIRED
    if all(s == WatchStatus.NOT_WATCHED for s in aired):
        return WatchStatus.NOT_WATCHED
    if all(s in (WatchStatus.WATCHED, WatchStatus.UP_TO_DATE) for s in aired):
        more_to_come = (
            in_production
            or WatchStatus.UP_TO_DATE in aired
            or len(aired) < len(statuses)
        )
        return WatchStatus.UP_TO_DATE if more_to_come else WatchStatus.WATCHED
    return WatchStatus.WATCHING


# ---------- rollups

def _season_problem(season: Season, show: Show) -> str:
    numbers = [e.episode_number for e in season.episodes]
    if len(numbers) != len(set(numbers)):
        return "duplicate episode numbers"
    if not show.in_production and len(season.episodes) < season.number_of_episodes:
        return f"season {season.season_number} records {len(season.episodes)} of {season.number_of_episodes} episodes"
    return ""


def rollup_season(season: Season, show: Show, watched: Mapping[int, Any], today: date) -> SeasonRollup:
    problem = _season_problem(season, show)
    aired_eps = [e for e in season.episodes if e.aired(today)]
    unaired = len(season.episodes) - len(aired_eps)
    n_watched = sum(1 for e in aired_eps if episode_status(e, watched, today) == BinaryWatchStatus.WATCHED)
    if problem:
        return SeasonRollup(season.id, season.season_number, None, len(aired_eps), n_watched, unaired, True, problem)
    still_airing = unaired > 0 or (show.in_production and len(season.episodes) < season.number_of_episodes)
    return SeasonRollup(
        season.id,
        season.season_number,
        season_status(len(aired_eps), n_watched, still_airing),
        len(aired_eps),
        n_watched,
        unaired,
    )


def watched_map(events: Iterable[WatchEvent]) -> dict[int, datetime]:
    """episode id -> latest watch time (valid episode events only)."""
    out: dict[int, datetime] = {}
    for e in events:
        if e.invalidated or not e.is_episode:
            continue
        prev = out.get(e.content_id)
        if prev is None or e.watched_at > prev:
            out[e.content_id] = e.watched_at
    return out


def rollup_show(show: Show, events: Iterable[WatchEvent], today: date) -> ShowRollup:
    own = {e.id for e in show.episodes}
    mine = [e for e in events if not e.invalidated and e.is_episode and e.content_id in own]
    watched = watched_map(mine)

    seasons = tuple(rollup_season(s, show, watched, today) for s in show.seasons)
    aired = sum(s.aired_episodes for s in seasons)
    n_watched = sum(s.watched_episodes for s in seasons)
    unaired = sum(s.unaired_episodes for s in seasons)

    last_ref: EpisodeRef | None = None
    next_ref: EpisodeRef | None = None
    if watched:
        last_id = max(watched, key=lambda k: (watched[k], k))
        last_ep = next(e for e in show.episodes if e.id == last_id)
        last_ref = EpisodeRef.of(last_ep)
    for e in show.episodes:
        if e.aired(today) and e.id not in watched:
            next_ref = EpisodeRef.of(e)
            break

    first_at = min((e.watched_at for e in mine), default=None)
    last_at = max((e.watched_at for e in mine), default=None)

    stale = [s for s in seasons if s.stale]
    if stale:
        err = InconsistentStateError(show.id, stale[0].reason)
        log(f"rollup stale: {err}", level="WARN", module="ROLLUP")
        status = None
    else:
        status = fold_show_status((s.status for s in seasons if s.status is not None), show.in_production)

    return ShowRollup(
        show_id=show.id,
        title=show.title,
        status=status,
        in_production=show.in_production,
        seasons=seasons,
        aired_episodes=aired,
        watched_episodes=n_watched,
        unaired_episodes=unaired,
        last_watched=last_ref,
        next_to_watch=next_ref,
        first_watched_at=first_at,
        last_watched_at=last_at,
        stale=bool(stale),
        reason=stale[0].reason if stale else "",
        watched_at=watched,
    )


def rollup_profile(profile: Profile, catalog: Catalog, events: list[WatchEvent], today: date) -> dict[int, ShowRollup]:
    """Rollups for every favorited show that exists in the catalog, keyed by show id."""
    out: dict[int, ShowRollup] = {}
    for fav in profile.shows:
        show = catalog.shows.get(fav.content_id)
        if show is None:
            log(f"profile {profile.id}: show {fav.content_id} missing from catalog", level="DEBUG", module="ROLLUP")
            continue
        out[show.id] = rollup_show(show, events, today)
    return out


# ---------- scope: one profile, or the union of an account's profiles

@dataclass(frozen=True)
class TrackedShow:
    profile: Profile
    show: Show
    favorite: Favorite
    rollup: ShowRollup


@dataclass(frozen=True)
class TrackedMovie:
    profile: Profile
    movie: Movie
    favorite: Favorite
    watched_at: datetime | None   # first valid watch, None when unwatched

    @property
    def status(self) -> BinaryWatchStatus:
        return BinaryWatchStatus.WATCHED if self.watched_at is not None else BinaryWatchStatus.NOT_WATCHED


@dataclass(frozen=True)
class WatchScope:
    """Everything the analyzers read: events, favorites and rollups for one or more profiles."""

    profiles: tuple[Profile, ...]
    catalog: Catalog
    events: tuple[WatchEvent, ...]
    shows: tuple[TrackedShow, ...]
    movies: tuple[TrackedMovie, ...]
    now: datetime
    tz: tzinfo

    @property
    def today(self) -> date:
        return local_day(self.now, self.tz)

    def days_since(self, ts: datetime) -> int:
        """Local calendar days from ts to today; fixed for the whole day."""
        return max(0, (self.today - local_day(ts, self.tz)).days)

    @property
    def episode_events(self) -> list[WatchEvent]:
        return [e for e in self.events if e.is_episode]

    @property
    def movie_events(self) -> list[WatchEvent]:
        return [e for e in self.events if not e.is_episode]

    @property
    def created_at(self) -> datetime | None:
        return min((p.created_at for p in self.profiles if p.created_at), default=None)

    def profile_name(self, profile_id: int) -> str:
        for p in self.profiles:
            if p.id == profile_id:
                return p.name
        return ""

    def for_profile(self, profile_id: int) -> "WatchScope":
        return WatchScope(
            profiles=tuple(p for p in self.profiles if p.id == profile_id),
            catalog=self.catalog,
            events=tuple(e for e in self.events if e.profile_id == profile_id),
            shows=tuple(t for t in self.shows if t.profile.id == profile_id),
            movies=tuple(t for t in self.movies if t.profile.id == profile_id),
            now=self.now,
            tz=self.tz,
        )


def build_scope(profiles: Iterable[Profile], catalog: Catalog, now: datetime, tz: tzinfo) -> WatchScope:
    profs = tuple(profiles)
    today = local_day(now, tz)
    events: list[WatchEvent] = []
    shows: list[TrackedShow] = []
    movies: list[TrackedMovie] = []
    for p in profs:
        mine = valid_events(p.events, catalog)
        events.extend(mine)
        rollups = rollup_profile(p, catalog, mine, today)
        for fav in p.shows:
            r = rollups.get(fav.content_id)
            if r is not None:
                shows.append(TrackedShow(p, catalog.shows[fav.content_id], fav, r))
        first_movie: dict[int, datetime] = {}
        for e in mine:
            if not e.is_episode and e.content_id not in first_movie:
                first_movie[e.content_id] = e.watched_at
        for fav in p.movies:
            m = catalog.movies.get(fav.content_id)
            if m is None:
                log(f"profile {p.id}: movie {fav.content_id} missing from catalog", level="DEBUG", module="ROLLUP")
                continue
            movies.append(TrackedMovie(p, m, fav, first_movie.get(m.id)))
    events.sort(key=lambda e: (e.watched_at, e.profile_id, e.content_type, e.content_id))
    return WatchScope(profs, catalog, tuple(events), tuple(shows), tuple(movies), now, tz)


def merge_scopes(scopes: Iterable[WatchScope]) -> WatchScope:
    """Union of per-profile scopes; all of them must share the catalog and clock."""
    parts = list(scopes)
    if not parts:
        raise ValueError("merge_scopes needs at least one scope")
    first = parts[0]
    events = sorted(
        (e for s in parts for e in s.events),
        key=lambda e: (e.watched_at, e.profile_id, e.content_type, e.content_id),
    )
    return WatchScope(
        profiles=tuple(p for s in parts for p in s.profiles),
        catalog=first.catalog,
        events=tuple(events),
        shows=tuple(t for s in parts for t in s.shows),
        movies=tuple(t for s in parts for t in s.movies),
        now=first.now,
        tz=first.tz,
    )


__all__ = [
    "EpisodeRef",
    "SeasonRollup",
    "ShowRollup",
    "TrackedShow",
    "TrackedMovie",
    "WatchScope",
    "episode_status",
    "season_status",
    "fold_show_status",
    "rollup_season",
    "rollup_show",
    "rollup_profile",
    "build_scope",
    "merge_scopes",
    "watched_map",
]
