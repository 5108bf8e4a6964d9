# ws_platform/models.py
# WatchStats - catalog, profile and watch event entities
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from functools import cached_property
from datetime import date, datetime
from typing import Any

from ws_platform.timeutil import iso_day, iso_z, parse_day, parse_instant


def _int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def _opt_int(v: Any) -> int | None:
    try:
        return int(v) if v is not None and v != "" else None
    except (TypeError, ValueError):
        return None


def _str_list(v: Any) -> tuple[str, ...]:
    if isinstance(v, str):
        v = [x for x in v.split(",")]
    if not isinstance(v, Iterable):
        return ()
    out: list[str] = []
    for x in v:
        s = str(x or "").strip()
        if s and s not in out:
            out.append(s)
    return tuple(out)


# ---------- catalog

@dataclass(frozen=True)
class Episode:
    id: int
    show_id: int
    season_id: int
    season_number: int
    episode_number: int
    air_date: date | None = None
    runtime: int | None = None
    title: str = ""

    def aired(self, today: date) -> bool:
        return self.air_date is not None and self.air_date <= today

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], *, show_id: int, season_id: int, season_number: int) -> "Episode":
        return cls(
            id=_int(d.get("id")),
            show_id=_int(d.get("showId"), show_id),
            season_id=_int(d.get("seasonId"), season_id),
            season_number=_int(d.get("seasonNumber"), season_number),
            episode_number=_int(d.get("episodeNumber")),
            air_date=parse_day(d.get("airDate")),
            runtime=_opt_int(d.get("runtime")),
            title=str(d.get("title") or ""),
        )


@dataclass(frozen=True)
class Season:
    id: int
    show_id: int
    season_number: int
    number_of_episodes: int
    episodes: tuple[Episode, ...] = ()
    air_date: date | None = None

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], *, show_id: int) -> "Season":
        sid = _int(d.get("id"))
        num = _int(d.get("seasonNumber"))
        eps = tuple(
            sorted(
                (Episode.from_dict(e, show_id=show_id, season_id=sid, season_number=num) for e in d.get("episodes") or []),
                key=lambda e: (e.episode_number, e.id),
            )
        )
        return cls(
            id=sid,
            show_id=show_id,
            season_number=num,
            number_of_episodes=_int(d.get("numberOfEpisodes"), len(eps)),
            episodes=eps,
            air_date=parse_day(d.get("airDate")),
        )


@dataclass(frozen=True)
class Show:
    id: int
    title: str
    seasons: tuple[Season, ...] = ()
    genres: tuple[str, ...] = ()
    streaming_services: tuple[str, ...] = ()
    in_production: bool = False
    last_air_date: date | None = None
    release_date: date | None = None
    content_rating: str = ""

    @property
    def episodes(self) -> list[Episode]:
        return [e for s in self.seasons for e in s.episodes]

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Show":
        sid = _int(d.get("id"))
        seasons = tuple(
            sorted((Season.from_dict(s, show_id=sid) for s in d.get("seasons") or []), key=lambda s: s.season_number)
        )
        return cls(
            id=sid,
            title=str(d.get("title") or ""),
            seasons=seasons,
            genres=_str_list(d.get("genres")),
            streaming_services=_str_list(d.get("streamingServices")),
            in_production=bool(d.get("inProduction")),
            last_air_date=parse_day(d.get("lastAirDate")),
            release_date=parse_day(d.get("releaseDate")),
            content_rating=str(d.get("contentRating") or ""),
        )


@dataclass(frozen=True)
class Movie:
    id: int
    title: str
    tmdb_id: int = 0
    genres: tuple[str, ...] = ()
    streaming_services: tuple[str, ...] = ()
    release_date: date | None = None
    runtime: int | None = None
    content_rating: str = ""

    def released(self, today: date) -> bool:
        return self.release_date is not None and self.release_date <= today

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Movie":
        return cls(
            id=_int(d.get("id")),
            title=str(d.get("title") or ""),
            tmdb_id=_int(d.get("tmdbId")),
            genres=_str_list(d.get("genres")),
            streaming_services=_str_list(d.get("streamingServices")),
            release_date=parse_day(d.get("releaseDate")),
            runtime=_opt_int(d.get("runtime")),
            content_rating=str(d.get("contentRating") or d.get("mpaRating") or ""),
        )


@dataclass
class Catalog:
    shows: dict[int, Show] = field(default_factory=dict)
    movies: dict[int, Movie] = field(default_factory=dict)
    episodes: dict[int, Episode] = field(default_factory=dict)

    @classmethod
    def build(cls, shows: Iterable[Show], movies: Iterable[Movie]) -> "Catalog":
        cat = cls()
        for s in shows:
            cat.shows[s.id] = s
            for e in s.episodes:
                cat.episodes[e.id] = e
        for m in movies:
            cat.movies[m.id] = m
        return cat

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Catalog":
        return cls.build(
            (Show.from_dict(x) for x in d.get("shows") or []),
            (Movie.from_dict(x) for x in d.get("movies") or []),
        )

    @cached_property
    def digest(self) -> str:
        """Content hash; stores swap in a new Catalog on reload and never edit one in place."""
        blob = json.dumps(catalog_to_dict(self), sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(blob.encode("utf-8")).hexdigest()


# ---------- events and owners

@dataclass(frozen=True)
class WatchEvent:
    profile_id: int
    content_type: str          # "episode" | "movie"
    content_id: int
    watched_at: datetime
    show_id: int | None = None
    invalidated: bool = False

    @property
    def is_episode(self) -> bool:
        return self.content_type == "episode"

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], *, profile_id: int | None = None) -> "WatchEvent | None":
        ts = parse_instant(d.get("watchedAt"))
        typ = str(d.get("contentType") or "").strip().lower()
        if ts is None or typ not in ("episode", "movie"):
            return None
        return cls(
            profile_id=_int(d.get("profileId"), profile_id or 0),
            content_type=typ,
            content_id=_int(d.get("contentId")),
            watched_at=ts,
            show_id=_opt_int(d.get("showId")),
            invalidated=bool(d.get("invalidated")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "profileId": self.profile_id,
            "contentType": self.content_type,
            "contentId": self.content_id,
            "watchedAt": iso_z(self.watched_at),
        }
        if self.show_id is not None:
            out["showId"] = self.show_id
        if self.invalidated:
            out["invalidated"] = True
        return out


@dataclass(frozen=True)
class Favorite:
    content_id: int
    added_at: datetime | None = None

    @classmethod
    def from_dict(cls, d: Any) -> "Favorite":
        if isinstance(d, Mapping):
            return cls(content_id=_int(d.get("id") or d.get("contentId")), added_at=parse_instant(d.get("addedAt")))
        return cls(content_id=_int(d))


@dataclass
class Profile:
    id: int
    account_id: int
    name: str
    created_at: datetime | None = None
    shows: list[Favorite] = field(default_factory=list)
    movies: list[Favorite] = field(default_factory=list)
    events: list[WatchEvent] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], *, account_id: int) -> "Profile":
        pid = _int(d.get("id"))
        events = [WatchEvent.from_dict(e, profile_id=pid) for e in d.get("events") or []]
        return cls(
            id=pid,
            account_id=_int(d.get("accountId"), account_id),
            name=str(d.get("name") or ""),
            created_at=parse_instant(d.get("createdAt")),
            shows=[Favorite.from_dict(x) for x in d.get("shows") or []],
            movies=[Favorite.from_dict(x) for x in d.get("movies") or []],
            events=[e for e in events if e is not None],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "name": self.name,
            "createdAt": iso_z(self.created_at),
            "shows": [{"id": f.content_id, "addedAt": iso_z(f.added_at)} for f in self.shows],
            "movies": [{"id": f.content_id, "addedAt": iso_z(f.added_at)} for f in self.movies],
            "events": [e.to_dict() for e in self.events],
        }


@dataclass
class Account:
    id: int
    email: str = ""
    name: str = ""
    created_at: datetime | None = None
    email_verified: bool = False
    profiles: list[Profile] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Account":
        aid = _int(d.get("id"))
        return cls(
            id=aid,
            email=str(d.get("email") or ""),
            name=str(d.get("name") or ""),
            created_at=parse_instant(d.get("createdAt")),
            email_verified=bool(d.get("emailVerified")),
            profiles=[Profile.from_dict(p, account_id=aid) for p in d.get("profiles") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "createdAt": iso_z(self.created_at),
            "emailVerified": self.email_verified,
            "profiles": [p.to_dict() for p in self.profiles],
        }


def catalog_to_dict(cat: Catalog) -> dict[str, Any]:
    def _ep(e: Episode) -> dict[str, Any]:
        return {
            "id": e.id, "episodeNumber": e.episode_number, "seasonNumber": e.season_number,
            "airDate": iso_day(e.air_date) or None, "runtime": e.runtime, "title": e.title,
        }

    return {
        "shows": [
            {
                "id": s.id, "title": s.title, "genres": list(s.genres),
                "streamingServices": list(s.streaming_services), "inProduction": s.in_production,
                "lastAirDate": iso_day(s.last_air_date) or None, "releaseDate": iso_day(s.release_date) or None,
                "contentRating": s.content_rating,
                "seasons": [
                    {
                        "id": se.id, "seasonNumber": se.season_number, "numberOfEpisodes": se.number_of_episodes,
                        "airDate": iso_day(se.air_date) or None, "episodes": [_ep(e) for e in se.episodes],
                    }
                    for se in s.seasons
                ],
            }
            for s in cat.shows.values()
        ],
        "movies": [
            {
                "id": m.id, "title": m.title, "tmdbId": m.tmdb_id, "genres": list(m.genres),
                "streamingServices": list(m.streaming_services), "releaseDate": iso_day(m.release_date) or None,
                "runtime": m.runtime, "contentRating": m.content_rating,
            }
            for m in cat.movies.values()
        ],
    }


def valid_events(events: Iterable[WatchEvent], catalog: Catalog) -> list[WatchEvent]:
    """Drop invalidated events and fill in show ids; sorted chronologically."""
    out: list[WatchEvent] = []
    for e in events:
        if e.invalidated:
            continue
        if e.is_episode and e.show_id is None:
            ep = catalog.episodes.get(e.content_id)
            if ep is not None:
                e = replace(e, show_id=ep.show_id)
        out.append(e)
    out.sort(key=lambda e: (e.watched_at, e.profile_id, e.content_type, e.content_id))
    return out


__all__ = [
    "Episode",
    "Season",
    "Show",
    "Movie",
    "Catalog",
    "WatchEvent",
    "Favorite",
    "Profile",
    "Account",
    "catalog_to_dict",
    "valid_events",
]
