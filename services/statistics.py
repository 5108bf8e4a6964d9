# services/statistics.py
# WatchStats - profile/account statistics composition and enhanced sections
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from _logging import log
from services.binge import binge_statistics
from services.cache import DerivationCache, fingerprint
from services.depth import content_depth
from services.milestones import milestone_statistics, watch_totals
from services.progress import (
    distribution,
    merge_episode_progress,
    merge_movie_statistics,
    merge_show_statistics,
    profile_progress,
)
from services.risk import abandonment_risk, content_discovery, time_to_watch, unaired_content
from services.rollup import WatchScope, build_scope, merge_scopes
from services.streaks import streak_statistics
from services.timeline import activity_timeline, seasonal_patterns
from services.velocity import watching_velocity
from ws_platform.config_base import section
from ws_platform.errors import MissingDataError, NotFoundError
from ws_platform.models import Account, Profile
from ws_platform.store import WatchEventStore
from ws_platform.timeutil import iso_z, local_day, zone_from_cfg
from ws_platform.watch_status import CAUGHT_UP, WatchStatus

PROFILE_SECTIONS = (
    "velocity",
    "timeline",
    "binge",
    "streak",
    "timeToWatch",
    "seasonal",
    "milestones",
    "contentDepth",
    "contentDiscovery",
    "abandonmentRisk",
    "unairedContent",
)
ACCOUNT_SECTIONS = PROFILE_SECTIONS + ("profileComparison",)


class SectionState(str, Enum):
    PRESENT = "present"
    NOT_REQUESTED = "not_requested"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class SectionResult:
    state: SectionState
    value: Any = None

    @classmethod
    def present(cls, value: Any) -> "SectionResult":
        return cls(SectionState.PRESENT, value)

    @classmethod
    def not_requested(cls) -> "SectionResult":
        return cls(SectionState.NOT_REQUESTED)

    @classmethod
    def insufficient(cls) -> "SectionResult":
        return cls(SectionState.INSUFFICIENT_DATA)

    def to_wire(self) -> Any:
        return self.value if self.state == SectionState.PRESENT else None


def parse_sections(raw: str | Iterable[str] | None, allowed: tuple[str, ...]) -> list[str]:
    """Requested section names in canonical order; empty/None means all of them."""
    if raw is None:
        return list(allowed)
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    wanted = {str(x).strip() for x in items if str(x).strip()}
    if not wanted:
        return list(allowed)
    unknown = wanted.difference(allowed)
    if unknown:
        log(f"ignoring unknown sections: {', '.join(sorted(unknown))}", level="DEBUG", module="STATS")
    return [s for s in allowed if s in wanted]


def _compose_sections(results: dict[str, SectionResult], head: dict[str, Any]) -> dict[str, Any]:
    out = dict(head)
    for name, res in results.items():
        out[name] = res.to_wire()
    out["sectionStatus"] = {name: res.state.value for name, res in results.items()}
    return out


class StatisticsComposer:
    """Builds profile and account statistics from one store snapshot per request."""

    def __init__(
        self,
        store: WatchEventStore,
        cfg: dict[str, Any] | None = None,
        *,
        cache: DerivationCache | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.cfg = cfg or {}
        self.cache = cache if cache is not None else DerivationCache.from_config(self.cfg)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.tz = zone_from_cfg(self.cfg)
        self.workers = max(1, int(section(self.cfg, "runtime").get("workers") or 4))
        subscribe = getattr(store, "subscribe", None)
        if callable(subscribe):
            subscribe(self.invalidate)

    # ---------- lookups

    def _profile(self, profile_id: int) -> Profile:
        prof = self.store.get_profile(profile_id)
        if prof is None:
            raise NotFoundError("profile", profile_id)
        return prof

    def _account(self, account_id: int) -> Account:
        acc = self.store.get_account(account_id)
        if acc is None:
            raise NotFoundError("account", account_id)
        return acc

    def invalidate(self, profile_id: int) -> None:
        self.cache.invalidate_profile(profile_id)

    def _cached(self, kind: str, entity_id: int, profiles: list[Profile], now: datetime, extra: Any, fn: Callable[[], Any]) -> Any:
        digest = fingerprint(profiles, self.store.catalog(), local_day(now, self.tz), extra)
        return self.cache.get_or_compute(kind, entity_id, digest, (p.id for p in profiles), fn)

    # ---------- scopes

    def profile_scope(self, profile: Profile, now: datetime | None = None) -> WatchScope:
        return build_scope([profile], self.store.catalog(), now or self.clock(), self.tz)

    def account_scopes(self, account: Account, now: datetime) -> list[WatchScope]:
        """Fan out per-profile rollups; returns only once every profile is done."""
        catalog = self.store.catalog()
        profiles = list(account.profiles)
        if not profiles:
            return []
        done: dict[int, WatchScope] = {}
        with ThreadPoolExecutor(max_workers=min(self.workers, len(profiles))) as ex:
            futs = {ex.submit(build_scope, [p], catalog, now, self.tz): p.id for p in profiles}
            for fut in as_completed(futs):
                done[futs[fut]] = fut.result()
        return [done[p.id] for p in profiles]

    # ---------- base statistics

    def get_profile_statistics(self, profile_id: int) -> dict[str, Any]:
        prof = self._profile(profile_id)
        now = self.clock()

        def build() -> dict[str, Any]:
            scope = self.profile_scope(prof, now)
            return {"profileId": prof.id, "profileName": prof.name, **profile_progress(scope)}

        return self._cached("profile", prof.id, [prof], now, None, build)

    def get_account_statistics(self, account_id: int) -> dict[str, Any]:
        acc = self._account(account_id)
        now = self.clock()

        def build() -> dict[str, Any]:
            parts = [profile_progress(s) for s in self.account_scopes(acc, now)]
            shows = {f.content_id for p in acc.profiles for f in p.shows}
            movies = {f.content_id for p in acc.profiles for f in p.movies}
            return {
                "accountId": acc.id,
                "profileCount": len(acc.profiles),
                "uniqueContent": {"showCount": len(shows), "movieCount": len(movies)},
                "showStatistics": merge_show_statistics([p["showStatistics"] for p in parts]),
                "movieStatistics": merge_movie_statistics([p["movieStatistics"] for p in parts]),
                "episodeStatistics": merge_episode_progress([p["episodeWatchProgress"] for p in parts]),
            }

        return self._cached("account", acc.id, list(acc.profiles), now, None, build)

    # ---------- enhanced sections

    def _section_runners(self, account: bool) -> dict[str, Callable[[WatchScope], Any]]:
        cfg = self.cfg
        return {
            "velocity": lambda s: watching_velocity(s, cfg),
            "timeline": lambda s: activity_timeline(s, cfg),
            "binge": lambda s: binge_statistics(s, cfg, with_profile=account),
            "streak": lambda s: streak_statistics(s, cfg),
            "timeToWatch": lambda s: time_to_watch(s, cfg),
            "seasonal": seasonal_patterns,
            "milestones": lambda s: milestone_statistics(s, cfg),
            "contentDepth": content_depth,
            "contentDiscovery": lambda s: content_discovery(s, cfg),
            "abandonmentRisk": lambda s: abandonment_risk(s, cfg),
            "unairedContent": unaired_content,
        }

    def run_sections(self, scope: WatchScope, names: list[str], allowed: tuple[str, ...], *, account: bool = False,
                     extra: dict[str, Callable[[WatchScope], Any]] | None = None) -> dict[str, SectionResult]:
        runners = self._section_runners(account)
        runners.update(extra or {})
        out: dict[str, SectionResult] = {}
        for name in allowed:
            if name not in names:
                out[name] = SectionResult.not_requested()
                continue
            try:
                out[name] = SectionResult.present(runners[name](scope))
            except MissingDataError as e:
                log(f"section {name}: insufficient data ({e})", level="DEBUG", module="STATS")
                out[name] = SectionResult.insufficient()
            except Exception as e:
                log(f"section {name} failed: {e}", level="ERROR", module="STATS")
                out[name] = SectionResult.insufficient()
        return out

    def get_enhanced_profile_statistics(self, profile_id: int, sections: str | Iterable[str] | None = None) -> dict[str, Any]:
        prof = self._profile(profile_id)
        names = parse_sections(sections, PROFILE_SECTIONS)
        now = self.clock()

        def build() -> dict[str, Any]:
            scope = self.profile_scope(prof, now)
            results = self.run_sections(scope, names, PROFILE_SECTIONS)
            return _compose_sections(results, {"profileId": prof.id, "profileName": prof.name})

        return self._cached("profile-enhanced", prof.id, [prof], now, names, build)

    def get_enhanced_account_statistics(self, account_id: int, sections: str | Iterable[str] | None = None) -> dict[str, Any]:
        acc = self._account(account_id)
        names = parse_sections(sections, ACCOUNT_SECTIONS)
        now = self.clock()

        def build() -> dict[str, Any]:
            scopes = self.account_scopes(acc, now)
            head = {"accountId": acc.id, "profileCount": len(acc.profiles)}
            if not scopes:
                empty = {n: (SectionResult.insufficient() if n in names else SectionResult.not_requested())
                         for n in ACCOUNT_SECTIONS}
                return _compose_sections(empty, head)
            union = merge_scopes(scopes)
            results = self.run_sections(
                union, names, ACCOUNT_SECTIONS, account=True,
                extra={"profileComparison": lambda s: profile_comparison(acc, scopes, self.cfg)},
            )
            return _compose_sections(results, head)

        return self._cached("account-enhanced", acc.id, list(acc.profiles), now, names, build)


# ---------- profile comparison

def _comparison_detail(scope: WatchScope, cfg: dict[str, Any]) -> dict[str, Any]:
    prof = scope.profiles[0]
    totals = watch_totals(scope, cfg)
    progress = profile_progress(scope)
    try:
        pace = watching_velocity(scope, cfg)
    except MissingDataError:
        pace = {"episodesPerWeek": 0.0, "mostActiveDay": ""}

    watched_genres = distribution(
        [t.show.genres for t in scope.shows if t.rollup.started]
        + [t.movie.genres for t in scope.movies if t.watched_at is not None]
    )
    services = distribution(
        [t.show.streaming_services for t in scope.shows] + [t.movie.streaming_services for t in scope.movies]
    )
    last = scope.events[-1].watched_at if scope.events else None
    return {
        "profileId": prof.id,
        "profileName": prof.name,
        "totalShows": len(scope.shows),
        "totalMovies": len(scope.movies),
        "episodesWatched": totals["episodes"],
        "moviesWatched": totals["movies"],
        "totalHoursWatched": totals["hours"],
        "showWatchProgress": progress["showStatistics"]["watchProgress"],
        "movieWatchProgress": progress["movieStatistics"]["watchProgress"],
        "topGenres": [{"genre": g, "count": n} for g, n in list(watched_genres.items())[:3]],
        "topServices": [{"service": s, "count": n} for s, n in list(services.items())[:3]],
        "episodesPerWeek": pace["episodesPerWeek"],
        "mostActiveDay": pace["mostActiveDay"],
        "lastActivityDate": iso_z(last),
        "currentlyWatchingCount": sum(1 for t in scope.shows if t.rollup.status == WatchStatus.WATCHING),
        "completedShowsCount": sum(1 for t in scope.shows if t.rollup.status in CAUGHT_UP),
    }


def profile_comparison(account: Account, scopes: list[WatchScope], cfg: dict[str, Any] | None = None) -> dict[str, Any]:
    cfg = cfg or {}
    if not scopes:
        raise MissingDataError(f"account {account.id} has no profiles")
    catalog = scopes[0].catalog

    show_watches: Counter[int] = Counter()
    movie_watches: Counter[int] = Counter()
    for s in scopes:
        for e in s.events:
            if e.is_episode and e.show_id is not None:
                show_watches[e.show_id] += 1
            elif not e.is_episode:
                movie_watches[e.content_id] += 1

    top_show = min(show_watches, key=lambda k: (-show_watches[k], k)) if show_watches else None
    top_movie = min(movie_watches, key=lambda k: (-movie_watches[k], k)) if movie_watches else None
    show_obj = catalog.shows.get(top_show) if top_show is not None else None
    movie_obj = catalog.movies.get(top_movie) if top_movie is not None else None

    return {
        "accountId": account.id,
        "profileCount": len(scopes),
        "profiles": [_comparison_detail(s, cfg) for s in scopes],
        "accountSummary": {
            "totalUniqueShows": len({t.show.id for s in scopes for t in s.shows}),
            "totalUniqueMovies": len({t.movie.id for s in scopes for t in s.movies}),
            "mostWatchedShow": (
                {"showId": top_show, "title": show_obj.title if show_obj else "", "watchCount": show_watches[top_show]}
                if top_show is not None else None
            ),
            "mostWatchedMovie": (
                {"movieId": top_movie, "title": movie_obj.title if movie_obj else "", "watchCount": movie_watches[top_movie]}
                if top_movie is not None else None
            ),
        },
    }


__all__ = [
    "PROFILE_SECTIONS",
    "ACCOUNT_SECTIONS",
    "SectionState",
    "SectionResult",
    "StatisticsComposer",
    "parse_sections",
    "profile_comparison",
]
