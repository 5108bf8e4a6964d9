# services/admin.py
# WatchStats - platform-wide statistics for administrators
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from services.milestones import watch_totals
from services.rollup import WatchScope, build_scope
from ws_platform.config_base import section
from ws_platform.errors import NotFoundError
from ws_platform.models import Account
from ws_platform.store import WatchEventStore
from ws_platform.timeutil import change_pct, days_between, iso_day, iso_z, local_day, mean, percent, zone_from_cfg
from ws_platform.watch_status import CAUGHT_UP, WatchStatus

RANKING_METRICS = ("episodesWatched", "moviesWatched", "hoursWatched", "engagement")
CONTENT_TYPES = ("show", "movie", "all")

# engagement score knobs
RECENCY_DECAY_DAYS = 60
VOLUME_TARGET_EPISODES = 20


@dataclass(frozen=True)
class AccountFacts:
    account: Account
    scope: WatchScope
    episodes: int
    movies: int
    hours: float
    recent_episodes: int
    last_activity: datetime | None
    idle_days: int | None


def engagement_score(idle_days: int | None, recent_episodes: int) -> float:
    recency = 0.0 if idle_days is None else max(0.0, 1.0 - idle_days / RECENCY_DECAY_DAYS)
    volume = min(1.0, recent_episodes / VOLUME_TARGET_EPISODES)
    return round(50.0 * recency + 50.0 * volume, 2)


def risk_level(idle_days: int | None, score: float, active_days: int = 30) -> str:
    if idle_days is None or idle_days >= RECENCY_DECAY_DAYS:
        return "high"
    if idle_days >= active_days or score < 40:
        return "medium"
    return "low"


class AdminStatistics:
    def __init__(
        self,
        store: WatchEventStore,
        cfg: dict[str, Any] | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.cfg = cfg or {}
        self.ac = section(self.cfg, "admin")
        self.rc = section(self.cfg, "risk")
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.tz = zone_from_cfg(self.cfg)

    # ---------- snapshot

    def _facts(self, acc: Account, now: datetime) -> AccountFacts:
        scope = build_scope(acc.profiles, self.store.catalog(), now, self.tz)
        totals = watch_totals(scope, self.cfg)
        cutoff = now - timedelta(days=int(self.ac["active_days"]))
        recent = sum(1 for e in scope.episode_events if cutoff <= e.watched_at <= now)
        last = scope.events[-1].watched_at if scope.events else None
        return AccountFacts(
            account=acc,
            scope=scope,
            episodes=totals["episodes"],
            movies=totals["movies"],
            hours=totals["hours"],
            recent_episodes=recent,
            last_activity=last,
            idle_days=days_between(last, now) if last else None,
        )

    def _snapshot(self) -> tuple[datetime, list[AccountFacts]]:
        now = self.clock()
        return now, [self._facts(a, now) for a in self.store.list_accounts()]

    def _is_active(self, f: AccountFacts) -> bool:
        return f.idle_days is not None and f.idle_days < int(self.ac["active_days"])

    # ---------- platform

    def _overview(self, facts: list[AccountFacts]) -> dict[str, Any]:
        active = [f for f in facts if self._is_active(f)]
        profiles = sum(len(f.account.profiles) for f in facts)
        episodes = sum(f.episodes for f in facts)
        return {
            "totalAccounts": len(facts),
            "activeAccounts": len(active),
            "totalProfiles": profiles,
            "totalShows": len({t.show.id for f in facts for t in f.scope.shows}),
            "totalMovies": len({t.movie.id for f in facts for t in f.scope.movies}),
            "totalEpisodesWatched": episodes,
            "totalMoviesWatched": sum(f.movies for f in facts),
            "totalHoursWatched": round(sum(f.hours for f in facts), 2),
            "averageProfilesPerAccount": round(profiles / len(facts), 2) if facts else 0.0,
            "averageEpisodesPerAccount": round(episodes / len(active), 2) if active else 0.0,
        }

    def platform_overview(self) -> dict[str, Any]:
        _, facts = self._snapshot()
        return self._overview(facts)

    def _trends(self, now: datetime, facts: list[AccountFacts], days: int) -> dict[str, Any]:
        days = max(1, int(days))
        start = now - timedelta(days=days)
        prev_start = start - timedelta(days=days)

        cur_events = prev_events = 0
        cur_dau: dict[str, set[int]] = defaultdict(set)
        prev_dau: dict[str, set[int]] = defaultdict(set)
        daily: dict[str, list[int]] = defaultdict(lambda: [0, 0])
        episodes = movies = 0
        for f in facts:
            for e in f.scope.events:
                key = iso_day(local_day(e.watched_at, self.tz))
                if start < e.watched_at <= now:
                    cur_events += 1
                    cur_dau[key].add(f.account.id)
                    slot = daily[key]
                    if e.is_episode:
                        episodes += 1
                        slot[0] += 1
                    else:
                        movies += 1
                        slot[1] += 1
                elif prev_start < e.watched_at <= start:
                    prev_events += 1
                    prev_dau[key].add(f.account.id)

        cur_active_days = sum(len(v) for v in cur_dau.values())
        prev_active_days = sum(len(v) for v in prev_dau.values())
        return {
            "periodDays": days,
            "newAccountsInPeriod": sum(
                1 for f in facts if f.account.created_at is not None and start < f.account.created_at <= now
            ),
            "episodesWatchedInPeriod": episodes,
            "moviesWatchedInPeriod": movies,
            "dailyActiveUsersTrend": change_pct(cur_active_days / days, prev_active_days / days),
            "watchActivityTrend": change_pct(cur_events, prev_events),
            "dailyActivity": [
                {"date": k, "activeAccounts": len(cur_dau[k]), "episodesWatched": daily[k][0], "moviesWatched": daily[k][1]}
                for k in sorted(daily)
            ],
        }

    def platform_trends(self, days: int | None = None) -> dict[str, Any]:
        now, facts = self._snapshot()
        return self._trends(now, facts, days or int(self.ac["trend_days"]))

    # ---------- accounts

    def _health_row(self, f: AccountFacts) -> dict[str, Any]:
        score = engagement_score(f.idle_days, f.recent_episodes)
        level = risk_level(f.idle_days, score, int(self.ac["active_days"]))
        return {
            "accountId": f.account.id,
            "accountEmail": f.account.email,
            "engagementScore": score,
            "daysSinceLastActivity": f.idle_days if f.idle_days is not None else days_between(
                f.account.created_at or f.scope.now, f.scope.now
            ),
            "isAtRisk": level != "low",
            "riskLevel": level,
            "totalEpisodesWatched": f.episodes,
            "recentEpisodesWatched": f.recent_episodes,
            "accountCreatedAt": iso_z(f.account.created_at),
            "lastActivityDate": iso_z(f.last_activity),
            "profileCount": len(f.account.profiles),
            "emailVerified": f.account.email_verified,
        }

    def _health(self, facts: list[AccountFacts]) -> dict[str, Any]:
        rows = [self._health_row(f) for f in facts]
        rows.sort(key=lambda r: (r["engagementScore"], r["accountId"]))
        dist = {"low": 0, "medium": 0, "high": 0}
        for r in rows:
            dist[r["riskLevel"]] += 1
        active = sum(1 for f in facts if self._is_active(f))
        return {
            "totalAccounts": len(rows),
            "activeAccounts": active,
            "inactiveAccounts": len(rows) - active,
            "atRiskAccounts": sum(1 for r in rows if r["isAtRisk"]),
            "averageEngagementScore": mean([r["engagementScore"] for r in rows]),
            "riskDistribution": dist,
            "accounts": rows,
        }

    def account_health(self) -> dict[str, Any]:
        _, facts = self._snapshot()
        return self._health(facts)

    def account_health_for(self, account_id: int) -> dict[str, Any]:
        acc = self.store.get_account(account_id)
        if acc is None:
            raise NotFoundError("account", account_id)
        return self._health_row(self._facts(acc, self.clock()))

    def account_rankings(self, metric: str = "episodesWatched", limit: int = 50) -> dict[str, Any]:
        if metric not in RANKING_METRICS:
            raise ValueError(f"unknown ranking metric: {metric}")
        _, facts = self._snapshot()
        rows = []
        for f in facts:
            rows.append({
                "accountId": f.account.id,
                "accountEmail": f.account.email,
                "accountName": f.account.name,
                "profileCount": len(f.account.profiles),
                "totalEpisodesWatched": f.episodes,
                "totalMoviesWatched": f.movies,
                "totalHoursWatched": f.hours,
                "engagementScore": engagement_score(f.idle_days, f.recent_episodes),
                "lastActivityDate": iso_z(f.last_activity),
            })
        field = {
            "episodesWatched": "totalEpisodesWatched",
            "moviesWatched": "totalMoviesWatched",
            "hoursWatched": "totalHoursWatched",
            "engagement": "engagementScore",
        }[metric]
        rows.sort(key=lambda r: (-r[field], r["accountId"]))
        return {"rankingMetric": metric, "totalAccounts": len(rows), "rankings": rows[: max(1, int(limit))]}

    # ---------- content

    def _content_rows(self, facts: list[AccountFacts], content_type: str) -> list[dict[str, Any]]:
        catalog = self.store.catalog()
        acc_ids: dict[tuple[str, int], set[int]] = defaultdict(set)
        prof_ids: dict[tuple[str, int], set[int]] = defaultdict(set)
        done: dict[tuple[str, int], int] = defaultdict(int)
        watches: dict[tuple[str, int], int] = defaultdict(int)

        for f in facts:
            if content_type in ("show", "all"):
                for t in f.scope.shows:
                    k = ("show", t.show.id)
                    acc_ids[k].add(f.account.id)
                    prof_ids[k].add(t.profile.id)
                    if t.rollup.status in CAUGHT_UP:
                        done[k] += 1
            if content_type in ("movie", "all"):
                for t in f.scope.movies:
                    k = ("movie", t.movie.id)
                    acc_ids[k].add(f.account.id)
                    prof_ids[k].add(t.profile.id)
                    if t.watched_at is not None:
                        done[k] += 1
        for f in facts:
            for e in f.scope.events:
                k = ("show", e.show_id) if e.is_episode else ("movie", e.content_id)
                if k in prof_ids:
                    watches[k] += 1

        rows = []
        for (typ, cid), profs in prof_ids.items():
            item = catalog.shows.get(cid) if typ == "show" else catalog.movies.get(cid)
            released = getattr(item, "release_date", None)
            rows.append({
                "contentId": cid,
                "title": item.title if item else "",
                "contentType": typ,
                "accountCount": len(acc_ids[(typ, cid)]),
                "profileCount": len(profs),
                "totalWatchCount": watches[(typ, cid)],
                "completionRate": percent(done[(typ, cid)], len(profs)),
                "releaseYear": released.year if released else None,
            })
        rows.sort(key=lambda r: (-r["profileCount"], -r["totalWatchCount"], r["contentType"], r["contentId"]))
        return rows

    def content_popularity(self, content_type: str = "all", limit: int = 20) -> dict[str, Any]:
        if content_type not in CONTENT_TYPES:
            raise ValueError(f"unknown content type: {content_type}")
        _, facts = self._snapshot()
        rows = self._content_rows(facts, content_type)[: max(1, int(limit))]
        return {"contentType": content_type, "resultCount": len(rows), "popularContent": rows}

    def trending_content(self, days: int | None = None, limit: int = 20) -> dict[str, Any]:
        now, facts = self._snapshot()
        days = max(1, int(days or self.ac["trend_days"]))
        start = now - timedelta(days=days)
        prev_start = start - timedelta(days=days)
        threshold = float(self.ac["trend_threshold_pct"])
        catalog = self.store.catalog()

        adds: dict[tuple[str, int], int] = defaultdict(int)
        cur: dict[tuple[str, int], int] = defaultdict(int)
        prev: dict[tuple[str, int], int] = defaultdict(int)
        for f in facts:
            for t in f.scope.shows:
                if t.favorite.added_at is not None and start < t.favorite.added_at <= now:
                    adds[("show", t.show.id)] += 1
            for t in f.scope.movies:
                if t.favorite.added_at is not None and start < t.favorite.added_at <= now:
                    adds[("movie", t.movie.id)] += 1
            for e in f.scope.events:
                if e.is_episode and e.show_id is None:
                    continue
                k = ("show", e.show_id) if e.is_episode else ("movie", e.content_id)
                if start < e.watched_at <= now:
                    cur[k] += 1
                elif prev_start < e.watched_at <= start:
                    prev[k] += 1

        rows = []
        for k in set(adds) | set(cur) | set(prev):
            typ, cid = k
            item = catalog.shows.get(cid) if typ == "show" else catalog.movies.get(cid)
            pct = change_pct(cur[k], prev[k])
            direction = "rising" if pct > threshold else ("falling" if pct < -threshold else "stable")
            rows.append({
                "contentId": cid,
                "title": item.title if item else "",
                "contentType": typ,
                "newAdditions": adds[k],
                "recentWatchCount": cur[k],
                "trendPercentage": pct,
                "trendDirection": direction,
            })
        rows.sort(key=lambda r: (-r["recentWatchCount"], -r["trendPercentage"], r["contentType"], r["contentId"]))
        rows = rows[: max(1, int(limit))]
        return {"periodDays": days, "resultCount": len(rows), "trendingContent": rows}

    def content_engagement(self, content_type: str, content_id: int) -> dict[str, Any]:
        if content_type not in ("show", "movie"):
            raise ValueError(f"unknown content type: {content_type}")
        catalog = self.store.catalog()
        item = catalog.shows.get(int(content_id)) if content_type == "show" else catalog.movies.get(int(content_id))
        if item is None:
            raise NotFoundError(content_type, content_id)

        now, facts = self._snapshot()
        idle_floor = int(self.rc["abandonment_days"])
        accounts: set[int] = set()
        profiles = completed = watching = not_started = abandoned = 0
        to_complete: list[float] = []
        progress: list[float] = []

        for f in facts:
            if content_type == "show":
                for t in f.scope.shows:
                    if t.show.id != item.id or t.rollup.stale:
                        continue
                    r = t.rollup
                    accounts.add(f.account.id)
                    profiles += 1
                    progress.append(r.percent_complete)
                    if r.status in CAUGHT_UP:
                        completed += 1
                        if r.first_watched_at and r.last_watched_at:
                            to_complete.append(float(days_between(r.first_watched_at, r.last_watched_at)))
                    elif r.status == WatchStatus.WATCHING:
                        if r.last_watched_at is not None and days_between(r.last_watched_at, now) >= idle_floor:
                            abandoned += 1
                        else:
                            watching += 1
                    else:
                        not_started += 1
            else:
                for t in f.scope.movies:
                    if t.movie.id != item.id:
                        continue
                    accounts.add(f.account.id)
                    profiles += 1
                    if t.watched_at is not None:
                        completed += 1
                        progress.append(100.0)
                        if t.favorite.added_at is not None:
                            to_complete.append(float(days_between(t.favorite.added_at, t.watched_at)))
                    else:
                        not_started += 1
                        progress.append(0.0)

        return {
            "contentId": item.id,
            "title": item.title,
            "contentType": content_type,
            "totalAccounts": len(accounts),
            "totalProfiles": profiles,
            "completedProfiles": completed,
            "watchingProfiles": watching,
            "notStartedProfiles": not_started,
            "abandonedProfiles": abandoned,
            "completionRate": percent(completed, profiles),
            "abandonmentRate": percent(abandoned, profiles),
            "averageDaysToComplete": mean(to_complete),
            "averageProgress": mean(progress),
        }

    # ---------- dashboard

    def dashboard(self) -> dict[str, Any]:
        now, facts = self._snapshot()
        health = self._health(facts)
        top = int(self.ac["top_limit"])
        return {
            "platformOverview": self._overview(facts),
            "recentTrends": self._trends(now, facts, int(self.ac["trend_days"])),
            "accountHealth": {
                "totalAccounts": health["totalAccounts"],
                "activeAccounts": health["activeAccounts"],
                "atRiskAccounts": health["atRiskAccounts"],
                "averageEngagementScore": health["averageEngagementScore"],
            },
            "topContent": {
                "topShows": self._content_rows(facts, "show")[:top],
                "topMovies": self._content_rows(facts, "movie")[:top],
            },
        }


__all__ = [
    "AdminStatistics",
    "AccountFacts",
    "engagement_score",
    "risk_level",
    "RANKING_METRICS",
    "CONTENT_TYPES",
]
