# WatchStats test scripts
from __future__ import annotations

from datetime import timedelta

import pytest

from _factories import NOW, aired, at, ev, make_account, make_movie, make_profile, make_show, make_store, watch_episodes
from services.admin import AdminStatistics, engagement_score, risk_level
from ws_platform.errors import NotFoundError

DRAMA = make_show(1, [aired(6)], title="Drama Show", release=None)
COMEDY = make_show(2, [aired(12)], title="Comedy Show")
FILM = make_movie(50, title="Film")


def _admin() -> AdminStatistics:
    p1 = make_profile(10, shows=[1, 2], movies=[50],
                      events=watch_episodes(10, DRAMA, at(3)) + [ev(10, 50, at(2), "movie")])
    p2 = make_profile(11, shows=[2], events=watch_episodes(11, COMEDY, at(1), count=4))
    p3 = make_profile(12, 2, shows=[1])
    store = make_store(
        [DRAMA, COMEDY],
        [FILM],
        [make_account(1, p1, p2), make_account(2, p3), make_account(3, created=NOW - timedelta(days=3))],
    )
    return AdminStatistics(store, {}, clock=lambda: NOW)


@pytest.mark.parametrize(
    "idle, recent, expected",
    [(0, 20, 100.0), (30, 10, 50.0), (None, 0, 0.0), (90, 40, 50.0), (0, 0, 50.0)],
)
def test_engagement_score(idle, recent, expected) -> None:
    assert engagement_score(idle, recent) == expected


@pytest.mark.parametrize(
    "idle, score, expected",
    [(None, 0.0, "high"), (60, 99.0, "high"), (35, 80.0, "medium"), (10, 20.0, "medium"), (10, 80.0, "low")],
)
def test_risk_level(idle, score, expected) -> None:
    assert risk_level(idle, score, 30) == expected


def test_platform_overview() -> None:
    out = _admin().platform_overview()
    assert out["totalAccounts"] == 3
    assert out["activeAccounts"] == 1
    assert out["totalProfiles"] == 3
    assert out["totalShows"] == 2
    assert out["totalMovies"] == 1
    assert out["totalEpisodesWatched"] == 10
    assert out["totalMoviesWatched"] == 1
    assert out["averageProfilesPerAccount"] == 1.0
    assert out["averageEpisodesPerAccount"] == 10.0


def test_platform_trends() -> None:
    out = _admin().platform_trends(7)
    assert out["periodDays"] == 7
    assert out["newAccountsInPeriod"] == 1
    assert out["episodesWatchedInPeriod"] == 10
    assert out["moviesWatchedInPeriod"] == 1
    assert out["watchActivityTrend"] == 100.0
    assert [d["date"] for d in out["dailyActivity"]] == ["2026-06-12", "2026-06-13", "2026-06-14"]


def test_account_health_rows_and_distribution() -> None:
    out = _admin().account_health()
    assert out["totalAccounts"] == 3
    assert out["activeAccounts"] == 1
    assert out["inactiveAccounts"] == 2
    assert out["riskDistribution"] == {"low": 1, "medium": 0, "high": 2}
    assert out["atRiskAccounts"] == 2
    # lowest engagement first
    assert [r["accountId"] for r in out["accounts"]] == [2, 3, 1]
    top = out["accounts"][-1]
    assert top["engagementScore"] == 75.0
    assert top["recentEpisodesWatched"] == 10
    assert top["isAtRisk"] is False


def test_account_health_for_one_account() -> None:
    admin = _admin()
    row = admin.account_health_for(3)
    assert row["riskLevel"] == "high"
    assert row["daysSinceLastActivity"] == 3
    with pytest.raises(NotFoundError):
        admin.account_health_for(404)


def test_account_rankings() -> None:
    admin = _admin()
    out = admin.account_rankings("episodesWatched", limit=2)
    assert out["totalAccounts"] == 3
    assert [r["accountId"] for r in out["rankings"]] == [1, 2]
    assert out["rankings"][0]["totalEpisodesWatched"] == 10
    with pytest.raises(ValueError):
        admin.account_rankings("bogus")


def test_content_popularity() -> None:
    admin = _admin()
    shows = admin.content_popularity("show")["popularContent"]
    # both shows have two profiles; Drama has more watches
    assert [r["contentId"] for r in shows] == [1, 2]
    assert shows[0]["completionRate"] == 50.0
    assert shows[0]["totalWatchCount"] == 6
    assert shows[0]["accountCount"] == 2
    assert shows[0]["releaseYear"] is None

    movies = admin.content_popularity("movie")["popularContent"]
    assert movies == [{
        "contentId": 50, "title": "Film", "contentType": "movie", "accountCount": 1, "profileCount": 1,
        "totalWatchCount": 1, "completionRate": 100.0, "releaseYear": 2020,
    }]
    with pytest.raises(ValueError):
        admin.content_popularity("podcast")


def test_trending_content() -> None:
    out = _admin().trending_content(30, limit=10)
    rows = out["trendingContent"]
    assert [(r["contentType"], r["contentId"]) for r in rows] == [("show", 1), ("show", 2), ("movie", 50)]
    assert rows[0]["recentWatchCount"] == 6
    assert rows[0]["trendDirection"] == "rising"
    assert rows[0]["trendPercentage"] == 100.0


def test_content_engagement() -> None:
    admin = _admin()
    out = admin.content_engagement("show", 2)
    assert out["totalProfiles"] == 2
    assert out["totalAccounts"] == 1
    assert out["watchingProfiles"] == 1
    assert out["notStartedProfiles"] == 1
    assert out["completionRate"] == 0.0
    assert out["averageProgress"] == pytest.approx(16.665, abs=0.01)

    with pytest.raises(NotFoundError):
        admin.content_engagement("movie", 999)
    with pytest.raises(ValueError):
        admin.content_engagement("podcast", 1)


def test_dashboard_combines_sections() -> None:
    out = _admin().dashboard()
    assert set(out) == {"platformOverview", "recentTrends", "accountHealth", "topContent"}
    assert out["accountHealth"]["totalAccounts"] == 3
    assert [r["contentId"] for r in out["topContent"]["topMovies"]] == [50]
