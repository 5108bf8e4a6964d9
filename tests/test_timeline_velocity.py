# WatchStats test scripts
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from _factories import NOW, aired, at, ev, make_movie, make_profile, make_show
from services.rollup import build_scope
from services.timeline import activity_timeline, seasonal_patterns
from services.velocity import trend_label, watching_velocity
from ws_platform.errors import MissingDataError
from ws_platform.models import Catalog

SHOW_1 = make_show(1, [aired(20)])
SHOW_2 = make_show(2, [aired(20)])
MOVIE = make_movie(50)
CATALOG = Catalog.build([SHOW_1, SHOW_2], [MOVIE])


def _ep(show, n: int):
    return show.episodes[n].id


def _scope(events, tz=timezone.utc, now=NOW):
    prof = make_profile(10, shows=[1, 2], movies=[50], events=events)
    return build_scope([prof], CATALOG, now, tz)


# ---------- timeline

def test_activity_timeline_is_sparse_and_ascending() -> None:
    events = [
        ev(10, _ep(SHOW_1, 0), at(0, 10)),
        ev(10, _ep(SHOW_1, 1), at(0, 11)),
        ev(10, _ep(SHOW_2, 0), at(0, 12)),
        ev(10, _ep(SHOW_1, 2), at(2, 9)),
        ev(10, 50, at(1, 21), "movie"),
    ]
    out = activity_timeline(_scope(events))

    assert out["dailyActivity"] == [
        {"date": "2026-06-13", "episodesWatched": 1, "showsWatched": 1},
        {"date": "2026-06-15", "episodesWatched": 3, "showsWatched": 2},
    ]
    assert out["weeklyActivity"] == [
        {"weekStart": "2026-06-08", "episodesWatched": 1},
        {"weekStart": "2026-06-15", "episodesWatched": 3},
    ]
    assert out["monthlyActivity"] == [{"month": "2026-06", "episodesWatched": 4, "moviesWatched": 1}]


def test_activity_timeline_buckets_in_configured_zone() -> None:
    # 02:00Z on the 15th is still the 14th four hours west of UTC
    tz = timezone(timedelta(hours=-4))
    events = [ev(10, _ep(SHOW_1, 0), datetime(2026, 6, 15, 2, 0, tzinfo=timezone.utc))]
    out = activity_timeline(_scope(events, tz=tz))
    assert [d["date"] for d in out["dailyActivity"]] == ["2026-06-14"]


def test_activity_timeline_drops_days_outside_window() -> None:
    events = [ev(10, _ep(SHOW_1, 0), at(45)), ev(10, _ep(SHOW_1, 1), at(1))]
    out = activity_timeline(_scope(events), {"timeline": {"daily_days": 30}})
    assert [d["date"] for d in out["dailyActivity"]] == ["2026-06-14"]
    assert sum(m["episodesWatched"] for m in out["monthlyActivity"]) == 2


def test_activity_timeline_needs_events() -> None:
    with pytest.raises(MissingDataError):
        activity_timeline(_scope([]))


def test_seasonal_patterns() -> None:
    march = datetime(2026, 3, 10, 20, 0, tzinfo=timezone.utc)
    events = [
        ev(10, _ep(SHOW_1, 0), march),
        ev(10, _ep(SHOW_1, 1), march + timedelta(days=1)),
        ev(10, _ep(SHOW_1, 2), march + timedelta(days=2)),
        ev(10, _ep(SHOW_2, 0), at(3)),
        ev(10, 50, at(2), "movie"),
    ]
    out = seasonal_patterns(_scope(events))

    assert list(out["viewingByMonth"]) == [
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ]
    assert out["viewingByMonth"]["March"] == 3
    assert out["viewingByMonth"]["June"] == 1
    assert out["viewingBySeason"] == {"spring": 3, "summer": 1, "fall": 0, "winter": 0}
    assert out["peakViewingMonth"] == "March"
    assert out["slowestViewingMonth"] == "January"


def test_seasonal_patterns_ignore_movies_only_history() -> None:
    with pytest.raises(MissingDataError):
        seasonal_patterns(_scope([ev(10, 50, at(2), "movie")]))


# ---------- velocity

def test_velocity_rates_over_window() -> None:
    events = [ev(10, _ep(SHOW_1, i), at(i + 1)) for i in range(9)]
    out = watching_velocity(_scope(events), {"velocity": {"window_days": 90}})

    assert out["averageEpisodesPerDay"] == 0.1
    assert out["episodesPerWeek"] == 0.7
    assert out["episodesPerMonth"] == 3.0
    # Saturday and Sunday tie at two each; the week starts on Monday
    assert out["mostActiveDay"] == "Saturday"
    assert out["mostActiveHour"] == 20
    assert out["velocityTrend"] == "increasing"


def test_velocity_trend_decreasing_and_stable() -> None:
    slowing = [ev(10, _ep(SHOW_1, i), at(50 + i)) for i in range(10)] + [ev(10, _ep(SHOW_2, 0), at(1))]
    assert watching_velocity(_scope(slowing))["velocityTrend"] == "decreasing"

    steady = [
        ev(10, _ep(SHOW_1, 0), at(1)),
        ev(10, _ep(SHOW_1, 1), at(2)),
        ev(10, _ep(SHOW_1, 2), at(50)),
        ev(10, _ep(SHOW_1, 3), at(51)),
    ]
    assert watching_velocity(_scope(steady))["velocityTrend"] == "stable"


def test_velocity_ignores_history_outside_window() -> None:
    with pytest.raises(MissingDataError):
        watching_velocity(_scope([ev(10, _ep(SHOW_1, 0), at(200))]))


def test_velocity_counts_episodes_only() -> None:
    events = [ev(10, 50, at(1), "movie"), ev(10, _ep(SHOW_1, 0), at(1))]
    out = watching_velocity(_scope(events), {"velocity": {"window_days": 10}})
    assert out["averageEpisodesPerDay"] == 0.1


@pytest.mark.parametrize(
    "recent, prior, expected",
    [
        (0.0, 0.0, "stable"),
        (1.0, 0.0, "increasing"),
        (1.05, 1.0, "stable"),
        (1.2, 1.0, "increasing"),
        (0.8, 1.0, "decreasing"),
    ],
)
def test_trend_label(recent: float, prior: float, expected: str) -> None:
    assert trend_label(recent, prior, 10.0) == expected
