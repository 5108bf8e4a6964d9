# WatchStats test scripts
from __future__ import annotations

from datetime import timedelta

import pytest

from _factories import FUTURE, NOW, TODAY, aired, at, ev, make_show, unaired
from services.rollup import episode_status, fold_show_status, rollup_show, season_status, watched_map
from ws_platform.models import Episode, Season, Show, WatchEvent
from ws_platform.watch_status import BinaryWatchStatus, WatchStatus, narrow_binary, widen

W = WatchStatus


@pytest.mark.parametrize(
    "aired_n, watched, airing, expected",
    [
        (0, 0, True, W.UNAIRED),
        (0, 0, False, W.UNAIRED),
        (10, 0, False, W.NOT_WATCHED),
        (10, 0, True, W.NOT_WATCHED),
        (10, 4, False, W.WATCHING),
        (10, 4, True, W.WATCHING),
        (10, 10, False, W.WATCHED),
        (10, 10, True, W.UP_TO_DATE),
    ],
)
def test_season_status_precedence(aired_n: int, watched: int, airing: bool, expected: WatchStatus) -> None:
    assert season_status(aired_n, watched, airing) == expected


@pytest.mark.parametrize(
    "seasons, in_production, expected",
    [
        ([W.UNAIRED, W.UNAIRED], False, W.UNAIRED),
        ([W.NOT_WATCHED, W.NOT_WATCHED], False, W.NOT_WATCHED),
        ([W.NOT_WATCHED, W.UNAIRED], True, W.NOT_WATCHED),
        ([W.WATCHED, W.WATCHED], False, W.WATCHED),
        ([W.WATCHED, W.WATCHED], True, W.UP_TO_DATE),
        ([W.WATCHED, W.UP_TO_DATE], False, W.UP_TO_DATE),
        ([W.WATCHED, W.UNAIRED], False, W.UP_TO_DATE),
        ([W.WATCHED, W.NOT_WATCHED], False, W.WATCHING),
        ([W.WATCHING, W.WATCHED], False, W.WATCHING),
    ],
)
def test_fold_show_status(seasons: list[WatchStatus], in_production: bool, expected: WatchStatus) -> None:
    assert fold_show_status(seasons, in_production) == expected


def test_episode_status_is_binary_and_refuses_unaired() -> None:
    show = make_show(1, [aired(1) + unaired(1)])
    e_aired, e_future = show.episodes
    assert episode_status(e_aired, {}, TODAY) == BinaryWatchStatus.NOT_WATCHED
    assert episode_status(e_aired, {e_aired.id: NOW}, TODAY) == BinaryWatchStatus.WATCHED
    with pytest.raises(ValueError):
        episode_status(e_future, {}, TODAY)


def test_missing_air_date_counts_as_unaired() -> None:
    show = make_show(1, [[None, None]])
    r = rollup_show(show, [], TODAY)
    assert r.status == W.UNAIRED
    assert r.aired_episodes == 0
    assert r.unaired_episodes == 2
    assert r.percent_complete == 0.0


def test_narrowing_rejects_non_binary_status() -> None:
    assert narrow_binary(W.WATCHED) == BinaryWatchStatus.WATCHED
    assert widen(BinaryWatchStatus.NOT_WATCHED) == W.NOT_WATCHED
    with pytest.raises(ValueError):
        narrow_binary(W.WATCHING)


def test_fully_watched_finished_show() -> None:
    show = make_show(7, [aired(10), aired(10)])
    events = [ev(1, e.id, at(3) + timedelta(minutes=i)) for i, e in enumerate(show.episodes)]
    r = rollup_show(show, events, TODAY)
    assert r.status == W.WATCHED
    assert (r.aired_episodes, r.watched_episodes) == (20, 20)
    assert r.percent_complete == 100.0
    assert r.next_to_watch is None
    assert r.last_watched is not None and r.last_watched.episode_number == 10
    assert all(s.status == W.WATCHED for s in r.seasons)


def test_in_production_show_caught_up_is_up_to_date() -> None:
    show = make_show(8, [aired(3) + unaired(2)], in_production=True)
    events = [ev(1, e.id, at(1)) for e in show.episodes[:3]]
    r = rollup_show(show, events, TODAY)
    assert r.status == W.UP_TO_DATE
    assert r.seasons[0].status == W.UP_TO_DATE
    assert (r.aired_episodes, r.watched_episodes, r.unaired_episodes) == (3, 3, 2)
    assert r.percent_complete == 100.0


def test_in_production_season_with_unrecorded_episodes_is_still_airing() -> None:
    show = make_show(9, [aired(4)], in_production=True, announced={1: 8})
    events = [ev(1, e.id, at(1)) for e in show.episodes]
    r = rollup_show(show, events, TODAY)
    assert not r.stale
    assert r.seasons[0].status == W.UP_TO_DATE


def test_partial_progress_and_next_episode() -> None:
    show = make_show(2, [aired(5), aired(5)])
    events = [ev(1, e.id, at(2)) for e in show.episodes[:3]]
    r = rollup_show(show, events, TODAY)
    assert r.status == W.WATCHING
    assert r.seasons[0].status == W.WATCHING
    assert r.seasons[1].status == W.NOT_WATCHED
    assert r.percent_complete == 30.0
    assert r.next_to_watch is not None
    assert (r.next_to_watch.season_number, r.next_to_watch.episode_number) == (1, 4)


def test_rewatches_count_once_and_invalidated_events_are_ignored() -> None:
    show = make_show(3, [aired(2)])
    e1, e2 = show.episodes
    events = [
        ev(1, e1.id, at(5)),
        ev(1, e1.id, at(4)),
        WatchEvent(1, "episode", e2.id, at(3), invalidated=True),
    ]
    r = rollup_show(show, events, TODAY)
    assert r.watched_episodes == 1
    assert r.status == W.WATCHING
    assert watched_map(events) == {e1.id: at(4)}


def test_inconsistent_catalog_marks_show_stale() -> None:
    # finished show whose season records fewer episodes than announced
    show = make_show(4, [aired(10)], announced={1: 12})
    r = rollup_show(show, [], TODAY)
    assert r.stale
    assert r.status is None
    assert "10 of 12" in r.reason


def test_duplicate_episode_numbers_mark_show_stale() -> None:
    show = make_show(5, [aired(2)])
    season = show.seasons[0]
    dup = Episode(
        id=99999, show_id=5, season_id=season.id, season_number=1, episode_number=1, air_date=season.episodes[0].air_date
    )
    broken = Show(id=5, title=show.title, seasons=(Season(season.id, 5, 1, 3, season.episodes + (dup,)),))
    r = rollup_show(broken, [], TODAY)
    assert r.stale
    assert r.reason == "duplicate episode numbers"


def test_unaired_only_season_does_not_hide_completion() -> None:
    show = make_show(6, [aired(2), [FUTURE, FUTURE]])
    events = [ev(1, e.id, at(1)) for e in show.episodes[:2]]
    r = rollup_show(show, events, TODAY)
    assert r.seasons[1].status == W.UNAIRED
    assert r.status == W.UP_TO_DATE
