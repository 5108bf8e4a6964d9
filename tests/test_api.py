# WatchStats test scripts
from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from _factories import NOW, aired, at, make_account, make_movie, make_profile, make_show, make_store, watch_episodes
from ws_platform.errors import StatsError

DRAMA = make_show(1, [aired(4)], title="Drama Show", genres=["Drama"])
FILM = make_movie(50, title="Film")


@pytest.fixture()
def client(config_base: Path):
    from watchstats import create_app

    prof = make_profile(10, shows=[1], movies=[50], name="Alex", events=watch_episodes(10, DRAMA, at(3), count=3))
    idle = make_profile(11, shows=[1], name="Idle")
    store = make_store([DRAMA], [FILM], [make_account(1, prof, idle), make_account(2)])
    cfg = {"cache": {"enabled": True}}
    app = create_app(lambda: cfg, store=store, clock=lambda: NOW, start_scheduler=False)
    with TestClient(app) as c:
        yield c


def test_profile_statistics(client: TestClient) -> None:
    r = client.get("/api/profiles/10/statistics")
    assert r.status_code == 200
    data = r.json()
    assert data["profileName"] == "Alex"
    assert data["showStatistics"]["watchStatusCounts"]["watching"] == 1
    assert data["episodeWatchProgress"]["overallProgress"] == 75.0


def test_unknown_ids_return_404(client: TestClient) -> None:
    for url in (
        "/api/profiles/999/statistics",
        "/api/profiles/999/statistics/enhanced",
        "/api/accounts/999/statistics",
        "/api/accounts/999/statistics/enhanced",
    ):
        r = client.get(url)
        assert r.status_code == 404, url
        assert r.json()["ok"] is False


def test_enhanced_sections_filter(client: TestClient) -> None:
    r = client.get("/api/profiles/10/statistics/enhanced", params={"sections": "velocity,streak"})
    assert r.status_code == 200
    data = r.json()
    assert data["velocity"]["mostActiveHour"] == 20
    assert data["timeline"] is None
    assert data["sectionStatus"]["timeline"] == "not_requested"
    assert data["sectionStatus"]["streak"] == "present"


def test_enhanced_account_statistics(client: TestClient) -> None:
    r = client.get("/api/accounts/1/statistics/enhanced")
    assert r.status_code == 200
    data = r.json()
    assert data["profileCount"] == 2
    assert [p["profileName"] for p in data["profileComparison"]["profiles"]] == ["Alex", "Idle"]

    empty = client.get("/api/accounts/2/statistics").json()
    assert empty["profileCount"] == 0


def test_record_event_updates_statistics(client: TestClient) -> None:
    before = client.get("/api/profiles/10/statistics").json()
    assert before["showStatistics"]["watchStatusCounts"]["watched"] == 0

    r = client.post(
        "/api/profiles/10/watch-events",
        json={"contentType": "episode", "contentId": DRAMA.episodes[3].id, "watchedAt": "2026-06-15T19:00:00Z"},
    )
    assert r.status_code == 201
    body = r.json()
    assert body["ok"] is True
    assert body["event"]["showId"] == 1
    assert "SHOW_COMPLETED" in [a["type"] for a in body["newAchievements"]]

    after = client.get("/api/profiles/10/statistics").json()
    assert after["showStatistics"]["watchStatusCounts"]["watched"] == 1
    assert after["episodeWatchProgress"]["overallProgress"] == 100.0


def test_achievements_are_announced_once(client: TestClient) -> None:
    payload = {"contentType": "movie", "contentId": 50}
    first = client.post("/api/profiles/10/watch-events", json=payload).json()
    assert "FIRST_MOVIE" in [a["type"] for a in first["newAchievements"]]
    second = client.post("/api/profiles/10/watch-events", json=payload).json()
    assert "FIRST_MOVIE" not in [a["type"] for a in second["newAchievements"]]


def test_record_event_validation(client: TestClient) -> None:
    r = client.post("/api/profiles/10/watch-events", json={"contentType": "podcast", "contentId": 1})
    assert r.status_code == 422

    r = client.post("/api/profiles/10/watch-events", json={"contentType": "episode", "contentId": 424242})
    assert r.status_code == 404

    r = client.post("/api/profiles/999/watch-events", json={"contentType": "movie", "contentId": 50})
    assert r.status_code == 404

    r = client.post(
        "/api/profiles/10/watch-events",
        json={"contentType": "movie", "contentId": 50, "watchedAt": "yesterday-ish"},
    )
    assert r.status_code == 400


def test_invalidate_events(client: TestClient) -> None:
    ep = DRAMA.episodes[0].id
    r = client.post("/api/profiles/10/watch-events/invalidate", json={"contentType": "episode", "contentId": ep})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "invalidated": 1}

    data = client.get("/api/profiles/10/statistics").json()
    assert data["episodeWatchProgress"]["watchedEpisodes"] == 2


def test_admin_routes_wrap_results(client: TestClient) -> None:
    r = client.get("/api/admin/statistics/platform/overview")
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Retrieved platform overview"
    assert body["results"]["totalAccounts"] == 2

    r = client.get("/api/admin/statistics/accounts/rankings", params={"metric": "hoursWatched", "limit": 1})
    assert r.status_code == 200
    assert r.json()["results"]["rankings"][0]["accountId"] == 1

    assert client.get("/api/admin/statistics/accounts/rankings", params={"metric": "nope"}).status_code == 400
    assert client.get("/api/admin/statistics/accounts/77/health").status_code == 404
    assert client.get("/api/admin/statistics/content/show/999/engagement").status_code == 404

    dash = client.get("/api/admin/statistics/dashboard").json()["results"]
    assert dash["platformOverview"]["totalProfiles"] == 2


def test_refresh_endpoints(client: TestClient, config_base: Path) -> None:
    r = client.post("/api/statistics/refresh")
    assert r.status_code == 200
    assert r.json()["refreshed"] == [1, 2]
    assert (config_base / "statistics_cache.json").exists()

    st = client.get("/api/statistics/refresh/status").json()
    assert st["last_run_ok"] is True
    assert st["cache"]["enabled"] is True

    # scheduling disabled: background request runs inline
    r = client.post("/api/statistics/refresh", params={"background": "true"})
    assert r.status_code == 200
    assert r.json()["refreshed"] == [1, 2]


def test_account_statistics_fall_back_to_last_batch(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    live = client.get("/api/accounts/1/statistics").json()
    client.post("/api/statistics/refresh")

    def down(*_a, **_kw):
        raise StatsError("upstream down")

    composer = client.app.state.composer
    monkeypatch.setattr(composer, "get_account_statistics", down)
    monkeypatch.setattr(composer, "get_enhanced_account_statistics", down)

    r = client.get("/api/accounts/1/statistics")
    assert r.status_code == 200
    assert r.headers["X-Stats-Stale"] == "true"
    assert r.headers["X-Stats-Refreshed-At"].endswith("Z")
    assert r.json() == live

    enhanced = client.get("/api/accounts/1/statistics/enhanced")
    assert enhanced.status_code == 200
    assert enhanced.json()["profileCount"] == 2

    # filtered requests and accounts without a stored batch report the failure
    assert client.get("/api/accounts/1/statistics/enhanced", params={"sections": "velocity"}).status_code == 503
    assert client.get("/api/accounts/3/statistics").status_code == 503


def test_record_event_accepts_binary_status_only(client: TestClient) -> None:
    ep = DRAMA.episodes[0].id
    r = client.post("/api/profiles/10/watch-events", json={"contentType": "episode", "contentId": ep, "status": "WATCHING"})
    assert r.status_code == 400
    assert "not valid for episodes or movies" in r.json()["error"]

    r = client.post("/api/profiles/10/watch-events", json={"contentType": "episode", "contentId": ep, "status": "not_watched"})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "invalidated": 1, "newAchievements": []}
    assert client.get("/api/profiles/10/statistics").json()["episodeWatchProgress"]["watchedEpisodes"] == 2
