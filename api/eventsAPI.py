# /api/eventsAPI.py
# WatchStats - record and unmark watch events
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from api.statisticsAPI import error_response
from services.milestones import profile_achievements
from ws_platform.errors import NotFoundError, StatsError
from ws_platform.models import WatchEvent
from ws_platform.timeutil import parse_instant
from ws_platform.watch_status import BinaryWatchStatus, narrow_binary

router = APIRouter(prefix="/api/profiles", tags=["watch-events"])


class WatchEventIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content_type: Literal["episode", "movie"] = Field(alias="contentType")
    content_id: int = Field(alias="contentId", ge=1)
    watched_at: str | None = Field(default=None, alias="watchedAt")
    status: str = Field(default="WATCHED", description="WATCHED records a view, NOT_WATCHED unmarks it")


class InvalidateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content_type: Literal["episode", "movie"] = Field(alias="contentType")
    content_id: int = Field(alias="contentId", ge=1)


def _check_content(request: Request, content_type: str, content_id: int) -> None:
    catalog = request.app.state.store.catalog()
    known = catalog.episodes if content_type == "episode" else catalog.movies
    if content_id not in known:
        raise NotFoundError(content_type, content_id)


@router.post("/{profile_id}/watch-events")
def api_record_event(profile_id: int, body: WatchEventIn, request: Request) -> JSONResponse:
    state = request.app.state
    try:
        _check_content(request, body.content_type, body.content_id)
        if narrow_binary(body.status.strip().upper()) == BinaryWatchStatus.NOT_WATCHED:
            n = state.store.invalidate_events(profile_id, body.content_type, body.content_id)
            state.composer.invalidate(profile_id)
            return JSONResponse({"ok": True, "invalidated": n, "newAchievements": []}, status_code=200)
        if body.watched_at:
            ts = parse_instant(body.watched_at)
            if ts is None:
                raise ValueError(f"watchedAt is not an ISO-8601 instant: {body.watched_at}")
        else:
            ts = state.composer.clock()
        event = state.store.record_event(
            WatchEvent(profile_id=profile_id, content_type=body.content_type, content_id=body.content_id, watched_at=ts)
        )
        state.composer.invalidate(profile_id)

        fresh: list[Any] = []
        ledger = getattr(state, "ledger", None)
        if ledger is not None:
            prof = state.store.get_profile(profile_id)
            if prof is not None:
                scope = state.composer.profile_scope(prof)
                fresh = ledger.record(profile_achievements(scope, state.composer.cfg))
    except (StatsError, ValueError) as e:
        return error_response(e)
    return JSONResponse(
        {"ok": True, "event": event.to_dict(), "newAchievements": [a.to_dict() for a in fresh]},
        status_code=201,
    )


@router.post("/{profile_id}/watch-events/invalidate")
def api_invalidate_events(profile_id: int, body: InvalidateIn, request: Request) -> JSONResponse:
    state = request.app.state
    try:
        n = state.store.invalidate_events(profile_id, body.content_type, body.content_id)
        state.composer.invalidate(profile_id)
    except (StatsError, ValueError) as e:
        return error_response(e)
    return JSONResponse({"ok": True, "invalidated": n}, status_code=200)
