# /api/adminAPI.py
# WatchStats - platform-wide statistics for administrators
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from typing import Any, Callable

from fastapi import APIRouter, Query, Request

from api.statisticsAPI import error_response
from ws_platform.errors import StatsError

router = APIRouter(prefix="/api/admin/statistics", tags=["admin"])


def _wrap(message: str, fn: Callable[[], Any]) -> Any:
    try:
        return {"message": message, "results": fn()}
    except (StatsError, ValueError) as e:
        return error_response(e)


def _admin(request: Request) -> Any:
    return request.app.state.admin


@router.get("/dashboard")
def api_dashboard(request: Request) -> Any:
    return _wrap("Retrieved admin dashboard statistics", _admin(request).dashboard)


@router.get("/platform/overview")
def api_platform_overview(request: Request) -> Any:
    return _wrap("Retrieved platform overview", _admin(request).platform_overview)


@router.get("/platform/trends")
def api_platform_trends(request: Request, days: int = Query(30, ge=1, le=365)) -> Any:
    return _wrap(f"Retrieved platform trends for the last {days} days", lambda: _admin(request).platform_trends(days))


@router.get("/accounts/health")
def api_account_health(request: Request) -> Any:
    return _wrap("Retrieved account health metrics", _admin(request).account_health)


@router.get("/accounts/rankings")
def api_account_rankings(
    request: Request,
    metric: str = Query("episodesWatched"),
    limit: int = Query(50, ge=1, le=500),
) -> Any:
    return _wrap(f"Retrieved account rankings by {metric}", lambda: _admin(request).account_rankings(metric, limit))


@router.get("/accounts/{account_id}/health")
def api_single_account_health(account_id: int, request: Request) -> Any:
    return _wrap(f"Retrieved health metrics for account {account_id}", lambda: _admin(request).account_health_for(account_id))


@router.get("/content/popular")
def api_content_popular(
    request: Request,
    type: str = Query("all"),
    limit: int = Query(20, ge=1, le=500),
) -> Any:
    return _wrap(f"Retrieved popular {type} content", lambda: _admin(request).content_popularity(type, limit))


@router.get("/content/trending")
def api_content_trending(
    request: Request,
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(20, ge=1, le=500),
) -> Any:
    return _wrap(f"Retrieved trending content for the last {days} days", lambda: _admin(request).trending_content(days, limit))


@router.get("/content/{content_type}/{content_id}/engagement")
def api_content_engagement(content_type: str, content_id: int, request: Request) -> Any:
    return _wrap(
        f"Retrieved engagement for {content_type} {content_id}",
        lambda: _admin(request).content_engagement(content_type, content_id),
    )

