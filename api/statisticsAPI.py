# /api/statisticsAPI.py
# WatchStats - profile/account statistics and batch refresh endpoints
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from _logging import log
from ws_platform.errors import NotFoundError, StatsError

router = APIRouter(prefix="/api", tags=["statistics"])


def _composer(request: Request) -> Any:
    return request.app.state.composer


def error_response(e: Exception) -> JSONResponse:
    if isinstance(e, NotFoundError):
        return JSONResponse({"ok": False, "error": str(e)}, status_code=404)
    if isinstance(e, ValueError):
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
    log(f"statistics request failed: {e}", level="ERROR", module="API")
    return JSONResponse({"ok": False, "error": str(e)}, status_code=503)


def _last_known_good(request: Request, account_id: int, key: str, e: StatsError) -> JSONResponse:
    """Serve the last scheduled batch result when a live account computation fails."""
    sched = getattr(request.app.state, "scheduler", None)
    saved = sched.last_known_good(account_id) if sched is not None else None
    if not saved or saved.get(key) is None:
        return error_response(e)
    log(f"account {account_id}: serving last known good ({e})", level="WARN", module="API")
    return JSONResponse(
        jsonable_encoder(saved[key]),
        status_code=200,
        headers={"X-Stats-Stale": "true", "X-Stats-Refreshed-At": str(saved.get("refreshedAt") or "")},
    )


@router.get("/profiles/{profile_id}/statistics")
def api_profile_statistics(profile_id: int, request: Request) -> Any:
    try:
        return _composer(request).get_profile_statistics(profile_id)
    except (StatsError, ValueError) as e:
        return error_response(e)


@router.get("/profiles/{profile_id}/statistics/enhanced")
def api_profile_statistics_enhanced(
    profile_id: int,
    request: Request,
    sections: str | None = Query(None, description="Comma separated section names; empty = all"),
) -> Any:
    try:
        return _composer(request).get_enhanced_profile_statistics(profile_id, sections)
    except (StatsError, ValueError) as e:
        return error_response(e)


@router.get("/accounts/{account_id}/statistics")
def api_account_statistics(account_id: int, request: Request) -> Any:
    try:
        return _composer(request).get_account_statistics(account_id)
    except NotFoundError as e:
        return error_response(e)
    except StatsError as e:
        return _last_known_good(request, account_id, "statistics", e)
    except ValueError as e:
        return error_response(e)


@router.get("/accounts/{account_id}/statistics/enhanced")
def api_account_statistics_enhanced(
    account_id: int,
    request: Request,
    sections: str | None = Query(None, description="Comma separated section names; empty = all"),
) -> Any:
    try:
        return _composer(request).get_enhanced_account_statistics(account_id, sections)
    except NotFoundError as e:
        return error_response(e)
    except StatsError as e:
        if sections:
            return error_response(e)
        return _last_known_good(request, account_id, "enhanced", e)
    except ValueError as e:
        return error_response(e)


# ---------- batch refresh

@router.get("/statistics/refresh/status")
def api_refresh_status(request: Request) -> dict[str, Any]:
    sched = getattr(request.app.state, "scheduler", None)
    if sched is None:
        return {"ok": False, "error": "scheduler not configured"}
    st = sched.status()
    st["cache"] = _composer(request).cache.stats()
    return st


@router.post("/statistics/refresh")
def api_refresh_now(request: Request, background: bool = Query(False)) -> JSONResponse:
    sched = getattr(request.app.state, "scheduler", None)
    if sched is None:
        return JSONResponse({"ok": False, "error": "scheduler not configured"}, status_code=503)
    if background and sched.status()["config"].get("enabled"):
        sched.refresh()
        return JSONResponse({"ok": True, "queued": True}, status_code=202)
    summary = sched.run_batch()
    if summary.get("skipped"):
        return JSONResponse({"ok": False, "error": "refresh already running"}, status_code=409)
    return JSONResponse(summary, status_code=200)
