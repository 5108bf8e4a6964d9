from __future__ import annotations

from fastapi import FastAPI

from .statisticsAPI import router as statistics_router
from .eventsAPI import router as events_router
from .adminAPI import router as admin_router

__all__ = [
    "statistics_router",
    "events_router",
    "admin_router",
    "register",
]

def register(app: FastAPI) -> None:
    app.include_router(statistics_router)
    app.include_router(events_router)
    app.include_router(admin_router)
