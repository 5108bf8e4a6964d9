# ws_platform/errors.py
# WatchStats - error taxonomy shared by services and API routes
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from typing import Any


class StatsError(Exception):
    """Base class for statistics engine failures."""


class MissingDataError(StatsError):
    """Subject exists but has no events or catalog entries; callers fall back to zeroed output."""


class NotFoundError(StatsError):
    def __init__(self, kind: str, ident: Any) -> None:
        super().__init__(f"{kind} {ident} not found")
        self.kind = kind
        self.ident = ident


class InconsistentStateError(StatsError):
    def __init__(self, show_id: int, reason: str) -> None:
        super().__init__(f"show {show_id}: {reason}")
        self.show_id = show_id
        self.reason = reason


class ComputationTimeout(StatsError):
    def __init__(self, entity: str, budget: float) -> None:
        super().__init__(f"{entity} exceeded {budget:.1f}s budget")
        self.entity = entity
        self.budget = budget


__all__ = [
    "StatsError",
    "MissingDataError",
    "NotFoundError",
    "InconsistentStateError",
    "ComputationTimeout",
]
