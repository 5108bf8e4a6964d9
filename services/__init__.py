# services/__init__.py
from __future__ import annotations

__all__ = [
    "rollup",
    "progress",
    "timeline",
    "velocity",
    "binge",
    "streaks",
    "milestones",
    "risk",
    "depth",
    "cache",
    "statistics",
    "admin",
    "scheduling",
]
