# ws_platform/watch_status.py
# WatchStats - watch status vocabularies
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations

from enum import Enum


class WatchStatus(str, Enum):
    """Full vocabulary, used by aggregating content (shows and seasons)."""

    UNAIRED = "UNAIRED"
    NOT_WATCHED = "NOT_WATCHED"
    WATCHING = "WATCHING"
    WATCHED = "WATCHED"
    UP_TO_DATE = "UP_TO_DATE"


class BinaryWatchStatus(str, Enum):
    """Atomic content (episodes and movies) is either watched or not."""

    NOT_WATCHED = "NOT_WATCHED"
    WATCHED = "WATCHED"


_BINARY_VALUES = frozenset(s.value for s in BinaryWatchStatus)

# statuses that mean "nothing left to watch right now"
CAUGHT_UP = frozenset({WatchStatus.WATCHED, WatchStatus.UP_TO_DATE})


def narrow_binary(status: WatchStatus | BinaryWatchStatus | str) -> BinaryWatchStatus:
    """Narrow a status to the binary vocabulary, rejecting aggregate-only values."""
    raw = str(getattr(status, "value", status))
    if raw not in _BINARY_VALUES:
        raise ValueError(f"{raw} is not valid for episodes or movies")
    return BinaryWatchStatus(raw)


def widen(status: BinaryWatchStatus) -> WatchStatus:
    return WatchStatus(status.value)


__all__ = [
    "WatchStatus",
    "BinaryWatchStatus",
    "CAUGHT_UP",
    "narrow_binary",
    "widen",
]
