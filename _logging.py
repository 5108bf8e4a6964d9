# _logging.py
# WatchStats - module-tagged console logger with config-driven levels and an optional JSON-lines sink.
# Copyright (c) 2025-2026 CrossWatch / Cenodude (https://github.com/cenodude/CrossWatch)
from __future__ import annotations
import sys, datetime, json, os, threading, time
from typing import Any, Mapping, Optional, TextIO

from ws_platform.config_base import load_config, section

RESET = "\033[0m"
DIM = "\033[90m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[33m"
BLUE = "\033[94m"

LEVELS = {"debug": 10, "info": 20, "success": 20, "warn": 30, "error": 40, "silent": 60}
_ALIASES = {"warning": "warn", "critical": "error", "fatal": "error"}
TAG_COLORS = {"DEBUG": DIM, "INFO": BLUE, "SUCCESS": GREEN, "WARN": YELLOW, "ERROR": RED}

_DEBUG_TTL = 5.0


def _norm_level(level: Optional[str]) -> str:
    lvl = str(level or "info").strip().lower()
    lvl = _ALIASES.get(lvl, lvl)
    return lvl if lvl in LEVELS else "info"


class _Output:
    """Stream, threshold and JSON sink behind a Logger."""

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream
        self.threshold = LEVELS["info"]
        self.color = not os.getenv("NO_COLOR")
        self.json_stream: Optional[TextIO] = None
        self.json_path = ""
        self.lock = threading.Lock()
        self._debug = False
        self._debug_ts = 0.0

    def debug_on(self) -> bool:
        # runtime.debug can be flipped in config.json without a restart
        now = time.time()
        if now - self._debug_ts > _DEBUG_TTL:
            self._debug = bool(section(load_config(), "runtime").get("debug"))
            self._debug_ts = now
        return self._debug

    def set_json(self, path: str) -> None:
        path = (path or "").strip()
        with self.lock:
            if path == self.json_path:
                return
            if self.json_stream is not None:
                self.json_stream.close()
            self.json_stream = open(path, "a", encoding="utf-8") if path else None
            self.json_path = path

    def write(self, line: str, record: Optional[dict[str, Any]]) -> None:
        with self.lock:
            self.stream.write(line + "\n")
            self.stream.flush()
            if self.json_stream is not None and record is not None:
                self.json_stream.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
                self.json_stream.flush()


class Logger:
    def __init__(self, stream: TextIO = sys.stdout) -> None:
        self._out = _Output(stream)

    # Configuration
    def configure(self, cfg: Optional[Mapping[str, Any]]) -> None:
        """Apply the runtime section: log_level, color, json_log."""
        rt = section(dict(cfg or {}), "runtime")
        self._out.threshold = LEVELS[_norm_level(rt.get("log_level"))]
        self._out.color = bool(rt.get("color", True)) and not os.getenv("NO_COLOR")
        self._out.set_json(str(rt.get("json_log") or ""))
        self._out._debug_ts = 0.0

    # Output
    def _line(self, tag: str, module: str, msg: str) -> str:
        ts = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        head = f"[{module}] " if module else ""
        if self._out.color:
            return f"{DIM}[{ts}]{RESET} {head}{TAG_COLORS.get(tag, '')}{tag}{RESET} {msg}"
        return f"[{ts}] {head}{tag} {msg}"

    def emit(self, level: str, message: Any, *, module: Optional[str] = None, extra: Optional[Mapping[str, Any]] = None) -> None:
        lvl = _norm_level(level)
        if lvl == "debug":
            if not (self._out.threshold <= LEVELS["debug"] or self._out.debug_on()):
                return
        elif LEVELS[lvl] < self._out.threshold:
            return
        mod = (module or "").strip().upper()
        tag = lvl.upper()
        msg = str(message)
        record: Optional[dict[str, Any]] = None
        if self._out.json_stream is not None:
            record = {
                "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
                "level": tag,
                "module": mod,
                "msg": msg,
            }
            if extra:
                record["extra"] = dict(extra)
        self._out.write(self._line(tag, mod, msg), record)

    # log("text", level="WARN", module="ROLLUP", extra={...})
    def __call__(
        self,
        message: Any,
        *,
        level: str = "INFO",
        module: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.emit(level, message, module=module, extra=extra)


log = Logger()

__all__ = ["Logger", "log", "LEVELS"]
