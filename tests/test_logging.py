# WatchStats test scripts
from __future__ import annotations

import io
import json
from pathlib import Path

from _logging import Logger


def _logger(**rt) -> tuple[Logger, io.StringIO]:
    buf = io.StringIO()
    lg = Logger(stream=buf)
    lg.configure({"runtime": {"color": False, **rt}})
    return lg, buf


def test_module_tag_and_level(config_base: Path) -> None:
    lg, buf = _logger()
    lg("stale show skipped", level="warning", module="rollup")
    assert buf.getvalue().rstrip().endswith("[ROLLUP] WARN stale show skipped")


def test_threshold_filters_lower_levels(config_base: Path) -> None:
    lg, buf = _logger(log_level="warn")
    lg("hidden")
    lg("shown", level="error", module="cache")
    out = buf.getvalue()
    assert "hidden" not in out
    assert "[CACHE] ERROR shown" in out


def test_debug_follows_runtime_config(config_base: Path) -> None:
    lg, buf = _logger()
    lg("quiet", level="DEBUG")
    assert buf.getvalue() == ""

    (config_base / "config.json").write_text(json.dumps({"runtime": {"debug": True}}), encoding="utf-8")
    lg.configure({"runtime": {"color": False}})
    lg("loud", level="DEBUG")
    assert "DEBUG loud" in buf.getvalue()


def test_json_sink(config_base: Path, tmp_path: Path) -> None:
    sink = tmp_path / "log.jsonl"
    lg, _ = _logger(json_log=str(sink))
    lg("batch done", level="success", module="sched", extra={"accounts": 3})
    lg.configure({"runtime": {"color": False}})

    rec = json.loads(sink.read_text(encoding="utf-8").strip())
    assert rec["level"] == "SUCCESS"
    assert rec["module"] == "SCHED"
    assert rec["extra"] == {"accounts": 3}
