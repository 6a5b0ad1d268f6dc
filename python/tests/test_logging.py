"""Tests for flowhive.enhanced_logging."""

import json
import logging

from flowhive.config import Settings
from flowhive.enhanced_logging import JSONFormatter, build_logging_config, track_performance


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="flowhive.hive.topology",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="Stage %s done",
        args=("design",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_ids():
    payload = json.loads(JSONFormatter().format(_record(workflow_id="workflow-1", stage="design")))
    assert payload["message"] == "Stage design done"
    assert payload["level"] == "INFO"
    assert payload["workflow_id"] == "workflow-1"
    assert payload["stage"] == "design"
    assert "agent_id" not in payload


def test_build_logging_config_console_only():
    config = build_logging_config(Settings(_env_file=None, log_format="text", log_level="warning"))
    assert list(config["handlers"]) == ["console"]
    assert config["handlers"]["console"]["formatter"] == "text"
    assert config["loggers"]["flowhive"]["level"] == "WARNING"


def test_build_logging_config_with_file(tmp_path):
    log_file = str(tmp_path / "logs" / "flowhive.log")
    config = build_logging_config(Settings(_env_file=None, log_file=log_file, debug=True))
    handler = config["handlers"]["file"]
    assert handler["class"] == "logging.handlers.RotatingFileHandler"
    assert handler["filename"] == log_file
    assert handler["formatter"] == "json"
    assert config["loggers"]["flowhive"]["level"] == "DEBUG"


def test_track_performance_sync(caplog):
    @track_performance
    def add(a, b):
        return a + b

    with caplog.at_level(logging.DEBUG):
        assert add(1, 2) == 3
    assert "add completed in" in caplog.text


async def test_track_performance_async(caplog):
    @track_performance(operation="fetch")
    async def fetch():
        return "ok"

    with caplog.at_level(logging.DEBUG):
        assert await fetch() == "ok"
    assert "fetch completed in" in caplog.text
