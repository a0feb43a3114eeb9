"""structlog configuration."""

import structlog

from app.core.logging import configure_logging


def test_json_output(capsys):
    configure_logging("info", "json")
    structlog.get_logger().info("task.created", task_id="abc")
    out = capsys.readouterr().out
    assert '"event": "task.created"' in out
    assert '"task_id": "abc"' in out
    assert '"level": "info"' in out
    structlog.reset_defaults()


def test_level_filtering(capsys):
    configure_logging("warning", "text")
    structlog.get_logger().info("status.changed")
    assert "status.changed" not in capsys.readouterr().out
    structlog.reset_defaults()
