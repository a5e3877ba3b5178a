from __future__ import annotations

import re

from self_healing.monitor_log import MonitorLogHandler, get_monitor_logger

LINE = re.compile(r"^\[\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}\+00:00\] \[(\w+)\] (.*)$")


def _flush(logger):
    for handler in logger.handlers:
        handler.flush()


def test_monitor_log_creates_directory_and_appends_lines(tmp_path):
    log_dir = tmp_path / "nested" / "logs"
    logger = get_monitor_logger("network-health", log_dir)
    assert not log_dir.exists()

    logger.info("Network check passed")
    logger.warning("Proxy configuration detected")
    _flush(logger)

    lines = (log_dir / "network-health.log").read_text().splitlines()
    assert [LINE.match(line).groups() for line in lines] == [
        ("INFO", "Network check passed"),
        ("WARNING", "Proxy configuration detected"),
    ]


def test_rebinding_log_dir_replaces_handler(tmp_path):
    first = get_monitor_logger("database-validator", tmp_path / "a")
    second = get_monitor_logger("database-validator", tmp_path / "b")
    assert first is second
    handlers = [h for h in second.handlers if isinstance(h, MonitorLogHandler)]
    assert [h.path for h in handlers] == [tmp_path / "b" / "database-validator.log"]

    again = get_monitor_logger("database-validator", tmp_path / "b")
    assert len([h for h in again.handlers if isinstance(h, MonitorLogHandler)]) == 1
