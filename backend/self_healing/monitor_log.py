from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path


class MonitorLogFormatter(logging.Formatter):
    """Formats records as `[ISO-timestamp] [LEVEL] message`."""

    def __init__(self) -> None:
        super().__init__("[%(asctime)s] [%(levelname)s] %(message)s")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds")


class MonitorLogHandler(logging.FileHandler):
    """Append-only file handler that creates its directory on first write."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__(self.path, mode="a", encoding="utf-8", delay=True)
        self.setFormatter(MonitorLogFormatter())

    def _open(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return super()._open()


def get_monitor_logger(name: str, log_dir: Path) -> logging.Logger:
    """
    Return the logger for one monitor, writing to `<log_dir>/<name>.log`.

    Records still propagate to the `self_healing` hierarchy for console output.
    Re-binding a monitor to a new directory replaces its previous file handler.
    """
    logger = logging.getLogger(f"self_healing.monitor.{name}")
    path = Path(log_dir) / f"{name}.log"
    for handler in list(logger.handlers):
        if isinstance(handler, MonitorLogHandler):
            if handler.path == path:
                return logger
            logger.removeHandler(handler)
            handler.close()
    logger.addHandler(MonitorLogHandler(path))
    if logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    return logger
