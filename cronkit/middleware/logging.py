"""
Logging — logger setup and an event-logging middleware.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from cronkit.core.bus import MiddlewareNext
from cronkit.core.events import Event


def setup_logging(
    log_dir: Path | None = None,
    console_level: int = logging.WARNING,
    file_level: int = logging.DEBUG,
) -> logging.Logger:
    """
    Setup cronkit logging.

    Args:
        log_dir: Directory for log files (default: ~/.cronkit/logs)
        console_level: Minimum level for console output
        file_level: Minimum level for file output

    Returns:
        The configured "cronkit" logger
    """
    log_dir = (log_dir or (Path.home() / ".cronkit" / "logs")).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("cronkit")
    logger.setLevel(logging.DEBUG)

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(console_handler)

    log_file = log_dir / f"cronkit_{datetime.now().strftime('%Y%m%d')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(file_handler)

    logger.info(f"Logging initialized. File: {log_file}")

    return logger


class EventLogger:
    """
    Appends every scheduler event to a JSON-lines audit file.

    Usage:
        event_logger = EventLogger(log_dir=Path("~/.cronkit/logs"))
        bus.use(event_logger.middleware)
    """

    def __init__(self, log_dir: Path | None = None) -> None:
        self._log_dir = (log_dir or Path.home() / ".cronkit" / "logs").expanduser()
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._events_file = self._log_dir / f"events_{datetime.now().strftime('%Y%m%d')}.jsonl"
        self._logger = logging.getLogger("cronkit.events")

    @property
    def events_file(self) -> Path:
        return self._events_file

    async def middleware(self, event: Event, next_handler: MiddlewareNext) -> Event:
        self._logger.debug(f"[{event.type}] source={event.source} data={event.data}")
        self._write_event(event)
        return await next_handler(event)

    def _write_event(self, event: Event) -> None:
        record = {
            "timestamp": datetime.fromtimestamp(event.timestamp).isoformat(),
            "id": event.id,
            "type": event.type,
            "source": event.source,
            "data": event.data,
        }
        try:
            with open(self._events_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, default=str) + "\n")
        except OSError as e:
            self._logger.warning(f"Failed to write event log: {e}")
