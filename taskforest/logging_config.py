"""Logging setup for taskforest.

All records go to a rotating file under ~/.taskforest/logs; scripts and
debugging sessions can mirror them to stderr.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Tuple


LOG_DIR = Path.home() / ".taskforest" / "logs"
LOG_FILE = LOG_DIR / "taskforest.log"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_BYTES = 10 * 1024 * 1024  # 10MB
BACKUP_COUNT = 5


def _resolve_level(log_level: Optional[str]) -> Tuple[str, int]:
    # Explicit argument, then TASKFOREST_LOG_LEVEL / settings.ini; unknown names mean INFO
    if log_level is None:
        from taskforest.config import Config

        log_level = Config().get_logging_config()["level"]
    name = log_level.upper()
    level = getattr(logging, name, None)
    if not isinstance(level, int):
        return "INFO", logging.INFO
    return name, level


def _build_handlers(console: bool) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [
        RotatingFileHandler(
            LOG_FILE,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler(sys.stderr))
    return handlers


def setup_logging(
    log_level: Optional[str] = None,
    console: bool = False
) -> None:
    """Configure the root logger; safe to call more than once.

    Args:
        log_level: Level name; None reads TASKFOREST_LOG_LEVEL or the
                  [logging] section of settings.ini
        console: Also write records to stderr
    """
    name, level = _resolve_level(log_level)
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in _build_handlers(console):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    logging.getLogger(__name__).info(
        f"Logging initialized: level={name}, file={LOG_FILE}, console={console}"
    )


def get_logger(name: str) -> logging.Logger:
    """Logger for a module; pass __name__."""
    return logging.getLogger(name)
