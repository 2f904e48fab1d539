"""
ridgegaze/core/log.py — Root logger setup for applications embedding ridgegaze.

Library modules only ever call ``logging.getLogger(__name__)``; this helper is
for entry points (the CLI) that own the process-wide logging configuration.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from ridgegaze.core.config import LoggingConfig

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"
_DATEFMT = "%H:%M:%S"


def setup_logging(config: LoggingConfig, level: Optional[str] = None) -> None:
    """
    Configure the root logger for the application.

    Args:
        config: Logging section of the loaded configuration.
        level: Optional level name overriding ``config.level`` (CLI flag).
    """
    numeric = getattr(logging, (level or config.level).upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_path,
                maxBytes=config.max_bytes,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )
    logging.basicConfig(
        level=numeric,
        format=_FORMAT,
        datefmt=_DATEFMT,
        handlers=handlers,
        force=True,
    )
