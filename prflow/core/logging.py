"""Centralized logging configuration for prflow."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from prflow.core.config import Settings, get_settings

_configured = False


def setup_logging(settings: Settings | None = None) -> logging.Logger:
    """Configure the prflow logger with console + rotating file handlers. Idempotent."""
    global _configured
    if _configured:
        return logging.getLogger("prflow")

    settings = settings or get_settings()
    logger = logging.getLogger("prflow")
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.propagate = False

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console handler
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(fmt)
    logger.addHandler(console)

    # File handler (rotating, 5 MB × 3 backups)
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)

    _configured = True
    logger.info("Logging initialised (level=%s, file=%s)", settings.log_level, settings.log_file or "-")
    return logger


def get_logger(name: str = "prflow") -> logging.Logger:
    """Get a child logger of ``prflow``. Call setup_logging() at startup first."""
    if name != "prflow" and not name.startswith("prflow."):
        name = f"prflow.{name}"
    return logging.getLogger(name)
