from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import os

from .utils import _get, root_dir


_configured = False
_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

# Every devflow logger is a child of this one, so a handler here sees them all.
ROOT_LOGGER = "devflow"


def _ensure_base_logger() -> None:
    global _configured
    if _configured:
        return
    level = os.getenv("DEVFLOW_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=_FORMAT,
    )
    _configured = True


def _file_handler(logger: logging.Logger, log_file: Path) -> RotatingFileHandler:
    target = log_file.resolve()
    for h in logger.handlers:
        if isinstance(h, RotatingFileHandler) and Path(h.baseFilename) == target:
            return h
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(target, maxBytes=1_000_000, backupCount=3)
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    return handler


def get_logger(name: str, log_file: Path | None = None) -> logging.Logger:
    _ensure_base_logger()
    logger = logging.getLogger(name)
    if log_file:
        _file_handler(logger, Path(log_file))
    return logger


def configure_logging(params: dict) -> logging.Logger:
    """Apply the `logging:` config section to the devflow logger tree.

    `logging.level` overrides DEVFLOW_LOG_LEVEL for devflow loggers;
    `logging.file` (relative to the site root) adds a rotating log file.
    """
    log_file = _get(params, "logging", "file")
    logger = get_logger(ROOT_LOGGER, root_dir(params) / log_file if log_file else None)
    level = _get(params, "logging", "level")
    if level:
        logger.setLevel(str(level).upper())
    return logger
