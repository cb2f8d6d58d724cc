import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PACKAGE_LOGGER = "map_syncer"


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("MAP_SYNCER_LOG") or "INFO").upper()
    return getattr(logging, name, logging.INFO)


def _formatter() -> logging.Formatter:
    return logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)


def _attach_file_handler(level: int) -> None:
    # Shared by every module logger through propagation; opened once per file.
    log_file = os.getenv("MAP_SYNCER_LOG_FILE")
    if not log_file:
        return
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    target = os.path.abspath(log_file)
    for handler in package_logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return
    handler = logging.FileHandler(target, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(_formatter())
    package_logger.addHandler(handler)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Return ``name``'s logger with console output attached once.

    The level comes from ``level`` or MAP_SYNCER_LOG. MAP_SYNCER_LOG_FILE adds
    a single file handler on the ``map_syncer`` package logger, which every
    module logger reaches through propagation.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    resolved = _resolve_level(level)
    logger.setLevel(resolved)
    _attach_file_handler(resolved)
    handler = logging.StreamHandler()
    handler.setLevel(resolved)
    handler.setFormatter(_formatter())
    logger.addHandler(handler)
    return logger
