from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from dotenv import load_dotenv

from .logging_utils import get_logger

logger = get_logger(__name__)

DEFAULT_EXCLUDED_EXTENSIONS = ("wav", "mp3", "vtf")
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_WATCH_COOLDOWN = 10


@dataclass
class Settings:
    excluded_extensions: FrozenSet[str] = field(
        default_factory=lambda: frozenset(DEFAULT_EXCLUDED_EXTENSIONS)
    )
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    watch_dir: str = "."
    watch_cooldown: int = DEFAULT_WATCH_COOLDOWN


def parse_extensions(value: Optional[str]) -> FrozenSet[str]:
    """Split a comma separated extension list, lower-cased, leading dots dropped."""
    if value is None:
        return frozenset(DEFAULT_EXCLUDED_EXTENSIONS)
    parts = (part.strip().lstrip(".").lower() for part in value.split(","))
    return frozenset(part for part in parts if part)


def _env_number(key: str, default, cast):
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", key, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r, using %s", key, raw, default)
        return default
    return value


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        excluded_extensions=parse_extensions(os.getenv("MAP_SYNCER_EXCLUDED_EXTENSIONS")),
        http_timeout=_env_number("MAP_SYNCER_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT, float),
        watch_dir=os.getenv("MAP_SYNCER_WATCH_DIR") or ".",
        watch_cooldown=_env_number("MAP_SYNCER_WATCH_COOLDOWN", DEFAULT_WATCH_COOLDOWN, int),
    )
