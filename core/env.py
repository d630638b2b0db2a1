"""Typed readers for the ALERT_* / CELERY_* environment variables.

Every reader returns ``default`` when the variable is unset and logs a warning
(then returns ``default``) when the raw value cannot be used.
"""

from __future__ import annotations

import os
from typing import Callable, List, Optional, Sequence, TypeVar

from core.logging import get_logger

T = TypeVar("T", int, float)

logger = get_logger(__name__)

_TRUE_VALUES = frozenset({"1", "true", "yes", "y", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "n", "off"})


def env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key, default)
    if value is None:
        logger.debug("Environment variable %s not set. Using default=%s.", key, default)
    return value


def _env_number(key: str, default: T, cast: Callable[[str], T], minimum: Optional[T]) -> T:
    raw = os.getenv(key)
    if raw is None:
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        logger.warning("Invalid %s value '%s'. Using default=%s.", key, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("%s=%s is below the minimum %s. Using default=%s.", key, value, minimum, default)
        return default
    return value


def env_int(key: str, default: int, *, minimum: Optional[int] = None) -> int:
    return _env_number(key, default, int, minimum)


def env_float(key: str, default: float, *, minimum: Optional[float] = None) -> float:
    return _env_number(key, default, float, minimum)


def env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    logger.warning("Invalid boolean env %s='%s'. Using default=%s.", key, raw, default)
    return default


def env_list(key: str, default: Sequence[str], *, separator: str = ",") -> List[str]:
    raw = os.getenv(key)
    if raw is None:
        return list(default)
    values = [item.strip() for item in raw.split(separator) if item.strip()]
    if not values:
        logger.warning("Empty list env %s. Using default=%s.", key, list(default))
        return list(default)
    return values


def env_hhmm(key: str, default: str) -> str:
    """Read an ``HH:MM`` time-of-day; ``24:00`` is accepted as an end-of-day bound."""
    raw = os.getenv(key)
    if raw is None:
        return default
    parts = raw.strip().split(":")
    try:
        if len(parts) != 2:
            raise ValueError
        hour, minute = int(parts[0]), int(parts[1])
        if not (0 <= hour <= 24 and 0 <= minute <= 59) or (hour == 24 and minute):
            raise ValueError
    except ValueError:
        logger.warning("Invalid time-of-day %s='%s'. Using default=%s.", key, raw, default)
        return default
    return f"{hour:02d}:{minute:02d}"


__all__ = ["env_bool", "env_float", "env_hhmm", "env_int", "env_list", "env_str"]
