"""Shared logging helpers."""

from __future__ import annotations

import logging
import os
import re
from typing import Optional

try:  # pragma: no cover - optional dependency
    from google.cloud import logging as gcp_logging
except Exception:  # pragma: no cover - GCP logging optional
    gcp_logging = None

_CONFIGURED = False
_CLOUD_HANDLER_ATTACHED = False
_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
_NON_DIGIT = re.compile(r"\D")


def _maybe_setup_google_logging(level: int) -> None:
    """Attach Google Cloud Logging handler when enabled via environment."""
    global _CLOUD_HANDLER_ATTACHED
    if _CLOUD_HANDLER_ATTACHED or gcp_logging is None:
        return
    enabled = os.getenv("ENABLE_GOOGLE_CLOUD_LOGGING", "false").strip().lower() in {"1", "true", "yes", "on"}
    if not enabled:
        return
    try:
        client = gcp_logging.Client()
        client.setup_logging(log_level=level)
        _CLOUD_HANDLER_ATTACHED = True
    except Exception as exc:  # pragma: no cover - handler best-effort
        logging.getLogger(__name__).warning("Failed to initialise Google Cloud Logging: %s", exc)


def _resolve_level(level: Optional[int]) -> int:
    if level is not None:
        return level
    raw = (os.getenv("ALERT_LOG_LEVEL") or "").strip().upper()
    resolved = logging.getLevelName(raw) if raw else logging.INFO
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: Optional[int] = None, *, fmt: Optional[str] = None) -> None:
    """Ensure root logger is configured once."""
    global _CONFIGURED
    resolved = _resolve_level(level)
    if not _CONFIGURED:
        logging.basicConfig(level=resolved, format=fmt or _DEFAULT_FORMAT)
        _CONFIGURED = True
    _maybe_setup_google_logging(resolved)


def get_logger(name: str, *, level: Optional[int] = None) -> logging.Logger:
    """Return configured logger for a module."""
    setup_logging(level=level)
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    return logger


def mask_phone(value: Optional[str]) -> str:
    """Hide every digit of a phone number except the last four."""
    digits = _NON_DIGIT.sub("", str(value or ""))
    if len(digits) <= 4:
        return "*" * len(digits)
    return "*" * (len(digits) - 4) + digits[-4:]


__all__ = ["get_logger", "mask_phone", "setup_logging"]
