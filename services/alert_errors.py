"""Exception taxonomy for the alert engine.

None of these ever escape an evaluation cycle; they mark the narrowest scope
(candidate, producer or subject) that has to be skipped.
"""

from __future__ import annotations

from typing import Optional


class AlertEngineError(RuntimeError):
    """Base class carrying the context needed to act on a log line."""

    def __init__(
        self,
        message: str,
        *,
        subject_id: Optional[str] = None,
        alert_type: Optional[str] = None,
        dedup_key: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.subject_id = subject_id
        self.alert_type = alert_type
        self.dedup_key = dedup_key


class TransientIOError(AlertEngineError):
    """Domain-state or ledger read/write failed; retry on a later cycle."""


class SchemaMismatchError(AlertEngineError):
    """Ledger table lacks the columns required for idempotency."""


class DeliveryError(AlertEngineError):
    """Outbound channel refused or failed to deliver a message."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, **context: Optional[str]) -> None:
        super().__init__(message, **context)
        self.status_code = status_code


class ConfigurationError(AlertEngineError):
    """Missing address or configuration for a single subject."""


__all__ = [
    "AlertEngineError",
    "ConfigurationError",
    "DeliveryError",
    "SchemaMismatchError",
    "TransientIOError",
]
