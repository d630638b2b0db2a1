"""Prometheus helpers for alert dispatch and driver cycles."""

from __future__ import annotations

from typing import Optional

from core.logging import get_logger

logger = get_logger(__name__)

try:  # pragma: no cover - optional dependency
    from prometheus_client import Counter, Histogram  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    Counter = None  # type: ignore
    Histogram = None  # type: ignore

_CYCLE_HISTOGRAM: Optional["Histogram"] = None  # type: ignore[name-defined]
_OUTCOME_COUNTER: Optional["Counter"] = None  # type: ignore[name-defined]
_SKIPPED_CYCLE_COUNTER: Optional["Counter"] = None  # type: ignore[name-defined]
_CYCLE_BUCKETS = (
    0.1,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
)

if Histogram is not None and Counter is not None:
    try:
        _CYCLE_HISTOGRAM = Histogram(
            "alert_driver_cycle_seconds",
            "Seconds spent in one alert driver cycle.",
            ("driver",),
            buckets=_CYCLE_BUCKETS,
        )
        _OUTCOME_COUNTER = Counter(
            "alert_dispatch_total",
            "Alert candidates by dispatch outcome.",
            ("alert_type", "outcome"),
        )
        _SKIPPED_CYCLE_COUNTER = Counter(
            "alert_driver_skipped_total",
            "Driver triggers skipped by the reentrancy or interval guards.",
            ("driver", "reason"),
        )
    except ValueError:  # pragma: no cover - duplicate registration during reload
        logger.debug("Alert metrics already registered; reusing collectors.")


def observe_cycle(driver: str, seconds: float) -> None:
    if _CYCLE_HISTOGRAM is None or seconds < 0:
        return
    try:
        _CYCLE_HISTOGRAM.labels(driver=driver).observe(seconds)
    except ValueError:  # pragma: no cover
        logger.debug("Failed to record cycle latency (driver=%s)", driver)


def record_outcome(alert_type: str, outcome: str) -> None:
    if _OUTCOME_COUNTER is None:
        return
    try:
        _OUTCOME_COUNTER.labels(alert_type=alert_type or "unknown", outcome=outcome or "unknown").inc()
    except ValueError:  # pragma: no cover
        logger.debug("Failed to record dispatch outcome (type=%s outcome=%s)", alert_type, outcome)


def record_skipped_cycle(driver: str, reason: str) -> None:
    if _SKIPPED_CYCLE_COUNTER is None:
        return
    try:
        _SKIPPED_CYCLE_COUNTER.labels(driver=driver, reason=reason).inc()
    except ValueError:  # pragma: no cover
        logger.debug("Failed to record skipped cycle (driver=%s reason=%s)", driver, reason)


__all__ = ["observe_cycle", "record_outcome", "record_skipped_cycle"]
