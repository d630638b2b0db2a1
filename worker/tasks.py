"""Celery beat tasks; each one fires a long-lived driver in this worker process."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from celery import shared_task

from core.logging import get_logger
from services.alert_drivers import GOALS_DRIVER, PROACTIVE_DRIVER, REMINDERS_DRIVER
from services.alert_runtime import get_runtime

logger = get_logger(__name__)


def _run_driver(name: str, at: Optional[str] = None) -> Dict[str, Any]:
    runtime = get_runtime()
    instant = runtime.clock.localize(datetime.fromisoformat(at)) if at else None
    report = runtime.driver(name).trigger(instant)
    if report is None:
        logger.debug("Task for driver %s produced no cycle.", name)
        return {"driver": name, "skipped": True}
    return report.as_dict()


@shared_task(name="alerts.run_proactive")
def run_proactive_alerts(at: Optional[str] = None) -> Dict[str, Any]:
    """Finance and diet alerts inside the daytime alert window."""
    return _run_driver(PROACTIVE_DRIVER, at)


@shared_task(name="alerts.run_daily_goals")
def run_daily_goals(at: Optional[str] = None) -> Dict[str, Any]:
    return _run_driver(GOALS_DRIVER, at)


@shared_task(name="alerts.run_reminders")
def run_reminders(at: Optional[str] = None) -> Dict[str, Any]:
    """Custom daily reminders, calendar events and the morning workout agenda."""
    return _run_driver(REMINDERS_DRIVER, at)


__all__ = ["run_daily_goals", "run_proactive_alerts", "run_reminders"]
