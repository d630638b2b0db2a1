"""Load the alert driver beat schedule from YAML."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from celery.schedules import crontab, schedule

from core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SCHEDULE_FILE = Path(__file__).resolve().parent.parent / "configs" / "schedules" / "alerts.yml"


def cron_from_string(expr: str) -> crontab:
    """Convert a 5-field cron expression into a Celery ``crontab`` object."""
    fields = str(expr or "").split()
    if len(fields) != 5:
        raise ValueError(f"Invalid cron expression '{expr}'. Expected 5 fields.")
    minute, hour, day_of_month, month, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month,
        day_of_week=day_of_week,
    )


def _entry_from_payload(name: str, payload: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(payload, dict):
        logger.warning("Schedule entry %s is not a mapping; ignoring.", name)
        return None
    if payload.get("enabled") is False:
        logger.info("Schedule entry %s disabled.", name)
        return None
    task = payload.get("task")
    cron = payload.get("cron")
    every = payload.get("every_seconds")
    if not task or not (cron or every):
        logger.warning("Schedule entry %s needs 'task' and 'cron' or 'every_seconds'; ignoring.", name)
        return None
    entry: Dict[str, Any] = {
        "task": str(task),
        "args": list(payload.get("args") or []),
        "kwargs": dict(payload.get("kwargs") or {}),
        "options": dict(payload.get("options") or {}),
    }
    if cron:
        entry["cron"] = str(cron)
    else:
        entry["every_seconds"] = float(every)
    return entry


def load_schedule_config(path: Optional[Path] = None) -> Tuple[Optional[str], Dict[str, Dict[str, Any]], Path]:
    """Return timezone + validated schedule entries from the YAML definition."""
    schedule_path = path or DEFAULT_SCHEDULE_FILE
    if not schedule_path.exists():
        logger.warning("Schedule file %s not found; beat schedule is empty.", schedule_path)
        return None, {}, schedule_path

    try:
        raw = yaml.safe_load(schedule_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise RuntimeError(f"Failed to parse Celery schedule file: {schedule_path}") from exc

    entries: Dict[str, Dict[str, Any]] = {}
    for name, payload in (raw.get("entries") or {}).items():
        entry = _entry_from_payload(str(name), payload)
        if entry is not None:
            entries[str(name)] = entry
    return raw.get("timezone"), entries, schedule_path


def as_celery_schedule(entries: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Convert validated entries into Celery beat schedule structures."""
    beat: Dict[str, Dict[str, Any]] = {}
    for name, payload in entries.items():
        if payload.get("cron"):
            when: Any = cron_from_string(payload["cron"])
        elif payload.get("every_seconds"):
            when = schedule(run_every=timedelta(seconds=payload["every_seconds"]))
        else:
            continue
        entry = {
            "task": payload["task"],
            "schedule": when,
            "args": payload.get("args", []),
            "kwargs": payload.get("kwargs", {}),
        }
        if payload.get("options"):
            entry["options"] = payload["options"]
        beat[name] = entry
    return beat


__all__ = ["DEFAULT_SCHEDULE_FILE", "as_celery_schedule", "cron_from_string", "load_schedule_config"]
