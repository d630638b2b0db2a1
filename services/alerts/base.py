"""Shared types for the alert producers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional

from services.alert_config import AlertSettings
from services.clock import ClockSnapshot
from services.domain_store import DomainStore, Subject


class AlertType(str, Enum):
    """Ledger ``alert_type`` values; kept compatible with rows already stored."""

    FINANCE_LOW_BALANCE = "finance_low_balance"
    FINANCE_CATEGORY_SPIKE = "finance_category_spike"
    FOOD_JUNK_REPEAT = "food_junk_repeat"
    FOOD_PROTEIN_LOW = "food_protein_low"
    DAILY_GOALS = "daily_goals_23h"
    MEAL_MISSING = "food_meal_missing"
    EVENT_TWO_DAYS = "event_reminder_two_days"
    EVENT_TODAY = "event_reminder_today"
    DAILY_REMINDER = "daily_reminder"
    WORKOUT_SCHEDULE = "workout_schedule"


@dataclass(frozen=True)
class AlertCandidate:
    subject_id: str
    alert_type: str
    dedup_key: str
    message: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


Evaluator = Callable[[DomainStore, Subject, ClockSnapshot, AlertSettings], List[AlertCandidate]]
Gate = Callable[[ClockSnapshot, AlertSettings], bool]
DeliveredHook = Callable[[DomainStore, AlertCandidate], None]


@dataclass(frozen=True)
class AlertProducer:
    """One domain evaluator.

    ``gate`` is a cheap time check run before any domain read; ``evaluate``
    loads the state it needs and returns candidates in priority order.
    """

    name: str
    evaluate: Evaluator
    gate: Optional[Gate] = None
    on_delivered: Optional[DeliveredHook] = None

    def is_active(self, snapshot: ClockSnapshot, settings: AlertSettings) -> bool:
        return self.gate is None or self.gate(snapshot, settings)


def format_number(value: float, digits: int = 0) -> str:
    """pt-BR number formatting (``1.234,5``)."""
    text = f"{value:,.{digits}f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_brl(value: float) -> str:
    prefix = "-" if value < 0 else ""
    return f"{prefix}R$ {format_number(abs(value), 2)}"


__all__ = [
    "AlertCandidate",
    "AlertProducer",
    "AlertType",
    "format_brl",
    "format_number",
]
