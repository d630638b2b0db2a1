"""Alert producers grouped by the driver that evaluates them, in priority order."""

from .base import AlertCandidate, AlertProducer, AlertType
from .calendar import EVENT_REMINDER_PRODUCER
from .diet import DAILY_GOALS_PRODUCER, JUNK_REPEAT_PRODUCER, MEAL_MISSING_PRODUCER, PROTEIN_LOW_PRODUCER
from .finance import CATEGORY_SPIKE_PRODUCER, LOW_BALANCE_PRODUCER
from .reminders import DAILY_REMINDER_PRODUCER, WORKOUT_SCHEDULE_PRODUCER

PROACTIVE_PRODUCERS = (
    LOW_BALANCE_PRODUCER,
    CATEGORY_SPIKE_PRODUCER,
    JUNK_REPEAT_PRODUCER,
    PROTEIN_LOW_PRODUCER,
    MEAL_MISSING_PRODUCER,
)
GOALS_PRODUCERS = (DAILY_GOALS_PRODUCER,)
REMINDER_PRODUCERS = (
    DAILY_REMINDER_PRODUCER,
    EVENT_REMINDER_PRODUCER,
    WORKOUT_SCHEDULE_PRODUCER,
)

__all__ = [
    "AlertCandidate",
    "AlertProducer",
    "AlertType",
    "GOALS_PRODUCERS",
    "PROACTIVE_PRODUCERS",
    "REMINDER_PRODUCERS",
]
