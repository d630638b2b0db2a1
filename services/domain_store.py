"""Read-only snapshots of the CRUD tables consumed by the alert producers.

Every query opens a short-lived session and returns plain dataclasses, so
producers never touch the ORM. SQLAlchemy failures surface as
``TransientIOError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.logging import get_logger
from models.calendar import EVENT_COMPLETED_STATUS, DailyReminder, Event
from models.finance import Transaction
from models.food_diary import FoodDiaryEntry, FoodDiaryProfile, HydrationLog
from models.profile import ProfileAuth
from models.workout import WorkoutSchedule
from services.alert_errors import TransientIOError

logger = get_logger(__name__)

INACTIVE_SUBSCRIPTION = "inactive"
ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Subject:
    subject_id: str
    address: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class TransactionRow:
    type: str
    amount: float
    category: Optional[str] = None


@dataclass(frozen=True)
class DiaryRow:
    entry_date: date
    meal_type: Optional[str] = None
    food: Optional[str] = None
    calories: float = 0.0
    protein: float = 0.0
    water_ml: float = 0.0


@dataclass(frozen=True)
class NutritionGoals:
    calories: float
    protein: float
    water_l: float


@dataclass(frozen=True)
class EventRow:
    id: str
    title: Optional[str]
    date: date
    start: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class ReminderRow:
    id: str
    title: Optional[str]
    reminder_time: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class WorkoutRow:
    schedule_id: str
    routine_name: Optional[str]
    muscle_groups: Optional[str] = None
    reminder_time: Optional[str] = None


def _as_float(value: object) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _positive(value: object) -> Optional[float]:
    number = _as_float(value)
    return number if number > 0 else None


class DomainStore:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def _read(self, label: str, subject_id: Optional[str], fn: Callable[[Session], object]):
        try:
            with self._session_factory() as session:
                return fn(session)
        except SQLAlchemyError as exc:
            raise TransientIOError(f"Failed to load {label}: {exc}", subject_id=subject_id) from exc

    def list_subjects(self) -> List[Subject]:
        """Profiles with a WhatsApp address, not inactive and not administrative."""

        def _query(session: Session) -> List[Subject]:
            stmt = (
                select(ProfileAuth)
                .where(ProfileAuth.whatsapp.is_not(None), ProfileAuth.whatsapp != "")
                .where(
                    or_(
                        ProfileAuth.subscription_status.is_(None),
                        ProfileAuth.subscription_status != INACTIVE_SUBSCRIPTION,
                    )
                )
                .where(or_(ProfileAuth.role.is_(None), ProfileAuth.role != ADMIN_ROLE))
                .order_by(ProfileAuth.created_at, ProfileAuth.id)
            )
            return [
                Subject(subject_id=profile.subject_id, address=profile.whatsapp, name=profile.name)
                for profile in session.execute(stmt).scalars()
            ]

        return self._read("eligible subjects", None, _query)

    def lookup_address(self, subject_id: str) -> Optional[str]:
        """Find the WhatsApp address by ``auth_id``, then by profile id."""

        def _query(session: Session) -> Optional[str]:
            for column in (ProfileAuth.auth_id, ProfileAuth.id):
                value = session.execute(
                    select(ProfileAuth.whatsapp).where(column == subject_id).limit(1)
                ).scalar()
                if value and str(value).strip():
                    return str(value).strip()
            return None

        return self._read("subject address", subject_id, _query)

    def transactions_between(self, subject_id: str, start: date, end: date) -> List[TransactionRow]:
        def _query(session: Session) -> List[TransactionRow]:
            stmt = select(Transaction.type, Transaction.amount, Transaction.category).where(
                Transaction.user_id == subject_id,
                Transaction.date >= start,
                Transaction.date <= end,
            )
            return [
                TransactionRow(type=row.type, amount=_as_float(row.amount), category=row.category)
                for row in session.execute(stmt)
            ]

        return self._read("transactions", subject_id, _query)

    def diary_entries_between(self, subject_id: str, start: date, end: date) -> List[DiaryRow]:
        def _query(session: Session) -> List[DiaryRow]:
            stmt = (
                select(FoodDiaryEntry)
                .where(
                    FoodDiaryEntry.user_id == subject_id,
                    FoodDiaryEntry.entry_date >= start,
                    FoodDiaryEntry.entry_date <= end,
                )
                .order_by(FoodDiaryEntry.entry_date)
            )
            return [
                DiaryRow(
                    entry_date=entry.entry_date,
                    meal_type=entry.meal_type,
                    food=entry.food,
                    calories=_as_float(entry.calories),
                    protein=_as_float(entry.protein),
                    water_ml=_as_float(entry.water_ml),
                )
                for entry in session.execute(stmt).scalars()
            ]

        return self._read("food diary", subject_id, _query)

    def nutrition_goals(self, subject_id: str, defaults: NutritionGoals) -> NutritionGoals:
        """Goals from ``food_diary_profile``; water falls back to ``profiles_auth``."""

        def _query(session: Session) -> NutritionGoals:
            profile = session.get(FoodDiaryProfile, subject_id)
            calories = _positive(profile.calorie_goal) if profile else None
            protein = _positive(profile.protein_goal) if profile else None
            water = _positive(profile.water_goal_l) if profile else None
            if water is None:
                fallback = session.execute(
                    select(ProfileAuth.water_goal_l)
                    .where(or_(ProfileAuth.auth_id == subject_id, ProfileAuth.id == subject_id))
                    .limit(1)
                ).scalar()
                water = _positive(fallback)
            return NutritionGoals(
                calories=calories or defaults.calories,
                protein=protein or defaults.protein,
                water_l=water or defaults.water_l,
            )

        return self._read("nutrition goals", subject_id, _query)

    def hydration_ml(self, subject_id: str, day: date) -> float:
        def _query(session: Session) -> float:
            total = session.execute(
                select(func.coalesce(func.sum(HydrationLog.amount_ml), 0)).where(
                    HydrationLog.user_id == subject_id,
                    HydrationLog.day_date == day,
                )
            ).scalar()
            return _as_float(total)

        return self._read("hydration logs", subject_id, _query)

    def events_on(self, subject_id: str, day: date) -> List[EventRow]:
        def _query(session: Session) -> List[EventRow]:
            stmt = select(Event).where(Event.user_id == subject_id, Event.date == day).order_by(Event.start)
            return [
                EventRow(
                    id=event.id,
                    title=event.title,
                    date=event.date,
                    start=event.start,
                    notes=event.notes,
                    status=event.status,
                )
                for event in session.execute(stmt).scalars()
            ]

        return self._read("events", subject_id, _query)

    def active_daily_reminders(self, subject_id: str) -> List[ReminderRow]:
        def _query(session: Session) -> List[ReminderRow]:
            stmt = select(DailyReminder).where(
                DailyReminder.user_id == subject_id,
                DailyReminder.is_active.is_(True),
            )
            return [
                ReminderRow(
                    id=reminder.id,
                    title=reminder.title,
                    reminder_time=reminder.reminder_time,
                    notes=reminder.notes,
                )
                for reminder in session.execute(stmt).scalars()
            ]

        return self._read("daily reminders", subject_id, _query)

    def workout_for_weekday(self, subject_id: str, iso_weekday: int) -> Optional[WorkoutRow]:
        def _query(session: Session) -> Optional[WorkoutRow]:
            schedule = session.execute(
                select(WorkoutSchedule)
                .where(
                    WorkoutSchedule.user_id == subject_id,
                    WorkoutSchedule.weekday == iso_weekday,
                    WorkoutSchedule.is_active.is_(True),
                )
                .limit(1)
            ).scalars().first()
            if schedule is None:
                return None
            routine = schedule.routine
            return WorkoutRow(
                schedule_id=schedule.id,
                routine_name=routine.name if routine else None,
                muscle_groups=routine.muscle_groups if routine else None,
                reminder_time=schedule.reminder_time,
            )

        return self._read("workout schedule", subject_id, _query)

    def mark_event_dispatched(self, event_id: str) -> None:
        try:
            with self._session_factory() as session:
                session.execute(update(Event).where(Event.id == event_id).values(status=EVENT_COMPLETED_STATUS))
                session.commit()
        except SQLAlchemyError as exc:
            raise TransientIOError(f"Failed to mark event {event_id} as {EVENT_COMPLETED_STATUS}: {exc}") from exc
        logger.info("Event %s marked as %s.", event_id, EVENT_COMPLETED_STATUS)


__all__ = [
    "DiaryRow",
    "DomainStore",
    "EventRow",
    "NutritionGoals",
    "ReminderRow",
    "Subject",
    "TransactionRow",
    "WorkoutRow",
]
