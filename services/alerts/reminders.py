"""Fixed-time reminders: user-authored daily reminders and the morning workout agenda."""

from __future__ import annotations

from typing import List, Optional, Sequence

from services.alert_config import AlertSettings
from services.alerts.base import AlertCandidate, AlertProducer, AlertType
from services.clock import ClockSnapshot, normalize_hhmm
from services.domain_store import DomainStore, EventRow, ReminderRow, Subject, WorkoutRow


def render_daily_reminder(reminder: ReminderRow) -> str:
    message = f"⏰ Agenda Diária\n{reminder.title or ''}"
    notes = (reminder.notes or "").strip()
    if notes:
        message += f"\n\n📝 Notas: {notes}"
    return message


def build_daily_reminder_alerts(
    subject: Subject,
    snapshot: ClockSnapshot,
    reminders: Sequence[ReminderRow],
) -> List[AlertCandidate]:
    return [
        AlertCandidate(
            subject_id=subject.subject_id,
            alert_type=AlertType.DAILY_REMINDER.value,
            dedup_key=f"{reminder.id}-{snapshot.date_str}",
            message=render_daily_reminder(reminder),
            metadata={"reminder_id": reminder.id},
        )
        for reminder in reminders
        if normalize_hhmm(reminder.reminder_time) == snapshot.hhmm
    ]


def render_morning_agenda(events: Sequence[EventRow], workout: Optional[WorkoutRow]) -> str:
    """Today's events sorted by start plus the scheduled routine; empty when there is neither."""
    ordered = sorted(events, key=lambda event: normalize_hhmm(event.start) or "")
    workout_text = ""
    if workout and workout.routine_name:
        muscle_groups = (workout.muscle_groups or "").strip()
        workout_text = f"💪 Treino de hoje:\n{workout.routine_name}"
        if muscle_groups:
            workout_text += f"\n{muscle_groups}"

    if not ordered and not workout_text:
        return ""

    message = "📅 Bom dia - Gestão Pessoal\n"
    if ordered:
        message += "\n🗓 Eventos de hoje:\n"
        for event in ordered:
            message += f"• {event.title or 'Evento'} {normalize_hhmm(event.start) or ''}".rstrip() + "\n"
    if workout_text:
        message += f"\n{workout_text}\n"
    message += "\nBora manter a constância."
    return message


def workout_reminder_time(workout: Optional[WorkoutRow], settings: AlertSettings) -> str:
    if workout is not None:
        custom = normalize_hhmm(workout.reminder_time)
        if custom:
            return custom
    return settings.workout_reminder_time


def build_workout_alert(
    subject: Subject,
    snapshot: ClockSnapshot,
    settings: AlertSettings,
    workout: Optional[WorkoutRow],
    events: Sequence[EventRow],
) -> Optional[AlertCandidate]:
    if snapshot.hhmm != workout_reminder_time(workout, settings):
        return None
    message = render_morning_agenda(events, workout)
    if not message:
        return None
    return AlertCandidate(
        subject_id=subject.subject_id,
        alert_type=AlertType.WORKOUT_SCHEDULE.value,
        dedup_key=f"{subject.subject_id}-{snapshot.date_str}",
        message=message,
        metadata={"schedule_id": workout.schedule_id if workout else None, "events": len(events)},
    )


def evaluate_daily_reminders(
    store: DomainStore, subject: Subject, snapshot: ClockSnapshot, settings: AlertSettings
) -> List[AlertCandidate]:
    return build_daily_reminder_alerts(subject, snapshot, store.active_daily_reminders(subject.subject_id))


def evaluate_workout(
    store: DomainStore, subject: Subject, snapshot: ClockSnapshot, settings: AlertSettings
) -> List[AlertCandidate]:
    workout = store.workout_for_weekday(subject.subject_id, snapshot.iso_weekday)
    if snapshot.hhmm != workout_reminder_time(workout, settings):
        return []
    events = store.events_on(subject.subject_id, snapshot.local_date)
    candidate = build_workout_alert(subject, snapshot, settings, workout, events)
    return [candidate] if candidate else []


DAILY_REMINDER_PRODUCER = AlertProducer(name="daily_reminders", evaluate=evaluate_daily_reminders)
WORKOUT_SCHEDULE_PRODUCER = AlertProducer(name="workout_schedule", evaluate=evaluate_workout)


__all__ = [
    "DAILY_REMINDER_PRODUCER",
    "WORKOUT_SCHEDULE_PRODUCER",
    "build_daily_reminder_alerts",
    "build_workout_alert",
    "render_daily_reminder",
    "render_morning_agenda",
    "workout_reminder_time",
]
