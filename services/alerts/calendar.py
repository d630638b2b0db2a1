"""Calendar event reminders in two stages: days-before (morning window) and same day."""

from __future__ import annotations

from typing import List, Optional, Sequence

from models.calendar import EVENT_COMPLETED_STATUS
from services.alert_config import AlertSettings
from services.alerts.base import AlertCandidate, AlertProducer, AlertType
from services.clock import ClockSnapshot, normalize_hhmm, parse_hhmm
from services.domain_store import DomainStore, EventRow, Subject

STAGE_TWO_DAYS = "two_days"
STAGE_TODAY = "today"


def _with_notes(lines: List[str], notes: Optional[str]) -> str:
    text = (notes or "").strip()
    if text:
        lines.extend(["", f"📝 Notas: {text}"])
    return "\n".join(lines)


def render_advance_message(event: EventRow, days: int) -> str:
    lines = [
        "⏰ Lembrete antecipado",
        f"Seu compromisso está marcado para daqui a {days} dias.",
        "",
        f"📌 Título: {event.title or 'Evento'}",
        f"📅 Data: {event.date.isoformat() if event.date else '-'}",
        f"🕒 Horário: {normalize_hhmm(event.start) or '-'}",
    ]
    return _with_notes(lines, event.notes)


def render_same_day_message(event: EventRow) -> str:
    lines = [
        "📅 Lembrete de agenda",
        "",
        f"Título: {event.title or 'Evento'}",
        f"Horário: {normalize_hhmm(event.start) or '-'}",
    ]
    return _with_notes(lines, event.notes)


def build_advance_alerts(
    subject: Subject,
    snapshot: ClockSnapshot,
    settings: AlertSettings,
    events: Sequence[EventRow],
) -> List[AlertCandidate]:
    """Events dated ``event_advance_days`` ahead, only inside the morning window."""
    if not snapshot.in_window(settings.event_advance_window):
        return []
    target = snapshot.shift_days(settings.event_advance_days)
    candidates = []
    for event in events:
        if event.date != target or event.status == EVENT_COMPLETED_STATUS:
            continue
        candidates.append(
            AlertCandidate(
                subject_id=subject.subject_id,
                alert_type=AlertType.EVENT_TWO_DAYS.value,
                dedup_key=f"{event.id}-{STAGE_TWO_DAYS}",
                message=render_advance_message(event, settings.event_advance_days),
                metadata={"event_id": event.id, "stage": STAGE_TWO_DAYS},
            )
        )
    return candidates


def build_same_day_alerts(
    subject: Subject,
    snapshot: ClockSnapshot,
    settings: AlertSettings,
    events: Sequence[EventRow],
) -> List[AlertCandidate]:
    """Events starting today whose start falls in ``[start, start + tolerance)``."""
    candidates = []
    now_minute = snapshot.minute_of_day
    for event in events:
        if event.date != snapshot.local_date or event.status == EVENT_COMPLETED_STATUS:
            continue
        start = parse_hhmm(event.start)
        if start is None:
            continue
        if not (start <= now_minute < start + settings.event_tolerance_minutes):
            continue
        candidates.append(
            AlertCandidate(
                subject_id=subject.subject_id,
                alert_type=AlertType.EVENT_TODAY.value,
                dedup_key=f"{event.id}-{STAGE_TODAY}",
                message=render_same_day_message(event),
                metadata={"event_id": event.id, "stage": STAGE_TODAY},
            )
        )
    return candidates


def evaluate_events(
    store: DomainStore, subject: Subject, snapshot: ClockSnapshot, settings: AlertSettings
) -> List[AlertCandidate]:
    candidates = build_same_day_alerts(subject, snapshot, settings, store.events_on(subject.subject_id, snapshot.local_date))
    if snapshot.in_window(settings.event_advance_window):
        upcoming = store.events_on(subject.subject_id, snapshot.shift_days(settings.event_advance_days))
        candidates.extend(build_advance_alerts(subject, snapshot, settings, upcoming))
    return candidates


def mark_dispatched(store: DomainStore, candidate: AlertCandidate) -> None:
    if candidate.metadata.get("stage") == STAGE_TODAY and candidate.metadata.get("event_id"):
        store.mark_event_dispatched(str(candidate.metadata["event_id"]))


EVENT_REMINDER_PRODUCER = AlertProducer(
    name="calendar_events",
    evaluate=evaluate_events,
    on_delivered=mark_dispatched,
)


__all__ = [
    "EVENT_REMINDER_PRODUCER",
    "STAGE_TODAY",
    "STAGE_TWO_DAYS",
    "build_advance_alerts",
    "build_same_day_alerts",
    "render_advance_message",
    "render_same_day_message",
]
