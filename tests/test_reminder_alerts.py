from __future__ import annotations

from datetime import date

from models.profile import ProfileAuth
from models.workout import WorkoutRoutine, WorkoutSchedule
from services.alerts.reminders import (
    build_daily_reminder_alerts,
    build_workout_alert,
    evaluate_workout,
    render_daily_reminder,
    render_morning_agenda,
    workout_reminder_time,
)
from services.domain_store import DomainStore, EventRow, ReminderRow, Subject, WorkoutRow

SUBJECT = Subject(subject_id="u1", address="11999990001")
DAY = date(2024, 6, 10)
WORKOUT = WorkoutRow(schedule_id="s1", routine_name="Treino A", muscle_groups="Pernas")


def test_daily_reminder_fires_on_exact_minute(at) -> None:
    reminders = [
        ReminderRow(id="r1", title="Tomar remédio", reminder_time="8:00:00", notes="Com água"),
        ReminderRow(id="r2", title="Ler", reminder_time="21:00"),
    ]

    candidates = build_daily_reminder_alerts(SUBJECT, at("2024-06-10T08:00"), reminders)

    assert [candidate.dedup_key for candidate in candidates] == ["r1-2024-06-10"]
    assert candidates[0].message == "⏰ Agenda Diária\nTomar remédio\n\n📝 Notas: Com água"
    assert build_daily_reminder_alerts(SUBJECT, at("2024-06-10T08:01"), reminders) == []


def test_daily_reminder_without_notes() -> None:
    assert render_daily_reminder(ReminderRow(id="r2", title="Ler", reminder_time="21:00")) == "⏰ Agenda Diária\nLer"


def test_morning_agenda_lists_events_and_workout() -> None:
    events = [
        EventRow(id="e2", title="Dentista", date=DAY, start="15:00"),
        EventRow(id="e1", title="Reunião", date=DAY, start="9:00"),
    ]

    message = render_morning_agenda(events, WORKOUT)

    assert message == (
        "📅 Bom dia - Gestão Pessoal\n"
        "\n🗓 Eventos de hoje:\n"
        "• Reunião 09:00\n"
        "• Dentista 15:00\n"
        "\n💪 Treino de hoje:\nTreino A\nPernas\n"
        "\nBora manter a constância."
    )


def test_morning_agenda_empty_without_content() -> None:
    assert render_morning_agenda([], None) == ""
    assert render_morning_agenda([], WorkoutRow(schedule_id="s1", routine_name=None)) == ""


def test_workout_reminder_time_prefers_custom(settings) -> None:
    assert workout_reminder_time(None, settings) == "07:00"
    assert workout_reminder_time(WorkoutRow(schedule_id="s1", routine_name="A", reminder_time="6:30"), settings) == "06:30"


def test_workout_alert_only_at_reminder_minute(settings, at) -> None:
    assert build_workout_alert(SUBJECT, at("2024-06-10T07:01"), settings, WORKOUT, []) is None

    candidate = build_workout_alert(SUBJECT, at("2024-06-10T07:00"), settings, WORKOUT, [])

    assert candidate.alert_type == "workout_schedule"
    assert candidate.dedup_key == "u1-2024-06-10"
    assert candidate.metadata == {"schedule_id": "s1", "events": 0}


def test_evaluate_workout_reads_weekday_schedule(db_session, session_factory, settings, at) -> None:
    routine = WorkoutRoutine(id="r1", user_id="u1", name="Treino B", muscle_groups="Costas")
    db_session.add_all(
        [
            ProfileAuth(id="p1", auth_id="u1", whatsapp="11999990001"),
            routine,
            WorkoutSchedule(id="s1", user_id="u1", weekday=1, routine=routine),
        ]
    )
    db_session.commit()
    store = DomainStore(session_factory)

    # 2024-06-10 is a Monday.
    (candidate,) = evaluate_workout(store, SUBJECT, at("2024-06-10T07:00"), settings)
    assert "Treino B\nCostas" in candidate.message
    assert evaluate_workout(store, SUBJECT, at("2024-06-11T07:00"), settings) == []
