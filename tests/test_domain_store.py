from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from models.calendar import DailyReminder, Event
from models.finance import Transaction
from models.food_diary import FoodDiaryEntry, FoodDiaryProfile, HydrationLog
from models.profile import ProfileAuth
from models.workout import WorkoutRoutine, WorkoutSchedule
from services.alert_errors import TransientIOError
from services.domain_store import DomainStore, NutritionGoals

DAY = date(2024, 5, 10)
DEFAULT_GOALS = NutritionGoals(calories=2000, protein=120, water_l=2.5)


@pytest.fixture()
def store(session_factory) -> DomainStore:
    return DomainStore(session_factory)


def test_list_subjects_filters_ineligible_profiles(db_session, store) -> None:
    db_session.add_all(
        [
            ProfileAuth(id="p1", auth_id="a1", name="Ana", whatsapp="11999990001"),
            ProfileAuth(id="p2", name="Bia", whatsapp="11999990002", subscription_status="active"),
            ProfileAuth(id="p3", name="Caio", whatsapp="11999990003", subscription_status="inactive"),
            ProfileAuth(id="p4", name="Admin", whatsapp="11999990004", role="admin"),
            ProfileAuth(id="p5", name="Sem zap", whatsapp=""),
            ProfileAuth(id="p6", name="Nulo"),
        ]
    )
    db_session.commit()

    subjects = store.list_subjects()

    assert sorted(subject.subject_id for subject in subjects) == ["a1", "p2"]
    ana = next(subject for subject in subjects if subject.subject_id == "a1")
    assert (ana.address, ana.name) == ("11999990001", "Ana")


def test_lookup_address_by_auth_id_then_profile_id(db_session, store) -> None:
    db_session.add_all(
        [
            ProfileAuth(id="p1", auth_id="a1", whatsapp=" 11999990001 "),
            ProfileAuth(id="p2", whatsapp="11999990002"),
        ]
    )
    db_session.commit()

    assert store.lookup_address("a1") == "11999990001"
    assert store.lookup_address("p2") == "11999990002"
    assert store.lookup_address("missing") is None


def test_transactions_between_is_inclusive(db_session, store) -> None:
    db_session.add_all(
        [
            Transaction(user_id="u1", type="income", amount=1000, date=date(2024, 5, 1)),
            Transaction(user_id="u1", type="expense", amount=850, category="Mercado", date=DAY),
            Transaction(user_id="u1", type="expense", amount=99, date=date(2024, 4, 30)),
            Transaction(user_id="u2", type="expense", amount=10, date=DAY),
        ]
    )
    db_session.commit()

    rows = store.transactions_between("u1", date(2024, 5, 1), DAY)

    assert sorted((row.type, row.amount, row.category) for row in rows) == [
        ("expense", 850.0, "Mercado"),
        ("income", 1000.0, None),
    ]


def test_diary_and_hydration(db_session, store) -> None:
    db_session.add_all(
        [
            FoodDiaryEntry(user_id="u1", entry_date=DAY, meal_type="Almoço", food="arroz", calories=600, protein=30),
            FoodDiaryEntry(user_id="u1", entry_date=DAY, meal_type="hydration", water_ml=500),
            HydrationLog(user_id="u1", day_date=DAY, amount_ml=750),
            HydrationLog(user_id="u1", day_date=date(2024, 5, 9), amount_ml=2000),
        ]
    )
    db_session.commit()

    entries = store.diary_entries_between("u1", DAY, DAY)

    assert len(entries) == 2
    assert {entry.meal_type for entry in entries} == {"Almoço", "hydration"}
    assert store.hydration_ml("u1", DAY) == 750
    assert store.hydration_ml("u2", DAY) == 0


def test_nutrition_goals_fall_back_in_order(db_session, store) -> None:
    db_session.add_all(
        [
            FoodDiaryProfile(user_id="u1", calorie_goal=1800, protein_goal=0, water_goal_l=None),
            ProfileAuth(id="p1", auth_id="u1", water_goal_l=3.0),
        ]
    )
    db_session.commit()

    assert store.nutrition_goals("u1", DEFAULT_GOALS) == NutritionGoals(calories=1800, protein=120, water_l=3.0)
    assert store.nutrition_goals("nobody", DEFAULT_GOALS) == DEFAULT_GOALS


def test_events_reminders_and_workout(db_session, store) -> None:
    routine = WorkoutRoutine(id="r1", user_id="u1", name="Treino A", muscle_groups="Peito, tríceps")
    db_session.add_all(
        [
            Event(id="e2", user_id="u1", title="Dentista", date=DAY, start="15:00"),
            Event(id="e1", user_id="u1", title="Reunião", date=DAY, start="09:00"),
            Event(id="e3", user_id="u1", title="Outro dia", date=date(2024, 5, 12)),
            DailyReminder(id="d1", user_id="u1", title="Remédio", reminder_time="08:00"),
            DailyReminder(id="d2", user_id="u1", title="Antigo", reminder_time="09:00", is_active=False),
            routine,
            WorkoutSchedule(id="s1", user_id="u1", weekday=5, routine=routine, reminder_time="06:30"),
        ]
    )
    db_session.commit()

    assert [event.id for event in store.events_on("u1", DAY)] == ["e1", "e2"]
    assert [reminder.id for reminder in store.active_daily_reminders("u1")] == ["d1"]

    workout = store.workout_for_weekday("u1", 5)
    assert (workout.routine_name, workout.muscle_groups, workout.reminder_time) == (
        "Treino A",
        "Peito, tríceps",
        "06:30",
    )
    assert store.workout_for_weekday("u1", 6) is None


def test_mark_event_dispatched(db_session, store) -> None:
    db_session.add(Event(id="e1", user_id="u1", title="Reunião", date=DAY, start="09:00"))
    db_session.commit()

    store.mark_event_dispatched("e1")

    assert store.events_on("u1", DAY)[0].status == "completed"


def test_read_failures_raise_transient_error(tmp_path) -> None:
    broken = create_engine(f"sqlite:///{tmp_path / 'missing-dir' / 'app.db'}")
    store = DomainStore(sessionmaker(bind=broken))

    with pytest.raises(TransientIOError):
        store.list_subjects()
    with pytest.raises(TransientIOError) as excinfo:
        store.events_on("u1", DAY)
    assert excinfo.value.subject_id == "u1"
