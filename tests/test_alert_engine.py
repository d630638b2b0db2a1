from __future__ import annotations

from datetime import date
from typing import List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models.alert import WhatsAppAlertLog
from models.finance import Transaction
from models.profile import ProfileAuth
from services.alert_errors import TransientIOError
from services.alert_ledger import LedgerShape
from services.alert_runtime import AlertRuntime, build_runtime
from services.alert_suppression import MinuteSuppressionCache
from services.alerts import PROACTIVE_PRODUCERS
from services.alerts.base import AlertCandidate, AlertProducer
from services.domain_store import Subject

ANA = Subject(subject_id="u1", address="11999990001", name="Ana")
BIA = Subject(subject_id="u2", address="11999990002", name="Bia")


@pytest.fixture()
def runtime(engine, session_factory, settings, sender, monotonic) -> AlertRuntime:
    return build_runtime(
        settings,
        session_factory=session_factory,
        bind=engine,
        sender=sender,
        suppression=MinuteSuppressionCache(clock=monotonic),
    )


def static_producer(name: str, *keys: str, delivered: Optional[List[str]] = None) -> AlertProducer:
    def evaluate(store, subject, snapshot, settings):
        return [
            AlertCandidate(subject_id=subject.subject_id, alert_type=name, dedup_key=key, message=f"{name}:{key}")
            for key in keys
        ]

    hook = None
    if delivered is not None:
        hook = lambda store, candidate: delivered.append(candidate.dedup_key)  # noqa: E731
    return AlertProducer(name=name, evaluate=evaluate, on_delivered=hook)


def failing_producer(name: str) -> AlertProducer:
    def evaluate(store, subject, snapshot, settings):
        raise TransientIOError("diary unavailable", subject_id=subject.subject_id)

    return AlertProducer(name=name, evaluate=evaluate)


def test_rerun_in_same_window_sends_nothing_new(runtime, sender, at) -> None:
    producers = [static_producer("finance_low_balance", "2024-05-200-150")]
    snapshot = at("2024-05-10T09:00")

    first = runtime.engine.run_cycle(producers, snapshot=snapshot, subjects=[ANA, BIA])
    second = runtime.engine.run_cycle(producers, snapshot=at("2024-05-10T09:15"), subjects=[ANA, BIA])

    assert first.sent == 2
    assert second.sent == 0
    assert second.outcomes["duplicate"] == 2
    assert len(sender.calls) == 2


def test_daily_cap_defers_to_next_day(runtime, sender, at) -> None:
    today = at("2024-05-10T09:00")
    for key in ("a", "b", "c"):
        runtime.ledger.record("u1", "food_junk_repeat", key, day=today.local_date)
    producers = [static_producer("finance_low_balance", "2024-05-200-150")]

    report = runtime.engine.run_cycle(producers, snapshot=today, subjects=[ANA])

    assert report.sent == 0
    assert report.outcomes["throttled"] == 1
    assert sender.calls == []

    tomorrow = runtime.engine.run_cycle(producers, snapshot=at("2024-05-11T09:00"), subjects=[ANA])
    assert tomorrow.sent == 1


def test_cap_is_shared_across_producers_in_priority_order(runtime, sender, at) -> None:
    delivered: List[str] = []
    producers = [
        static_producer("finance_low_balance", "k1", delivered=delivered),
        static_producer("finance_category_spike", "k2", "k3", delivered=delivered),
        static_producer("food_junk_repeat", "k4", delivered=delivered),
    ]

    report = runtime.engine.run_cycle(producers, snapshot=at("2024-05-10T09:00"), subjects=[ANA])

    assert report.sent == 3
    assert delivered == ["k1", "k2", "k3"]
    assert [message for _, message in sender.calls] == [
        "finance_low_balance:k1",
        "finance_category_spike:k2",
        "finance_category_spike:k3",
    ]


def test_failed_delivery_does_not_consume_quota(runtime, sender, at) -> None:
    sender.fail_for = ("11999990001",)
    producers = [static_producer("finance_low_balance", "k1")]

    failed = runtime.engine.run_cycle(producers, snapshot=at("2024-05-10T09:00"), subjects=[ANA])
    assert failed.outcomes["failed"] == 1
    assert runtime.limiter.remaining("u1", at("2024-05-10T09:00")) == 3

    sender.fail_for = ()
    retried = runtime.engine.run_cycle(producers, snapshot=at("2024-05-10T09:15"), subjects=[ANA])
    assert retried.sent == 1


def test_ledger_outage_at_startup_recovers_on_next_cycle(tmp_path, settings, sender, monotonic, at) -> None:
    db_dir = tmp_path / "db"
    target = create_engine(f"sqlite:///{db_dir / 'alerts.db'}")
    runtime = build_runtime(
        settings,
        session_factory=sessionmaker(bind=target, expire_on_commit=False),
        bind=target,
        sender=sender,
        suppression=MinuteSuppressionCache(clock=monotonic),
    )
    producers = [static_producer("finance_low_balance", "2024-05-200-150")]
    assert runtime.ledger.layout.shape is LedgerShape.UNRESOLVED

    db_dir.mkdir()
    Base.metadata.create_all(bind=target, tables=[WhatsAppAlertLog.__table__])
    try:
        first = runtime.engine.run_cycle(producers, snapshot=at("2024-05-10T09:00"), subjects=[ANA])
        second = runtime.engine.run_cycle(producers, snapshot=at("2024-05-10T09:15"), subjects=[ANA])
    finally:
        target.dispose()

    assert runtime.ledger.layout.shape is LedgerShape.KEYED
    assert first.sent == 1
    assert second.sent == 0
    assert second.outcomes["duplicate"] == 1
    assert len(sender.calls) == 1


def test_producer_failure_is_contained(runtime, sender, at) -> None:
    producers = [failing_producer("food_junk_repeat"), static_producer("finance_low_balance", "k1")]

    report = runtime.engine.run_cycle(producers, snapshot=at("2024-05-10T09:00"), subjects=[ANA, BIA])

    assert report.errors == 2
    assert report.sent == 2


def test_subject_listing_failure_is_reported(runtime, monkeypatch: pytest.MonkeyPatch, at) -> None:
    def broken():
        raise TransientIOError("profiles unavailable")

    monkeypatch.setattr(runtime.store, "list_subjects", broken)

    report = runtime.engine.run_cycle([static_producer("x", "k")], snapshot=at("2024-05-10T09:00"))

    assert report.errors == 1
    assert report.subjects == 0


def test_inactive_producers_do_not_read_domain_state(runtime, at) -> None:
    calls: List[str] = []

    def evaluate(store, subject, snapshot, settings):
        calls.append(subject.subject_id)
        return []

    gated = AlertProducer(name="goals", evaluate=evaluate, gate=lambda snapshot, settings: snapshot.hour == 23)

    report = runtime.engine.run_cycle([gated], snapshot=at("2024-05-10T09:00"), subjects=[ANA])

    assert calls == []
    assert report.subjects == 0


def test_proactive_cycle_end_to_end(runtime, db_session, sender, at) -> None:
    db_session.add_all(
        [
            ProfileAuth(id="p1", auth_id="u1", name="Ana", whatsapp="11999990001"),
            Transaction(user_id="u1", type="income", amount=1000, date=date(2024, 5, 2)),
            Transaction(user_id="u1", type="expense", amount=850, category="Mercado", date=date(2024, 5, 8)),
        ]
    )
    db_session.commit()

    report = runtime.engine.run_cycle(PROACTIVE_PRODUCERS, snapshot=at("2024-05-10T09:00"), driver="proactive_alerts")

    assert report.subjects == 1
    assert [candidate.dedup_key for candidate in report.dispatched] == ["2024-05-200-150", "2024-05-Mercado"]
    assert report.sent == 2
    assert sender.calls[0][1].startswith("⚠️ Alerta financeiro")

    again = runtime.engine.run_cycle(PROACTIVE_PRODUCERS, snapshot=at("2024-05-10T09:15"), driver="proactive_alerts")
    assert again.sent == 0
    assert again.as_dict()["duplicate"] == 2
