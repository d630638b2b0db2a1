from __future__ import annotations

import pytest
from sqlalchemy import select

from models.alert import WhatsAppAlertLog
from models.profile import ProfileAuth
from services.alert_dispatcher import AlertDispatcher, DispatchOutcome
from services.alert_errors import TransientIOError
from services.alert_ledger import AlertLedger, resolve_ledger_layout
from services.alert_rate_limiter import QuotaCounter
from services.alert_suppression import MinuteSuppressionCache
from services.alerts.base import AlertCandidate
from services.domain_store import DomainStore, Subject
from services.notification_service import DeliveryResult

SUBJECT = Subject(subject_id="u1", address="11999990001", name="Ana")
CANDIDATE = AlertCandidate(
    subject_id="u1",
    alert_type="finance_low_balance",
    dedup_key="2024-05-200-150",
    message="⚠️ Alerta financeiro",
)


@pytest.fixture()
def ledger(engine, session_factory) -> AlertLedger:
    return AlertLedger(session_factory, resolve_ledger_layout(engine, "whatsapp_alert_logs"))


@pytest.fixture()
def suppression(monotonic) -> MinuteSuppressionCache:
    return MinuteSuppressionCache(clock=monotonic)


@pytest.fixture()
def dispatcher(ledger, session_factory, settings, sender, suppression) -> AlertDispatcher:
    return AlertDispatcher(
        ledger=ledger,
        store=DomainStore(session_factory),
        settings=settings,
        sender=sender,
        suppression=suppression,
    )


def _rows(session_factory):
    with session_factory() as session:
        return [(row.status, row.alert_key, row.error) for row in session.execute(select(WhatsAppAlertLog)).scalars()]


def test_sent_once_then_duplicate(dispatcher, sender, session_factory, at) -> None:
    counter = QuotaCounter(subject_id="u1", cap=3)

    assert dispatcher.dispatch(CANDIDATE, SUBJECT, at("2024-05-10T09:00"), counter) is DispatchOutcome.SENT
    assert dispatcher.dispatch(CANDIDATE, SUBJECT, at("2024-05-10T09:15"), counter) is DispatchOutcome.DUPLICATE

    assert sender.calls == [("11999990001", "⚠️ Alerta financeiro")]
    assert counter.admitted == 1
    assert _rows(session_factory) == [("success", "2024-05-200-150", None)]


def test_same_minute_claim_suppresses_second_driver(dispatcher, sender, suppression, at) -> None:
    snapshot = at("2024-05-10T09:00")
    suppression.claim(f"u1:{snapshot.minute_key}:finance_low_balance:2024-05-200-150")

    outcome = dispatcher.dispatch(CANDIDATE, SUBJECT, snapshot, QuotaCounter(subject_id="u1", cap=3))

    assert outcome is DispatchOutcome.SUPPRESSED
    assert sender.calls == []


def test_throttled_when_counter_exhausted(dispatcher, sender, suppression, at) -> None:
    snapshot = at("2024-05-10T09:00")
    counter = QuotaCounter(subject_id="u1", cap=3, used=3)

    assert dispatcher.dispatch(CANDIDATE, SUBJECT, snapshot, counter) is DispatchOutcome.THROTTLED
    assert sender.calls == []
    # The claim is returned so the next cycle can retry.
    assert len(suppression) == 0


def test_failed_delivery_is_audited_and_retryable(
    ledger, session_factory, settings, sender, suppression, at
) -> None:
    sender.fail_for = ("11999990001",)
    dispatcher = AlertDispatcher(
        ledger=ledger, store=DomainStore(session_factory), settings=settings, sender=sender, suppression=suppression
    )
    counter = QuotaCounter(subject_id="u1", cap=3)
    snapshot = at("2024-05-10T09:00")

    assert dispatcher.dispatch(CANDIDATE, SUBJECT, snapshot, counter) is DispatchOutcome.FAILED
    assert counter.admitted == 0
    assert _rows(session_factory) == [("error", "2024-05-200-150", "HTTP 500")]
    assert not ledger.was_sent("u1", "finance_low_balance", "2024-05-200-150", day=snapshot.local_date)

    sender.fail_for = ()
    assert dispatcher.dispatch(CANDIDATE, SUBJECT, snapshot, counter) is DispatchOutcome.SENT


def test_sender_exception_releases_quota_and_claim(ledger, session_factory, settings, suppression, at) -> None:
    def exploding_sender(address: str, message: str) -> DeliveryResult:
        raise RuntimeError("gateway misconfigured")

    dispatcher = AlertDispatcher(
        ledger=ledger,
        store=DomainStore(session_factory),
        settings=settings,
        sender=exploding_sender,
        suppression=suppression,
    )
    counter = QuotaCounter(subject_id="u1", cap=3)

    assert dispatcher.dispatch(CANDIDATE, SUBJECT, at("2024-05-10T09:00"), counter) is DispatchOutcome.FAILED
    assert counter.admitted == 0
    assert len(suppression) == 0
    assert _rows(session_factory) == [("error", "2024-05-200-150", "gateway misconfigured")]


def test_concurrent_ledger_write_counts_as_duplicate(ledger, session_factory, settings, suppression, at) -> None:
    other_process = AlertLedger(session_factory, ledger.layout)
    snapshot = at("2024-05-10T09:00")

    def racing_sender(address: str, message: str) -> DeliveryResult:
        other_process.record("u1", "finance_low_balance", "2024-05-200-150", day=snapshot.local_date)
        return DeliveryResult(ok=True, status_code=200)

    dispatcher = AlertDispatcher(
        ledger=ledger,
        store=DomainStore(session_factory),
        settings=settings,
        sender=racing_sender,
        suppression=suppression,
    )
    counter = QuotaCounter(subject_id="u1", cap=3)

    assert dispatcher.dispatch(CANDIDATE, SUBJECT, snapshot, counter) is DispatchOutcome.DUPLICATE
    assert counter.admitted == 0
    assert len(_rows(session_factory)) == 1


def test_missing_address_is_skipped(dispatcher, sender, at) -> None:
    subject = Subject(subject_id="ghost")
    counter = QuotaCounter(subject_id="ghost", cap=3)

    assert dispatcher.dispatch(CANDIDATE, subject, at("2024-05-10T09:00"), counter) is DispatchOutcome.SKIPPED
    assert counter.admitted == 0
    assert sender.calls == []


def test_address_is_looked_up_when_subject_has_none(dispatcher, db_session, sender, at) -> None:
    db_session.add(ProfileAuth(id="p1", auth_id="u1", whatsapp="11988887777"))
    db_session.commit()

    outcome = dispatcher.dispatch(CANDIDATE, Subject(subject_id="u1"), at("2024-05-10T09:00"), QuotaCounter("u1", 3))

    assert outcome is DispatchOutcome.SENT
    assert sender.calls[0][0] == "11988887777"


def test_dry_run_does_not_send_or_record(ledger, session_factory, settings, sender, at) -> None:
    dispatcher = AlertDispatcher(
        ledger=ledger,
        store=DomainStore(session_factory),
        settings=settings.with_overrides(dry_run=True),
        sender=sender,
    )

    outcome = dispatcher.dispatch(CANDIDATE, SUBJECT, at("2024-05-10T09:00"), QuotaCounter("u1", 3))

    assert outcome is DispatchOutcome.DRY_RUN
    assert sender.calls == []
    assert _rows(session_factory) == []


def test_ledger_read_failure_skips_candidate(session_factory, settings, sender, at) -> None:
    class DownLedger:
        def was_sent(self, *args, **kwargs):
            raise TransientIOError("ledger down")

    dispatcher = AlertDispatcher(
        ledger=DownLedger(), store=DomainStore(session_factory), settings=settings, sender=sender
    )

    outcome = dispatcher.dispatch(CANDIDATE, SUBJECT, at("2024-05-10T09:00"), QuotaCounter("u1", 3))

    assert outcome is DispatchOutcome.SKIPPED
    assert sender.calls == []
