"""Send one admitted candidate and write the ledger entry on confirmed success."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Optional, Protocol

from core.logging import get_logger, mask_phone
from models.alert import ALERT_STATUS_ERROR, ALERT_STATUS_SUCCESS
from services import alert_metrics
from services.alert_config import AlertSettings
from services.alert_errors import ConfigurationError, TransientIOError
from services.alert_ledger import AlertLedger
from services.alert_rate_limiter import QuotaCounter
from services.alert_suppression import suppression_key
from services.alerts.base import AlertCandidate
from services.clock import ClockSnapshot
from services.domain_store import DomainStore, Subject
from services.notification_service import DeliveryResult, normalize_phone, send_whatsapp

logger = get_logger(__name__)


class DispatchOutcome(str, Enum):
    SENT = "sent"
    DUPLICATE = "duplicate"
    SUPPRESSED = "suppressed"
    THROTTLED = "throttled"
    FAILED = "failed"
    SKIPPED = "skipped"
    DRY_RUN = "dry_run"


class SuppressionCache(Protocol):
    def claim(self, key: str) -> bool: ...

    def release(self, key: str) -> None: ...


Sender = Callable[[str, str], DeliveryResult]


class AlertDispatcher:
    def __init__(
        self,
        *,
        ledger: AlertLedger,
        store: DomainStore,
        settings: AlertSettings,
        sender: Optional[Sender] = None,
        suppression: Optional[SuppressionCache] = None,
    ) -> None:
        self._ledger = ledger
        self._store = store
        self._settings = settings
        self._sender = sender or (
            lambda address, message: send_whatsapp(address, message, country_code=settings.phone_country_code)
        )
        self._suppression = suppression

    def resolve_address(self, subject: Subject) -> str:
        address = subject.address or self._store.lookup_address(subject.subject_id)
        if not normalize_phone(address, self._settings.phone_country_code):
            raise ConfigurationError("No usable WhatsApp address", subject_id=subject.subject_id)
        return str(address)

    def dispatch(
        self,
        candidate: AlertCandidate,
        subject: Subject,
        snapshot: ClockSnapshot,
        counter: QuotaCounter,
    ) -> DispatchOutcome:
        outcome = self._dispatch(candidate, subject, snapshot, counter)
        alert_metrics.record_outcome(candidate.alert_type, outcome.value)
        return outcome

    def _dispatch(
        self,
        candidate: AlertCandidate,
        subject: Subject,
        snapshot: ClockSnapshot,
        counter: QuotaCounter,
    ) -> DispatchOutcome:
        context = (candidate.subject_id, candidate.alert_type, candidate.dedup_key)
        day = snapshot.local_date

        try:
            if self._ledger.was_sent(candidate.subject_id, candidate.alert_type, candidate.dedup_key, day=day):
                logger.debug("Alert already sent subject=%s alert_type=%s dedup_key=%s", *context)
                return DispatchOutcome.DUPLICATE
        except TransientIOError as exc:
            logger.warning("Skipping alert subject=%s alert_type=%s dedup_key=%s: %s", *context, exc)
            return DispatchOutcome.SKIPPED

        claim_key = suppression_key(candidate, snapshot)
        if self._suppression is not None and not self._suppression.claim(claim_key):
            logger.info("Alert suppressed for this minute subject=%s alert_type=%s dedup_key=%s", *context)
            return DispatchOutcome.SUPPRESSED

        if not counter.admit():
            self._release_claim(claim_key)
            logger.info("Daily cap reached subject=%s alert_type=%s dedup_key=%s", *context)
            return DispatchOutcome.THROTTLED

        try:
            address = self.resolve_address(subject)
        except (ConfigurationError, TransientIOError) as exc:
            counter.release()
            self._release_claim(claim_key)
            logger.warning("Skipping alert subject=%s alert_type=%s dedup_key=%s: %s", *context, exc)
            return DispatchOutcome.SKIPPED

        if self._settings.dry_run:
            logger.info(
                "[dry-run] subject=%s to=%s alert_type=%s dedup_key=%s\n%s",
                candidate.subject_id,
                mask_phone(address),
                candidate.alert_type,
                candidate.dedup_key,
                candidate.message,
            )
            return DispatchOutcome.DRY_RUN

        try:
            result = self._sender(address, candidate.message)
        except Exception as exc:  # any sender error is a failed delivery
            logger.exception("Sender raised subject=%s alert_type=%s dedup_key=%s", *context)
            result = DeliveryResult(ok=False, error=str(exc) or exc.__class__.__name__)
        if not result.ok:
            counter.release()
            self._release_claim(claim_key)
            logger.warning(
                "Alert delivery failed subject=%s alert_type=%s dedup_key=%s status=%s error=%s",
                *context,
                result.status_code,
                result.error,
            )
            if self._settings.record_failures:
                self._record(candidate, day, ALERT_STATUS_ERROR, detail=result.error or f"HTTP {result.status_code}")
            return DispatchOutcome.FAILED

        recorded = self._record(candidate, day, ALERT_STATUS_SUCCESS)
        if recorded is False:
            # A concurrent writer owns the success row; it already counts towards the cap.
            counter.release()
            return DispatchOutcome.DUPLICATE
        logger.info("Alert sent subject=%s alert_type=%s dedup_key=%s", *context)
        return DispatchOutcome.SENT

    def _record(
        self,
        candidate: AlertCandidate,
        day,
        status: str,
        *,
        detail: Optional[str] = None,
    ) -> Optional[bool]:
        try:
            return self._ledger.record(
                candidate.subject_id,
                candidate.alert_type,
                candidate.dedup_key,
                status,
                day=day,
                message=candidate.message,
                detail=detail,
            )
        except TransientIOError as exc:
            logger.error(
                "Ledger write failed after send subject=%s alert_type=%s dedup_key=%s status=%s: %s",
                candidate.subject_id,
                candidate.alert_type,
                candidate.dedup_key,
                status,
                exc,
            )
            return None

    def _release_claim(self, key: str) -> None:
        if self._suppression is not None:
            self._suppression.release(key)


__all__ = ["AlertDispatcher", "DispatchOutcome", "SuppressionCache"]
