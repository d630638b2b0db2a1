"""Evaluation cycle: subjects one by one, producers in priority order.

Errors are contained at the narrowest scope. A failed producer skips that
producer for the subject, a failed subject skips that subject, and nothing
escapes ``run_cycle``.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from core.logging import get_logger
from services import alert_metrics
from services.alert_config import AlertSettings
from services.alert_dispatcher import AlertDispatcher, DispatchOutcome
from services.alert_errors import AlertEngineError
from services.alert_ledger import AlertLedger
from services.alert_rate_limiter import DailyRateLimiter
from services.alerts.base import AlertCandidate, AlertProducer
from services.clock import ClockResolver, ClockSnapshot
from services.domain_store import DomainStore, Subject

logger = get_logger(__name__)


@dataclass
class CycleReport:
    driver: str
    started_at: datetime
    subjects: int = 0
    outcomes: Counter = field(default_factory=Counter)
    errors: int = 0
    dispatched: List[AlertCandidate] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def sent(self) -> int:
        return self.outcomes[DispatchOutcome.SENT.value]

    def as_dict(self) -> Dict[str, object]:
        return {
            "driver": self.driver,
            "started_at": self.started_at.isoformat(),
            "subjects": self.subjects,
            "errors": self.errors,
            "duration_seconds": round(self.duration_seconds, 3),
            **{outcome.value: self.outcomes[outcome.value] for outcome in DispatchOutcome},
        }


class AlertEngine:
    def __init__(
        self,
        *,
        settings: AlertSettings,
        clock: ClockResolver,
        store: DomainStore,
        limiter: DailyRateLimiter,
        dispatcher: AlertDispatcher,
        ledger: Optional[AlertLedger] = None,
    ) -> None:
        self.settings = settings
        self.clock = clock
        self.store = store
        self.limiter = limiter
        self.dispatcher = dispatcher
        self.ledger = ledger

    def run_cycle(
        self,
        producers: Sequence[AlertProducer],
        *,
        snapshot: Optional[ClockSnapshot] = None,
        driver: str = "manual",
        subjects: Optional[Sequence[Subject]] = None,
    ) -> CycleReport:
        snapshot = snapshot or self.clock.now()
        report = CycleReport(driver=driver, started_at=snapshot.instant)
        started = time.perf_counter()

        if self.ledger is not None:
            self.ledger.ensure_resolved()

        active = [producer for producer in producers if producer.is_active(snapshot, self.settings)]
        if not active:
            logger.debug("No producer active for driver=%s at %s", driver, snapshot.instant.isoformat())
        else:
            if subjects is None:
                try:
                    subjects = self.store.list_subjects()
                except AlertEngineError as exc:
                    logger.error("Failed to load eligible subjects (driver=%s): %s", driver, exc)
                    report.errors += 1
                    subjects = []
            for subject in subjects:
                report.subjects += 1
                try:
                    self._evaluate_subject(subject, active, snapshot, report)
                except Exception:  # pragma: no cover - keep other subjects running
                    report.errors += 1
                    logger.exception("Unexpected error evaluating subject=%s (driver=%s)", subject.subject_id, driver)

        report.duration_seconds = time.perf_counter() - started
        alert_metrics.observe_cycle(driver, report.duration_seconds)
        logger.info("Alert cycle finished: %s", report.as_dict())
        return report

    def _evaluate_subject(
        self,
        subject: Subject,
        producers: Sequence[AlertProducer],
        snapshot: ClockSnapshot,
        report: CycleReport,
    ) -> None:
        try:
            counter = self.limiter.open_counter(subject.subject_id, snapshot)
        except AlertEngineError as exc:
            report.errors += 1
            logger.warning("Skipping subject=%s: daily count unavailable (%s)", subject.subject_id, exc)
            return
        if counter.exhausted:
            report.outcomes[DispatchOutcome.THROTTLED.value] += 1
            return

        for producer in producers:
            if counter.exhausted:
                return
            try:
                candidates = producer.evaluate(self.store, subject, snapshot, self.settings)
            except AlertEngineError as exc:
                report.errors += 1
                logger.warning("Producer %s failed for subject=%s: %s", producer.name, subject.subject_id, exc)
                continue

            for candidate in candidates:
                outcome = self.dispatcher.dispatch(candidate, subject, snapshot, counter)
                report.outcomes[outcome.value] += 1
                if outcome in (DispatchOutcome.SENT, DispatchOutcome.DRY_RUN):
                    report.dispatched.append(candidate)
                if outcome is DispatchOutcome.SENT:
                    self._after_delivery(producer, candidate)
                if outcome is DispatchOutcome.THROTTLED:
                    # Remaining producers are retried on a later cycle.
                    return

    def _after_delivery(self, producer: AlertProducer, candidate: AlertCandidate) -> None:
        if producer.on_delivered is None:
            return
        try:
            producer.on_delivered(self.store, candidate)
        except AlertEngineError as exc:
            logger.warning(
                "Post-delivery hook %s failed subject=%s alert_type=%s dedup_key=%s: %s",
                producer.name,
                candidate.subject_id,
                candidate.alert_type,
                candidate.dedup_key,
                exc,
            )


__all__ = ["AlertEngine", "CycleReport"]
