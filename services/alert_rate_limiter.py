"""Per-subject daily cap shared by every producer in a cycle."""

from __future__ import annotations

from dataclasses import dataclass

from core.logging import get_logger
from services.alert_ledger import AlertLedger
from services.clock import ClockSnapshot

logger = get_logger(__name__)


@dataclass
class QuotaCounter:
    """Quota for one subject within one cycle.

    ``used`` is read from the ledger once when the counter is opened; ``admitted``
    tracks sends reserved during the cycle so the ledger is not re-read between
    producers.
    """

    subject_id: str
    cap: int
    used: int = 0
    admitted: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.cap - self.used - self.admitted)

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0

    def admit(self) -> bool:
        if self.exhausted:
            return False
        self.admitted += 1
        return True

    def release(self) -> None:
        """Return a reserved unit when the send failed or was not counted."""
        if self.admitted > 0:
            self.admitted -= 1


class DailyRateLimiter:
    def __init__(self, ledger: AlertLedger, cap: int) -> None:
        self._ledger = ledger
        self.cap = max(0, int(cap))

    def sent_today(self, subject_id: str, snapshot: ClockSnapshot) -> int:
        return self._ledger.count_successes(
            subject_id,
            day=snapshot.local_date,
            day_start=snapshot.day_start,
            day_end=snapshot.day_end,
        )

    def remaining(self, subject_id: str, snapshot: ClockSnapshot) -> int:
        return max(0, self.cap - self.sent_today(subject_id, snapshot))

    def open_counter(self, subject_id: str, snapshot: ClockSnapshot) -> QuotaCounter:
        """Start a cycle for ``subject_id``; raises ``TransientIOError`` when the count is unavailable."""
        used = self.sent_today(subject_id, snapshot)
        counter = QuotaCounter(subject_id=subject_id, cap=self.cap, used=used)
        if counter.exhausted:
            logger.debug("Daily cap reached subject=%s sent=%d cap=%d", subject_id, used, self.cap)
        return counter


__all__ = ["DailyRateLimiter", "QuotaCounter"]
