"""Minute-level suppression shared by the scheduler drivers.

Drivers scheduled independently can evaluate the same subject in the same
minute. A candidate is claimed here before it is sent, so the second driver
skips it even when the ledger write is not visible yet.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

from core.logging import get_logger
from services.alerts.base import AlertCandidate
from services.clock import ClockSnapshot

try:  # pragma: no cover - optional dependency
    import redis  # type: ignore
except ImportError:  # pragma: no cover
    redis = None  # type: ignore

logger = get_logger(__name__)


def suppression_key(candidate: AlertCandidate, snapshot: ClockSnapshot) -> str:
    """``subject:date-HH:MM:type:key``.

    Alert type and dedup key extend the subject+minute key, so two different
    alerts for one subject in the same minute do not block each other; the
    same alert from two drivers still collides.
    """
    return f"{candidate.subject_id}:{snapshot.minute_key}:{candidate.alert_type}:{candidate.dedup_key}"


class MinuteSuppressionCache:
    """Bounded TTL set; oldest entries are evicted once ``max_entries`` is reached."""

    def __init__(
        self,
        ttl_seconds: float = 75,
        max_entries: int = 5000,
        *,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if ttl_seconds <= 0 or max_entries <= 0:
            raise ValueError("ttl_seconds and max_entries must be positive")
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = int(max_entries)
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[str, float]" = OrderedDict()
        self._lock = threading.Lock()

    def _purge_expired(self, now: float) -> None:
        while self._entries:
            key, expires_at = next(iter(self._entries.items()))
            if expires_at > now:
                break
            self._entries.pop(key, None)

    def claim(self, key: str) -> bool:
        """Return ``True`` when ``key`` was free and is now held for ``ttl_seconds``."""
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            expires_at = self._entries.get(key)
            if expires_at is not None and expires_at > now:
                return False
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = now + self.ttl_seconds
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            expires_at = self._entries.get(key)  # type: ignore[arg-type]
            return expires_at is not None and expires_at > self._clock()

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._entries)


class RedisSuppressionCache:
    """Same contract backed by Redis ``SET NX EX`` for multi-process workers.

    Falls open (claims succeed) when Redis is unavailable.
    """

    def __init__(self, client: "redis.Redis", ttl_seconds: int = 75, *, prefix: str = "alerts:minute") -> None:  # type: ignore[name-defined]
        self._client = client
        self.ttl_seconds = max(1, int(ttl_seconds))
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 75) -> Optional["RedisSuppressionCache"]:
        if redis is None:
            logger.warning("redis package not installed; using in-process minute suppression.")
            return None
        return cls(redis.Redis.from_url(url), ttl_seconds)

    def claim(self, key: str) -> bool:
        try:
            return bool(self._client.set(f"{self._prefix}:{key}", b"1", nx=True, ex=self.ttl_seconds))
        except Exception as exc:  # pragma: no cover - backend outage
            logger.warning("Minute suppression backend failed for %s: %s", key, exc)
            return True

    def release(self, key: str) -> None:
        try:
            self._client.delete(f"{self._prefix}:{key}")
        except Exception as exc:  # pragma: no cover - backend outage
            logger.warning("Minute suppression release failed for %s: %s", key, exc)


__all__ = ["MinuteSuppressionCache", "RedisSuppressionCache", "suppression_key"]
