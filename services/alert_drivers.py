"""Scheduler drivers: guarded triggers that run one engine cycle each.

Each driver moves ``idle -> running -> idle``. A trigger is dropped when the
driver is already running, when the previous cycle started less than
``min_interval_seconds`` ago, or (``once_per_minute``) when the current local
minute was already evaluated.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Sequence

from core.logging import get_logger
from services import alert_metrics
from services.alert_config import AlertSettings
from services.alert_engine import AlertEngine, CycleReport
from services.alerts import GOALS_PRODUCERS, PROACTIVE_PRODUCERS, REMINDER_PRODUCERS
from services.alerts.base import AlertProducer
from services.clock import ClockSnapshot

logger = get_logger(__name__)

PROACTIVE_DRIVER = "proactive_alerts"
GOALS_DRIVER = "daily_goals"
REMINDERS_DRIVER = "reminders"


class DriverState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class SchedulerDriver:
    def __init__(
        self,
        name: str,
        engine: AlertEngine,
        producers: Sequence[AlertProducer],
        *,
        gate: Optional[Callable[[ClockSnapshot], bool]] = None,
        min_interval_seconds: float = 0,
        interval_seconds: float = 60,
        once_per_minute: bool = False,
        monotonic: Optional[Callable[[], float]] = None,
    ) -> None:
        self.name = name
        self.engine = engine
        self.producers = tuple(producers)
        self.gate = gate
        self.min_interval_seconds = max(0.0, float(min_interval_seconds))
        self.interval_seconds = max(0.0, float(interval_seconds))
        self.once_per_minute = once_per_minute
        self._monotonic = monotonic or time.monotonic
        self._lock = threading.Lock()
        self._state = DriverState.IDLE
        self._last_started: Optional[float] = None
        self._last_minute_key: Optional[str] = None

    @property
    def state(self) -> DriverState:
        return self._state

    def is_due(self, now: Optional[float] = None) -> bool:
        """Cadence check used by :func:`run_forever`."""
        if self._last_started is None:
            return True
        current = self._monotonic() if now is None else now
        return current - self._last_started >= self.interval_seconds

    def _acquire(self, snapshot: ClockSnapshot) -> Optional[str]:
        """Return the reason the trigger is dropped, or ``None`` after moving to running."""
        with self._lock:
            if self._state is DriverState.RUNNING:
                return "running"
            now = self._monotonic()
            if (
                self.min_interval_seconds
                and self._last_started is not None
                and now - self._last_started < self.min_interval_seconds
            ):
                return "min_interval"
            if self.once_per_minute and self._last_minute_key == snapshot.minute_key:
                return "same_minute"
            self._state = DriverState.RUNNING
            self._last_started = now
            self._last_minute_key = snapshot.minute_key
            return None

    def _release(self) -> None:
        with self._lock:
            self._state = DriverState.IDLE

    def trigger(self, instant: Optional[datetime] = None) -> Optional[CycleReport]:
        snapshot = self.engine.clock.resolve(instant)
        if self.gate is not None and not self.gate(snapshot):
            logger.debug("Driver %s outside its window at %s.", self.name, snapshot.hhmm)
            return None
        reason = self._acquire(snapshot)
        if reason is not None:
            logger.debug("Driver %s trigger skipped (%s).", self.name, reason)
            alert_metrics.record_skipped_cycle(self.name, reason)
            return None
        try:
            return self.engine.run_cycle(self.producers, snapshot=snapshot, driver=self.name)
        except Exception:  # pragma: no cover - a failed cycle must not kill the trigger
            logger.exception("Driver %s cycle failed.", self.name)
            return None
        finally:
            self._release()


def build_drivers(engine: AlertEngine, settings: AlertSettings) -> Dict[str, SchedulerDriver]:
    """The three production drivers sharing one engine (ledger, limiter, suppression)."""
    return {
        PROACTIVE_DRIVER: SchedulerDriver(
            PROACTIVE_DRIVER,
            engine,
            PROACTIVE_PRODUCERS,
            gate=lambda snapshot: snapshot.in_window(settings.alert_window),
            min_interval_seconds=60,
            interval_seconds=settings.poll_interval_minutes * 60,
        ),
        GOALS_DRIVER: SchedulerDriver(
            GOALS_DRIVER,
            engine,
            GOALS_PRODUCERS,
            gate=lambda snapshot: snapshot.in_window(settings.goals_window),
            min_interval_seconds=settings.goals_min_interval_minutes * 60,
            interval_seconds=60,
        ),
        REMINDERS_DRIVER: SchedulerDriver(
            REMINDERS_DRIVER,
            engine,
            REMINDER_PRODUCERS,
            interval_seconds=0,
            once_per_minute=True,
        ),
    }


def run_forever(
    drivers: Iterable[SchedulerDriver],
    *,
    tick_seconds: float = 20,
    stop_event: Optional[threading.Event] = None,
) -> None:
    """Broker-free loop: every tick, start each due driver in its own worker thread."""
    driver_list = list(drivers)
    stop = stop_event or threading.Event()
    logger.info(
        "Alert scheduler loop started (drivers=%s tick=%ss).",
        ", ".join(driver.name for driver in driver_list),
        tick_seconds,
    )
    with ThreadPoolExecutor(max_workers=max(1, len(driver_list)), thread_name_prefix="alert-driver") as pool:
        while not stop.is_set():
            for driver in driver_list:
                if driver.state is DriverState.IDLE and driver.is_due():
                    pool.submit(driver.trigger)
            stop.wait(tick_seconds)
    logger.info("Alert scheduler loop stopped.")


__all__ = [
    "DriverState",
    "GOALS_DRIVER",
    "PROACTIVE_DRIVER",
    "REMINDERS_DRIVER",
    "SchedulerDriver",
    "build_drivers",
    "run_forever",
]
