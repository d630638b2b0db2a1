"""Process-wide wiring of the alert engine and its drivers."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from core.env import env_str
from core.logging import get_logger
from services.alert_config import AlertSettings
from services.alert_dispatcher import AlertDispatcher, Sender, SuppressionCache
from services.alert_drivers import SchedulerDriver, build_drivers
from services.alert_engine import AlertEngine
from services.alert_ledger import AlertLedger, LedgerLayout, resolve_ledger_layout
from services.alert_rate_limiter import DailyRateLimiter
from services.alert_suppression import MinuteSuppressionCache, RedisSuppressionCache
from services.clock import ClockResolver
from services.domain_store import DomainStore

logger = get_logger(__name__)

_RUNTIME: Optional["AlertRuntime"] = None
_RUNTIME_LOCK = threading.Lock()


@dataclass
class AlertRuntime:
    settings: AlertSettings
    clock: ClockResolver
    store: DomainStore
    ledger: AlertLedger
    limiter: DailyRateLimiter
    dispatcher: AlertDispatcher
    engine: AlertEngine
    suppression: SuppressionCache
    drivers: Dict[str, SchedulerDriver]

    def driver(self, name: str) -> SchedulerDriver:
        try:
            return self.drivers[name]
        except KeyError as exc:
            raise KeyError(f"Unknown alert driver '{name}' (available: {sorted(self.drivers)})") from exc


def _default_suppression(settings: AlertSettings) -> SuppressionCache:
    redis_url = env_str("ALERT_SUPPRESSION_REDIS_URL")
    if redis_url:
        cache = RedisSuppressionCache.from_url(redis_url, settings.suppression_ttl_seconds)
        if cache is not None:
            return cache
    return MinuteSuppressionCache(settings.suppression_ttl_seconds, settings.suppression_max_entries)


def build_runtime(
    settings: Optional[AlertSettings] = None,
    *,
    session_factory: Optional[Callable[[], Session]] = None,
    bind: Optional[Engine] = None,
    sender: Optional[Sender] = None,
    suppression: Optional[SuppressionCache] = None,
    now_fn: Optional[Callable[[], datetime]] = None,
) -> AlertRuntime:
    settings = settings or AlertSettings.from_env()
    if session_factory is None or bind is None:
        from database import SessionLocal, engine as default_engine

        session_factory = session_factory or SessionLocal
        bind = bind or default_engine

    clock = ClockResolver(settings.timezone, now_fn=now_fn)

    def resolve_layout() -> LedgerLayout:
        return resolve_ledger_layout(bind, settings.ledger_table, settings.ledger_legacy_table)

    layout = resolve_layout()
    store = DomainStore(session_factory)
    ledger = AlertLedger(session_factory, layout, resolver=resolve_layout)
    limiter = DailyRateLimiter(ledger, settings.max_per_day)
    if suppression is None:
        suppression = _default_suppression(settings)
    dispatcher = AlertDispatcher(
        ledger=ledger,
        store=store,
        settings=settings,
        sender=sender,
        suppression=suppression,
    )
    engine = AlertEngine(
        settings=settings,
        clock=clock,
        store=store,
        limiter=limiter,
        dispatcher=dispatcher,
        ledger=ledger,
    )
    logger.info(
        "Alert runtime ready (tz=%s cap=%d ledger=%s dry_run=%s).",
        settings.timezone,
        settings.max_per_day,
        layout.table_name or layout.shape.value,
        settings.dry_run,
    )
    return AlertRuntime(
        settings=settings,
        clock=clock,
        store=store,
        ledger=ledger,
        limiter=limiter,
        dispatcher=dispatcher,
        engine=engine,
        suppression=suppression,
        drivers=build_drivers(engine, settings),
    )


def get_runtime() -> AlertRuntime:
    """Lazily build the runtime shared by every task in this process."""
    global _RUNTIME  # pylint: disable=global-statement
    if _RUNTIME is not None:
        return _RUNTIME
    with _RUNTIME_LOCK:
        if _RUNTIME is None:
            _RUNTIME = build_runtime()
    return _RUNTIME


def reset_runtime() -> None:
    global _RUNTIME  # pylint: disable=global-statement
    with _RUNTIME_LOCK:
        _RUNTIME = None


__all__ = ["AlertRuntime", "build_runtime", "get_runtime", "reset_runtime"]
