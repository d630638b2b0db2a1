"""Idempotency ledger for sent alerts.

The ledger table shape is discovered once at startup (:func:`resolve_ledger_layout`)
and injected into :class:`AlertLedger` as a tagged :class:`LedgerLayout`:

* ``keyed``  - the table has a dedup-key column; dedup on (subject, type, key).
* ``dated``  - legacy table without a key column; dedup on (subject, type, day).
* ``disabled`` - neither table exposes the minimum columns; every check
  allows and nothing is written.
* ``unresolved`` - the database could not be reached while inspecting; behaves
  like ``disabled`` until :meth:`AlertLedger.ensure_resolved` succeeds.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Sequence, Set, Tuple

from sqlalchemy import MetaData, Table, func, insert, inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, NoSuchTableError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.logging import get_logger
from models.alert import ALERT_STATUS_SUCCESS
from services.alert_errors import SchemaMismatchError, TransientIOError

logger = get_logger(__name__)

SUBJECT_COLUMNS = ("user_id", "auth_id")
TYPE_COLUMNS = ("alert_type", "tipo", "type")
KEY_COLUMNS = ("alert_key", "dedup_key", "chave")
DATE_COLUMNS = ("entry_date", "day_date", "data", "data_hoje", "date", "sent_date")
STATUS_COLUMNS = ("status",)
MESSAGE_COLUMNS = ("message", "mensagem", "texto", "body")
DETAIL_COLUMNS = ("error", "error_message", "detail")
TIMESTAMP_COLUMNS = ("sent_at", "created_at")


class LedgerShape(str, Enum):
    KEYED = "keyed"
    DATED = "dated"
    DISABLED = "disabled"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class LedgerLayout:
    shape: LedgerShape
    table_name: Optional[str] = None
    subject_column: Optional[str] = None
    type_column: Optional[str] = None
    key_column: Optional[str] = None
    date_column: Optional[str] = None
    status_column: Optional[str] = None
    message_column: Optional[str] = None
    detail_column: Optional[str] = None
    timestamp_column: Optional[str] = None

    @classmethod
    def disabled(cls) -> "LedgerLayout":
        return cls(shape=LedgerShape.DISABLED)

    @classmethod
    def unresolved(cls) -> "LedgerLayout":
        return cls(shape=LedgerShape.UNRESOLVED)

    @property
    def dedup_enabled(self) -> bool:
        return self.shape in (LedgerShape.KEYED, LedgerShape.DATED)


def _pick(columns: Sequence[str], options: Iterable[str]) -> Optional[str]:
    available = set(columns)
    for candidate in options:
        if candidate in available:
            return candidate
    return None


def layout_from_columns(table_name: str, columns: Sequence[str]) -> LedgerLayout:
    """Map the logical ledger fields onto whichever columns ``table_name`` has."""
    subject_column = _pick(columns, SUBJECT_COLUMNS)
    type_column = _pick(columns, TYPE_COLUMNS)
    key_column = _pick(columns, KEY_COLUMNS)
    date_column = _pick(columns, DATE_COLUMNS)
    if not subject_column or not type_column or not (key_column or date_column):
        raise SchemaMismatchError(
            f"Ledger table {table_name} lacks subject/type/date-or-key columns (found: {sorted(columns)})"
        )
    return LedgerLayout(
        shape=LedgerShape.KEYED if key_column else LedgerShape.DATED,
        table_name=table_name,
        subject_column=subject_column,
        type_column=type_column,
        key_column=key_column,
        date_column=date_column,
        status_column=_pick(columns, STATUS_COLUMNS),
        message_column=_pick(columns, MESSAGE_COLUMNS),
        detail_column=_pick(columns, DETAIL_COLUMNS),
        timestamp_column=_pick(columns, TIMESTAMP_COLUMNS),
    )


def resolve_ledger_layout(bind: Engine, preferred: str, fallback: Optional[str] = None) -> LedgerLayout:
    """Inspect the preferred table, then the legacy one.

    Returns ``disabled`` only when the tables were read and none fits;
    connection errors give ``unresolved`` so the lookup can be retried.
    """
    try:
        inspector = inspect(bind)
        for table_name in (preferred, fallback):
            if not table_name:
                continue
            try:
                columns = [column["name"] for column in inspector.get_columns(table_name)]
            except NoSuchTableError:
                logger.info("Alert ledger table %s does not exist.", table_name)
                continue
            try:
                layout = layout_from_columns(table_name, columns)
            except SchemaMismatchError as exc:
                logger.warning("%s", exc)
                continue
            logger.info("Alert ledger resolved: table=%s shape=%s", layout.table_name, layout.shape.value)
            return layout
    except SQLAlchemyError as exc:
        logger.warning("Alert ledger unreachable (%s); dedup is off until it can be inspected.", exc)
        return LedgerLayout.unresolved()

    logger.warning(
        "No alert ledger table with the minimum columns (%s, %s); alerts will not be deduplicated.",
        preferred,
        fallback,
    )
    return LedgerLayout.disabled()


class AlertLedger:
    """Point lookups and append-only writes against the resolved ledger table."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        layout: LedgerLayout,
        *,
        resolver: Optional[Callable[[], LedgerLayout]] = None,
        utcnow: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._session_factory = session_factory
        self.layout = layout
        self._resolver = resolver
        self._utcnow = utcnow or (lambda: datetime.now(timezone.utc))
        self._table: Optional[Table] = None
        self._table_lock = threading.Lock()
        self._recorded: Set[Tuple[str, str, str]] = set()
        self._recorded_lock = threading.Lock()

    def ensure_resolved(self) -> LedgerLayout:
        """Retry an ``unresolved`` layout; called at the start of every cycle."""
        if self.layout.shape is not LedgerShape.UNRESOLVED or self._resolver is None:
            return self.layout
        with self._table_lock:
            if self.layout.shape is LedgerShape.UNRESOLVED:
                layout = self._resolver()
                if layout.shape is not LedgerShape.UNRESOLVED:
                    self._table = None
                    self.layout = layout
        return self.layout

    def _identity(self, subject_id: str, alert_type: str, dedup_key: str, day: date) -> Tuple[str, str, str]:
        if self.layout.shape is LedgerShape.DATED:
            return (subject_id, alert_type, day.isoformat())
        return (subject_id, alert_type, dedup_key)

    def _remember(self, identity: Tuple[str, str, str]) -> None:
        with self._recorded_lock:
            self._recorded.add(identity)

    def _remembered(self, identity: Tuple[str, str, str]) -> bool:
        with self._recorded_lock:
            return identity in self._recorded

    def _get_table(self, session: Session) -> Table:
        if self._table is not None:
            return self._table
        with self._table_lock:
            if self._table is None:
                self._table = Table(self.layout.table_name, MetaData(), autoload_with=session.connection())
        return self._table

    def was_sent(self, subject_id: str, alert_type: str, dedup_key: str, *, day: date) -> bool:
        if not self.layout.dedup_enabled:
            return False
        identity = self._identity(subject_id, alert_type, dedup_key, day)
        if self._remembered(identity):
            return True

        layout = self.layout
        try:
            with self._session_factory() as session:
                table = self._get_table(session)
                stmt = select(table.c[layout.subject_column]).where(
                    table.c[layout.subject_column] == subject_id,
                    table.c[layout.type_column] == alert_type,
                )
                if layout.shape is LedgerShape.KEYED:
                    stmt = stmt.where(table.c[layout.key_column] == dedup_key)
                else:
                    stmt = stmt.where(table.c[layout.date_column] == day)
                if layout.status_column:
                    stmt = stmt.where(table.c[layout.status_column] == ALERT_STATUS_SUCCESS)
                found = session.execute(stmt.limit(1)).first() is not None
        except SQLAlchemyError as exc:
            raise TransientIOError(
                f"Ledger lookup failed: {exc}",
                subject_id=subject_id,
                alert_type=alert_type,
                dedup_key=dedup_key,
            ) from exc

        if found:
            self._remember(identity)
        return found

    def _build_payload(
        self,
        subject_id: str,
        alert_type: str,
        dedup_key: str,
        status: str,
        *,
        day: date,
        message: Optional[str],
        detail: Optional[str],
    ) -> Dict[str, object]:
        layout = self.layout
        payload: Dict[str, object] = {
            layout.subject_column: subject_id,
            layout.type_column: alert_type,
        }
        if layout.key_column:
            payload[layout.key_column] = dedup_key
        if layout.date_column:
            payload[layout.date_column] = day
        if layout.status_column:
            payload[layout.status_column] = status
        if layout.message_column and message is not None:
            payload[layout.message_column] = message
        if layout.detail_column and detail is not None:
            payload[layout.detail_column] = detail
        if layout.timestamp_column:
            payload[layout.timestamp_column] = self._utcnow()
        return payload

    def record(
        self,
        subject_id: str,
        alert_type: str,
        dedup_key: str,
        status: str = ALERT_STATUS_SUCCESS,
        *,
        day: date,
        message: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> bool:
        """Append a ledger row.

        Returns ``False`` when a concurrent writer already recorded the same
        success (unique violation); the caller must not count the send again.
        """
        if not self.layout.dedup_enabled:
            return True

        identity = self._identity(subject_id, alert_type, dedup_key, day)
        payload = self._build_payload(
            subject_id, alert_type, dedup_key, status, day=day, message=message, detail=detail
        )
        try:
            with self._session_factory() as session:
                table = self._get_table(session)
                try:
                    session.execute(insert(table).values(**payload))
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    logger.info(
                        "Ledger entry already present subject=%s alert_type=%s dedup_key=%s",
                        subject_id,
                        alert_type,
                        dedup_key,
                    )
                    if status == ALERT_STATUS_SUCCESS:
                        self._remember(identity)
                    return False
        except SQLAlchemyError as exc:
            raise TransientIOError(
                f"Ledger write failed: {exc}",
                subject_id=subject_id,
                alert_type=alert_type,
                dedup_key=dedup_key,
            ) from exc

        if status == ALERT_STATUS_SUCCESS:
            self._remember(identity)
        return True

    def count_successes(self, subject_id: str, *, day: date, day_start: datetime, day_end: datetime) -> int:
        """Count today's successful sends for the daily cap."""
        layout = self.layout
        if not layout.dedup_enabled:
            return 0
        if not layout.date_column and not layout.timestamp_column:
            logger.debug("Ledger %s has no date/timestamp column; daily count unavailable.", layout.table_name)
            return 0
        try:
            with self._session_factory() as session:
                table = self._get_table(session)
                stmt = select(func.count()).select_from(table).where(table.c[layout.subject_column] == subject_id)
                if layout.date_column:
                    stmt = stmt.where(table.c[layout.date_column] == day)
                else:
                    column = table.c[layout.timestamp_column]
                    stmt = stmt.where(
                        column >= day_start.astimezone(timezone.utc),
                        column < day_end.astimezone(timezone.utc),
                    )
                if layout.status_column:
                    stmt = stmt.where(table.c[layout.status_column] == ALERT_STATUS_SUCCESS)
                return int(session.execute(stmt).scalar() or 0)
        except SQLAlchemyError as exc:
            raise TransientIOError(f"Ledger count failed: {exc}", subject_id=subject_id) from exc


__all__ = [
    "AlertLedger",
    "LedgerLayout",
    "LedgerShape",
    "layout_from_columns",
    "resolve_ledger_layout",
]
