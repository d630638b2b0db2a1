"""Alert ledger tables.

The engine never depends on these classes at runtime: the ledger introspects
whichever table exists. They define the canonical shapes for migrations and
tests.
"""

from __future__ import annotations

from sqlalchemy import Column, Date, DateTime, Index, Integer, String, Text, text
from sqlalchemy.sql import func

from database import Base

ALERT_STATUS_SUCCESS = "success"
ALERT_STATUS_ERROR = "error"


class WhatsAppAlertLog(Base):
    """Primary ledger: one row per send attempt, keyed by the dedup key."""

    __tablename__ = "whatsapp_alert_logs"
    __table_args__ = (
        Index(
            "uq_whatsapp_alert_logs_success",
            "user_id",
            "alert_type",
            "alert_key",
            unique=True,
            postgresql_where=text("status = 'success'"),
            sqlite_where=text("status = 'success'"),
        ),
        {"extend_existing": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    alert_type = Column(String(64), nullable=False)
    alert_key = Column(String(200), nullable=False)
    entry_date = Column(Date, nullable=True, index=True)
    status = Column(String(16), nullable=False, default=ALERT_STATUS_SUCCESS)
    message = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class DailyGoalsNotification(Base):
    """Legacy ledger without a dedup-key column; dedups per subject, type and day."""

    __tablename__ = "daily_goals_notifications"
    __table_args__ = (
        Index(
            "uq_daily_goals_notifications_success",
            "user_id",
            "entry_date",
            "alert_type",
            unique=True,
            postgresql_where=text("status = 'success'"),
            sqlite_where=text("status = 'success'"),
        ),
        {"extend_existing": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    entry_date = Column(Date, nullable=False)
    alert_type = Column(String(64), nullable=False)
    status = Column(String(16), nullable=True)
    message = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)


__all__ = [
    "ALERT_STATUS_ERROR",
    "ALERT_STATUS_SUCCESS",
    "DailyGoalsNotification",
    "WhatsAppAlertLog",
]
