"""Calendar events and user-authored daily reminders."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, Date, String, Text

from database import Base

EVENT_COMPLETED_STATUS = "completed"


class Event(Base):
    __tablename__ = "events"
    __table_args__ = {"extend_existing": True}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=True, index=True)
    title = Column(String(200), nullable=False)
    date = Column(Date, nullable=False, index=True)
    # HH:MM in the account timezone; all-day events leave it empty.
    start = Column(String(8), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(32), nullable=True, default="scheduled")


class DailyReminder(Base):
    __tablename__ = "daily_reminders"
    __table_args__ = {"extend_existing": True}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=True, index=True)
    title = Column(String(200), nullable=True)
    reminder_time = Column(String(8), nullable=False)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)


__all__ = ["DailyReminder", "Event", "EVENT_COMPLETED_STATUS"]
