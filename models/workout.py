from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base


class WorkoutRoutine(Base):
    __tablename__ = "workout_routines"
    __table_args__ = {"extend_existing": True}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=True, index=True)
    name = Column(String(120), nullable=False)
    muscle_groups = Column(Text, nullable=True)


class WorkoutSchedule(Base):
    """Routine assigned to an ISO weekday (1 = Monday ... 7 = Sunday)."""

    __tablename__ = "workout_schedule"
    __table_args__ = {"extend_existing": True}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    weekday = Column(Integer, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    routine_id = Column(String(36), ForeignKey("workout_routines.id", ondelete="SET NULL"), nullable=True)
    reminder_time = Column(String(8), nullable=True)

    routine = relationship(WorkoutRoutine, lazy="joined")


__all__ = ["WorkoutRoutine", "WorkoutSchedule"]
