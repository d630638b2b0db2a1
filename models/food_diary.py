"""Food diary tables: entries, per-user goals and hydration logs."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, Date, DateTime, Float, String, Text
from sqlalchemy.sql import func

from database import Base

HYDRATION_MEAL_TYPE = "hydration"


class FoodDiaryEntry(Base):
    """One diary line; ``meal_type`` holds the meal label (``"Almoço"``...)."""

    __tablename__ = "food_diary_entries"
    __table_args__ = {"extend_existing": True}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    entry_date = Column(Date, nullable=False, index=True)
    meal_type = Column(String(40), nullable=True)
    food = Column(Text, nullable=True)
    calories = Column(Float, nullable=True)
    protein = Column(Float, nullable=True)
    water_ml = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class FoodDiaryProfile(Base):
    __tablename__ = "food_diary_profile"
    __table_args__ = {"extend_existing": True}

    user_id = Column(String(36), primary_key=True)
    calorie_goal = Column(Float, nullable=True)
    protein_goal = Column(Float, nullable=True)
    water_goal_l = Column(Float, nullable=True)


class HydrationLog(Base):
    __tablename__ = "hydration_logs"
    __table_args__ = {"extend_existing": True}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    day_date = Column(Date, nullable=False, index=True)
    amount_ml = Column(Float, nullable=False, default=0)


__all__ = ["FoodDiaryEntry", "FoodDiaryProfile", "HydrationLog", "HYDRATION_MEAL_TYPE"]
