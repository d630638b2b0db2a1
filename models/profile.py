"""Subject profiles owned by the CRUD layer; read-only for the alert engine."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Float, String
from sqlalchemy.sql import func

from database import Base


class ProfileAuth(Base):
    """Account profile with the WhatsApp address and billing/role state."""

    __tablename__ = "profiles_auth"
    __table_args__ = {"extend_existing": True}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    auth_id = Column(String(36), nullable=True, index=True)
    name = Column(String(120), nullable=True)
    whatsapp = Column(String(32), nullable=True)
    subscription_status = Column(String(32), nullable=True, index=True)
    role = Column(String(32), nullable=True)
    water_goal_l = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def subject_id(self) -> str:
        return self.auth_id or self.id


__all__ = ["ProfileAuth"]
