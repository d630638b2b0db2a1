from __future__ import annotations

import uuid

from sqlalchemy import Column, Date, Enum, Float, String, Text

from database import Base

TRANSACTION_TYPE = Enum("income", "expense", name="transaction_type")


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = {"extend_existing": True}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    type = Column(TRANSACTION_TYPE, nullable=False)
    amount = Column(Float, nullable=False, default=0)
    description = Column(Text, nullable=True)
    category = Column(String(80), nullable=True)
    date = Column(Date, nullable=False, index=True)


__all__ = ["Transaction"]
