"""SQLAlchemy engine and session factory shared by the alert runtime."""

import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

load_dotenv()


def _database_url() -> str:
    url: Optional[str] = os.getenv("DATABASE_URL") or os.getenv("TEST_DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL or TEST_DATABASE_URL must be set.")
    if not url.lower().startswith("postgresql") and os.getenv("DATABASE_ALLOW_NON_POSTGRES", "0") != "1":
        raise RuntimeError(
            f"DATABASE_URL must be a PostgreSQL DSN (set DATABASE_ALLOW_NON_POSTGRES=1 to override): {url}"
        )
    return url


DATABASE_URL = _database_url()
IS_POSTGRES = DATABASE_URL.lower().startswith("postgresql")

# Worker threads share the engine; SQLite needs the same-thread check disabled.
connect_args: Dict[str, Any] = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=IS_POSTGRES)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


class Base(DeclarativeBase):
    """Declarative base for the domain and ledger tables."""
