import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Generator, List, Tuple

import pytest

os.environ.setdefault("DATABASE_ALLOW_NON_POSTGRES", "1")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("DATABASE_URL", os.getenv("DATABASE_URL", os.environ["TEST_DATABASE_URL"]))

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  - registers every table on Base.metadata
from database import Base
from services.alert_config import AlertSettings
from services.clock import ClockResolver, ClockSnapshot
from services.notification_service import DeliveryResult

TZ = "America/Sao_Paulo"


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "postgres: requires a PostgreSQL database")


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database per test; the engine's ledger tables start empty."""
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Callable[[], Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings() -> AlertSettings:
    return AlertSettings(timezone=TZ)


def snapshot_at(local_iso: str, timezone_name: str = TZ) -> ClockSnapshot:
    """Resolve a wall-clock time in the account timezone (``2024-05-10T14:05``)."""
    resolver = ClockResolver(timezone_name)
    naive = datetime.fromisoformat(local_iso)
    return resolver.resolve(naive.replace(tzinfo=resolver.tz))


@pytest.fixture()
def at() -> Callable[[str], ClockSnapshot]:
    return snapshot_at


@dataclass
class FakeSender:
    """Records deliveries; ``fail_for`` lists addresses that get an HTTP 500."""

    fail_for: Tuple[str, ...] = ()
    status_code: int = 200
    calls: List[Tuple[str, str]] = field(default_factory=list)

    def __call__(self, address: str, message: str) -> DeliveryResult:
        self.calls.append((address, message))
        if address in self.fail_for:
            return DeliveryResult(ok=False, status_code=500, error="HTTP 500")
        return DeliveryResult(ok=True, status_code=self.status_code)


@pytest.fixture()
def sender() -> FakeSender:
    return FakeSender()


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def monotonic() -> FakeClock:
    return FakeClock()
