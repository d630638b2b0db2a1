"""Create the alert ledger tables when they are missing.

The CRUD tables (profiles, diary, events...) belong to the application that
writes them; only the ledger tables are created here.

Usage: python -m scripts.init_alert_ledger [--legacy]
"""

from __future__ import annotations

import argparse
import time
from typing import Callable

from core.env_utils import load_dotenv_if_available

load_dotenv_if_available()

from sqlalchemy.exc import OperationalError

from core.logging import get_logger
from database import Base, engine
from models.alert import DailyGoalsNotification, WhatsAppAlertLog

logger = get_logger(__name__)


def _retry(operation: Callable[[], None], *, retries: int = 7, delay: float = 3.0) -> None:
    for attempt in range(1, retries + 1):
        try:
            operation()
            return
        except OperationalError as exc:
            if attempt == retries:
                raise
            logger.warning(
                "Database not ready yet (attempt %d/%d). Retrying in %.1f seconds: %s",
                attempt,
                retries,
                delay,
                exc,
            )
            time.sleep(delay)


def create_ledger_tables(*, include_legacy: bool = False) -> None:
    tables = [WhatsAppAlertLog.__table__]
    if include_legacy:
        tables.append(DailyGoalsNotification.__table__)
    Base.metadata.create_all(bind=engine, tables=tables, checkfirst=True)
    logger.info("Alert ledger tables ready: %s", ", ".join(table.name for table in tables))


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the alert ledger tables.")
    parser.add_argument(
        "--legacy",
        action="store_true",
        help="Also create the dated legacy table (daily_goals_notifications).",
    )
    args = parser.parse_args()
    _retry(lambda: create_ledger_tables(include_legacy=args.legacy))


if __name__ == "__main__":
    main()
