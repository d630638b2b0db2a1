"""Worker entrypoints.

``celery -A worker.worker worker --beat`` runs the drivers through Celery beat;
``python -m worker.worker`` runs them in-process without a broker.
"""

from __future__ import annotations

import argparse
import signal
import threading
from typing import List, Optional

from core.env_utils import load_dotenv_if_available
from core.logging import get_logger

from .celery_app import app

logger = get_logger(__name__)


def run_standalone(driver_names: Optional[List[str]] = None, *, tick_seconds: float = 20) -> None:
    from services.alert_drivers import run_forever
    from services.alert_runtime import get_runtime

    runtime = get_runtime()
    names = driver_names or list(runtime.drivers)
    drivers = [runtime.driver(name) for name in names]

    stop = threading.Event()

    def _stop(signum, _frame) -> None:
        logger.info("Received signal %s; stopping alert scheduler.", signum)
        stop.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    run_forever(drivers, tick_seconds=tick_seconds, stop_event=stop)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the alert drivers without a Celery broker.")
    parser.add_argument("--driver", action="append", dest="drivers", help="Driver name (repeatable). Default: all.")
    parser.add_argument("--tick", type=float, default=20.0, help="Seconds between scheduler ticks.")
    args = parser.parse_args()

    load_dotenv_if_available()
    run_standalone(args.drivers, tick_seconds=args.tick)


if __name__ == "__main__":
    main()


__all__ = ["app", "main", "run_standalone"]
