"""Evaluate one alert cycle at a reference instant and print what would be sent.

Usage: python -m scripts.simulate_notifications [--at ISO] [--driver NAME] [--send]
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime

from core.env_utils import load_dotenv_if_available

load_dotenv_if_available()

from services.alert_config import AlertSettings
from services.alert_drivers import GOALS_DRIVER, PROACTIVE_DRIVER, REMINDERS_DRIVER
from services.alert_runtime import build_runtime


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate an alert driver cycle (dry run by default).")
    parser.add_argument(
        "--at",
        type=datetime.fromisoformat,
        default=None,
        help="Reference instant in ISO format; naive values are local time in ALERT_TIMEZONE (default: now).",
    )
    parser.add_argument(
        "--driver",
        action="append",
        choices=(PROACTIVE_DRIVER, GOALS_DRIVER, REMINDERS_DRIVER),
        help="Driver to evaluate (repeatable, default: all).",
    )
    parser.add_argument(
        "--send",
        action="store_true",
        help="Deliver through the configured channel and write the ledger.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    settings = AlertSettings.from_env().with_overrides(dry_run=not args.send)
    runtime = build_runtime(settings)
    snapshot = runtime.clock.resolve(runtime.clock.localize(args.at) if args.at else None)

    results = []
    sent = 0
    for name in args.driver or list(runtime.drivers):
        driver = runtime.driver(name)
        if driver.gate is not None and not driver.gate(snapshot):
            results.append({"driver": name, "skipped": f"outside window at {snapshot.hhmm}"})
            continue
        report = runtime.engine.run_cycle(driver.producers, snapshot=snapshot, driver=name)
        sent += report.sent
        summary = report.as_dict()
        summary["candidates"] = [
            {
                "subject": candidate.subject_id,
                "alert_type": candidate.alert_type,
                "dedup_key": candidate.dedup_key,
                "message": candidate.message,
            }
            for candidate in report.dispatched
        ]
        results.append(summary)

    print(
        json.dumps(
            {"reference": snapshot.instant.isoformat(), "dry_run": settings.dry_run, "drivers": results},
            ensure_ascii=False,
            indent=2,
        )
    )
    if args.send and not sent:
        print("Real send requested, but no message was delivered.", file=sys.stderr)
        return 3
    return 0


if __name__ == "__main__":
    sys.exit(main())
