#!/usr/bin/env python3
"""Run one missed-dose check from a plain crontab, without the HTTP trigger.

    python -m safety_net.jobs.check_missed [--now 2024-05-01T10:00:00+00:00]

Prints the same JSON body the HTTP endpoint returns. Exit code 0 on success, 2 on a
configuration error, 1 when the schedules could not be fetched.
"""
import argparse
import json
import logging
from datetime import datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo

from safety_net.core.config import Settings, validate_settings
from safety_net.core.errors import ConfigurationError, DependencyError
from safety_net.services.clients import Collaborators, build_mailer, build_storage
from safety_net.services.missed_dose import run_missed_dose_check


def _parse_now(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Detect missed doses and alert caretakers.")
    parser.add_argument("--now", help="ISO-8601 instant to evaluate instead of the current time")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    try:
        cfg = validate_settings(Settings())
    except ConfigurationError as e:
        print(json.dumps({"error": "Configuration Error", "details": e.details}))
        return 2

    collaborators = Collaborators(storage=build_storage(cfg), mailer=build_mailer(cfg))
    try:
        result = run_missed_dose_check(
            collaborators.storage,
            collaborators.mailer,
            tz=ZoneInfo(cfg.ALERT_TIMEZONE),
            lookback_low=timedelta(minutes=cfg.LOOKBACK_LOW_MINUTES),
            lookback_high=timedelta(minutes=cfg.LOOKBACK_HIGH_MINUTES),
            mail_from=cfg.MAIL_FROM,
            now=_parse_now(args.now),
            claims_enabled=cfg.ALERT_CLAIMS_ENABLED,
            audit_log=cfg.ALERT_AUDIT_LOG,
        )
    except DependencyError as e:
        print(json.dumps({"error": "Internal Server Error", "message": str(e)}))
        return 1
    finally:
        collaborators.close()

    if result.no_candidates:
        print(json.dumps({"message": "No schedules found for this window."}))
        return 0
    reports = result.reports
    print(json.dumps({"message": "Check complete", "reportsCount": len(reports), "reports": reports}))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
