#!/usr/bin/env python3
"""
Nightly room billing.

Run once a day from cron / a systemd timer, shortly after midnight local time:

    carebill-room-billing                 # bill every live case through yesterday
    carebill-room-billing --include-today # also bill the current day
    carebill-room-billing --at 2025-01-04T00:30:00

Exit code is 1 when any case failed or timed out, so the scheduler can alert.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from typing import List, Optional

from fastapi.encoders import jsonable_encoder

from carebill.core.config import settings
from carebill.db.session import SessionLocal
from carebill.services.billing_room_daily import (
    OUTCOME_FAILED,
    OUTCOME_TIMEOUT,
    accumulate_room_charges,
)

# -------------------------------------------------------------------
#  Logging setup
# -------------------------------------------------------------------

logger = logging.getLogger("carebill.room-billing")


def setup_logging(level: str = "INFO", log_file: str = "") -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))

    # Console handler
    ch = logging.StreamHandler(sys.stdout)
    ch.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s",
                          datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(ch)

    # File handler
    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            ))
        root.addHandler(fh)


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Add one room charge per elapsed day to every live bill.")
    parser.add_argument(
        "--include-today",
        action="store_true",
        default=None,
        help="Bill the current day too (default: through yesterday).",
    )
    parser.add_argument(
        "--at",
        type=datetime.fromisoformat,
        default=None,
        help=("Run as if it were this ISO timestamp; an offset is converted "
              "to hospital-local time."),
    )
    parser.add_argument(
        "--case-timeout",
        type=float,
        default=None,
        help="Per-case time budget in seconds (0 disables).",
    )
    parser.add_argument("--json",
                        action="store_true",
                        help="Print the run summary as JSON.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    db = SessionLocal()
    try:
        summary = accumulate_room_charges(
            db,
            now=args.at,
            include_today=args.include_today,
            case_timeout=args.case_timeout,
        )
    finally:
        db.close()

    if args.json:
        print(json.dumps(jsonable_encoder(summary.as_dict()), indent=2))

    bad = summary.count(OUTCOME_FAILED) + summary.count(OUTCOME_TIMEOUT)
    if bad:
        logger.warning("%s case(s) need attention", bad)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
