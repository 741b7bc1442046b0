"""
backfill.py – capture time limits on in-progress attempts that predate them.

Usage:  python backfill.py

Each in-progress attempt with no time_limit_sec gets its paper's current
duration (0 when untimed).  Attempts whose paper cannot be read are left
alone and reported.
"""

import logging
import sys

import attempt_store
import content
import settings
from database import init_db
from models import AttemptStatus

logger = logging.getLogger(__name__)


def backfill_time_limits() -> tuple[int, int]:
    """Return (updated, failed) counts."""
    updated = failed = 0
    for row in attempt_store.find_missing_time_limits():
        try:
            duration = content.find_paper_duration(row["paper_id"]) or 0
        except Exception:
            logger.exception("Could not read paper %s for attempt %s", row["paper_id"], row["id"])
            failed += 1
            continue
        result = attempt_store.update(
            row["id"],
            {"time_limit_sec": duration},
            guard={"status": AttemptStatus.IN_PROGRESS, "time_limit_sec": None},
        )
        if result is not None:
            updated += 1
            logger.info("Backfilled attempt %s time_limit_sec=%s", row["id"], duration)
    return updated, failed


def main() -> int:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    init_db()
    updated, failed = backfill_time_limits()
    logger.info("Backfill complete: %d updated, %d failed", updated, failed)
    return 2 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
