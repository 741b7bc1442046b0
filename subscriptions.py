"""
subscriptions.py – entitlement check consulted before an attempt may start.

Access to a paper is granted by any active, unexpired subscription that is
  - all-access,
  - single-paper for that paper, or
  - test-series for a series containing that paper.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from database import get_connection, new_id, to_db_time, utcnow

logger = logging.getLogger(__name__)

SUBSCRIPTION_TYPES = ("all-access", "single-paper", "test-series")


def has_access(user_id: int, paper_id: str, now: Optional[datetime] = None) -> bool:
    now_s = to_db_time(now or utcnow())
    with get_connection() as conn:
        row = conn.execute(
            """
            SELECT 1
            FROM   subscriptions s
            WHERE  s.user_id = ?
              AND  s.status  = 'active'
              AND  s.end_date >= ?
              AND  (
                       s.type = 'all-access'
                   OR (s.type = 'single-paper' AND s.item_id = ?)
                   OR (s.type = 'test-series' AND EXISTS (
                           SELECT 1 FROM test_series_papers tsp
                           WHERE  tsp.series_id = s.item_id
                             AND  tsp.paper_id  = ?))
                   )
            LIMIT 1
            """,
            (user_id, now_s, paper_id, paper_id),
        ).fetchone()
    if not row:
        logger.info("No active subscription for user %s on paper %s", user_id, paper_id)
    return row is not None


def grant_subscription(
    user_id: int,
    sub_type: str,
    item_id: Optional[str] = None,
    days: int = 30,
    start: Optional[datetime] = None,
) -> int:
    if sub_type not in SUBSCRIPTION_TYPES:
        raise ValueError(f"Unknown subscription type: {sub_type!r}")
    if sub_type != "all-access" and not item_id:
        raise ValueError(f"{sub_type} subscription needs an item_id")
    start = start or utcnow()
    with get_connection() as conn:
        cur = conn.execute(
            """INSERT INTO subscriptions (user_id, type, item_id, start_date, end_date)
               VALUES (?,?,?,?,?)""",
            (
                user_id,
                sub_type,
                item_id,
                to_db_time(start),
                to_db_time(start + timedelta(days=days)),
            ),
        )
        conn.commit()
        return cur.lastrowid


def create_test_series(title: str, paper_ids: list[str]) -> str:
    series_id = new_id()
    with get_connection() as conn:
        conn.execute("INSERT INTO test_series (id, title) VALUES (?,?)", (series_id, title))
        conn.executemany(
            "INSERT INTO test_series_papers (series_id, paper_id) VALUES (?,?)",
            [(series_id, pid) for pid in paper_ids],
        )
        conn.commit()
    return series_id
