"""
Daily Rent Schedule Refresh
Adds rent records for periods that have fallen due since the last run
"""

import logging
from typing import Optional

from rent_application import database
from rent_application.database import SqlitePaymentStore, get_db_connection
from rent_application.rent_accounting.schedule.generator import missing_periods
from rent_application.rent_accounting.utils.date_utils import DateLike, to_date

logger = logging.getLogger(__name__)


def run_daily_schedule_refresh(as_of: Optional[DateLike] = None, db_conn=None) -> int:
    """
    Evaluates every active tenancy and inserts pending records for newly due
    periods. Existing records are never modified or deleted.

    Args:
        as_of: Evaluation date (defaults to today)
        db_conn: Optional database connection. If None, creates a new connection.
    Returns:
        Number of rent records created
    """
    logger.info("🔔 Starting daily rent schedule refresh")

    if db_conn is None:
        with get_db_connection() as conn:
            return _run_refresh_with_connection(conn, as_of)
    else:
        return _run_refresh_with_connection(db_conn, as_of)


def _run_refresh_with_connection(conn, as_of: Optional[DateLike]) -> int:
    """Internal function to run the refresh with a database connection."""
    today = to_date(as_of)
    logger.info(f"📅 Refreshing rent schedules as of {today}")

    tenancies = database.list_tenancies(active=True, conn=conn)
    if not tenancies:
        logger.info("ℹ️ No active tenancies found")
        return 0

    store = SqlitePaymentStore(conn)
    records_created = 0

    for tenancy in tenancies:
        existing = store.find(tenancy.tenancy_id)
        drafts = missing_periods(
            tenancy.tenancy_id,
            tenancy.start_date,
            tenancy.monthly_rent,
            today,
            existing,
        )
        if not drafts:
            continue

        store.insert_many(drafts)
        records_created += len(drafts)
        logger.info(
            f"🎯 Tenancy {tenancy.tenancy_id}: added "
            f"{', '.join(d.period_start.strftime('%b %Y') for d in drafts)}"
        )

    logger.info(f"✅ Daily refresh complete: {records_created} rent record(s) created across {len(tenancies)} tenancies")
    return records_created
