"""
Rent Schedule Generator
Computes which monthly rent records are due for a tenancy and reconciles
stored pending records when the tenancy's start date or rent changes

Billing model:
  - the day of month of start_date is the recurring due day
  - period k (k = 1, 2, ...) falls due on start_date + k months
  - a period is due once its due date is on or before the evaluation date
  - rent_month (period_start) is the first day of the due date's month
  - the move-in month is billed only after it completes (one-period lag)
"""

import logging
import math
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Set, Tuple

from rent_application.rent_accounting.core.errors import InvalidScheduleInput
from rent_application.rent_accounting.core.models import (
    PaymentStatus,
    ReconciliationPlan,
    RentRecord,
    RentRecordDraft,
    new_draft,
)
from rent_application.rent_accounting.utils.date_utils import DateLike, edate, month_start, parse_date

logger = logging.getLogger(__name__)


def validate_start_date(start_date: DateLike) -> date:
    try:
        parsed = parse_date(start_date)
    except (ValueError, TypeError) as e:
        raise InvalidScheduleInput(f"Invalid start date {start_date!r}: {e}") from e
    if parsed is None:
        raise InvalidScheduleInput("Start date is required")
    return parsed


def validate_monthly_rent(monthly_rent) -> Decimal:
    if isinstance(monthly_rent, bool) or monthly_rent is None:
        raise InvalidScheduleInput(f"Invalid monthly rent {monthly_rent!r}")
    if isinstance(monthly_rent, float) and not math.isfinite(monthly_rent):
        raise InvalidScheduleInput(f"Monthly rent must be finite, got {monthly_rent!r}")
    try:
        amount = Decimal(str(monthly_rent).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidScheduleInput(f"Invalid monthly rent {monthly_rent!r}") from e
    if not amount.is_finite():
        raise InvalidScheduleInput(f"Monthly rent must be finite, got {monthly_rent!r}")
    if amount < 0:
        raise InvalidScheduleInput(f"Monthly rent cannot be negative, got {amount}")
    return amount


def _evaluation_date(as_of: Optional[DateLike], end_date: Optional[DateLike]) -> date:
    try:
        horizon = parse_date(as_of) or date.today()
        closed_on = parse_date(end_date)
    except (ValueError, TypeError) as e:
        raise InvalidScheduleInput(f"Invalid evaluation date: {e}") from e
    # A closed tenancy stops accruing at its end date
    if closed_on is not None and closed_on < horizon:
        return closed_on
    return horizon


def due_dates(start_date: date, as_of: date) -> List[date]:
    """
    Due dates of every completed billing period up to as_of

    Each due date is computed from start_date directly so month-length
    clamping (Jan 31 -> Feb 29) never carries into later months.
    """
    dates = []
    k = 1
    while True:
        due = edate(start_date, k)
        if due > as_of:
            break
        dates.append(due)
        k += 1
    return dates


def _due_periods(start_date: date, as_of: date) -> List[date]:
    # start + k months lands in a distinct calendar month for every k
    return [month_start(due) for due in due_dates(start_date, as_of)]


def generate_initial_schedule(
    tenancy_id: int,
    start_date: DateLike,
    monthly_rent,
    as_of: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
) -> List[RentRecordDraft]:
    """
    Pending rent drafts for every period due on or before as_of

    Pure function - the caller persists the result with PaymentStore.insert_many.

    Args:
        tenancy_id: Owning tenancy
        start_date: Tenancy start; its day of month is the due day
        monthly_rent: Amount due per period
        as_of: Evaluation date (defaults to today)
        end_date: Tenancy end date; no period falls due after it
    Returns:
        Drafts in month order, one per due period
    Raises:
        InvalidScheduleInput: malformed start date or negative/non-finite rent
    """
    start = validate_start_date(start_date)
    amount = validate_monthly_rent(monthly_rent)
    horizon = _evaluation_date(as_of, end_date)

    drafts = [new_draft(tenancy_id, period_start, amount) for period_start in _due_periods(start, horizon)]
    logger.debug(f"📅 Tenancy {tenancy_id}: {len(drafts)} due period(s) from {start} as of {horizon}")
    return drafts


def _pending_signature(records: Iterable[RentRecord]) -> Set[Tuple[date, Decimal]]:
    return {(record.period_start, record.amount_due) for record in records}


def reconcile_schedule(
    tenancy_id: int,
    new_start_date: DateLike,
    new_monthly_rent,
    as_of: Optional[DateLike],
    existing_records: Iterable[RentRecord],
    end_date: Optional[DateLike] = None,
) -> ReconciliationPlan:
    """
    Plan the store changes after a tenancy's start date or rent is edited

    Paid and partial records are protected: never deleted, never duplicated.
    Every pending record is discarded and the pending schedule is rebuilt
    from the new terms, unless the rebuilt schedule is identical to what is
    already stored, in which case the plan is empty.

    The caller runs PaymentStore.delete_many(plan.to_delete) followed by
    PaymentStore.insert_many(plan.to_insert).
    """
    start = validate_start_date(new_start_date)
    amount = validate_monthly_rent(new_monthly_rent)
    horizon = _evaluation_date(as_of, end_date)

    records = list(existing_records)
    protected = [r for r in records if r.status != PaymentStatus.PENDING]
    mutable = [r for r in records if r.status == PaymentStatus.PENDING]
    covered = {r.period_start for r in protected}

    to_insert = [
        new_draft(tenancy_id, period_start, amount)
        for period_start in _due_periods(start, horizon)
        if period_start not in covered
    ]

    if len(mutable) == len(to_insert) and _pending_signature(mutable) == _pending_signature(to_insert):
        logger.debug(f"✅ Tenancy {tenancy_id}: pending schedule already up to date")
        return ReconciliationPlan()

    plan = ReconciliationPlan(
        to_delete=[r.key for r in mutable],
        to_insert=to_insert,
    )
    logger.info(
        f"🔄 Tenancy {tenancy_id}: reconcile drops {len(plan.to_delete)} pending, "
        f"adds {len(plan.to_insert)}, keeps {len(protected)} protected"
    )
    return plan


def missing_periods(
    tenancy_id: int,
    start_date: DateLike,
    monthly_rent,
    as_of: Optional[DateLike],
    existing_records: Iterable[RentRecord],
    end_date: Optional[DateLike] = None,
) -> List[RentRecordDraft]:
    """Drafts for due periods that have no record at all yet (never deletes anything)"""
    present = {r.period_start for r in existing_records}
    return [
        draft
        for draft in generate_initial_schedule(tenancy_id, start_date, monthly_rent, as_of, end_date)
        if draft.period_start not in present
    ]
