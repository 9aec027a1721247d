"""
Rent payment rules
Status transitions, partial payments and outstanding balances
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from rent_application.rent_accounting.core.errors import InvalidPaymentUpdate
from rent_application.rent_accounting.core.models import PaymentStatus, RentRecord

# pending -> paid | partial, partial -> paid | partial; paid is terminal
ALLOWED_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.PARTIAL},
    PaymentStatus.PARTIAL: {PaymentStatus.PAID, PaymentStatus.PARTIAL},
    PaymentStatus.PAID: set(),
}


def parse_status(value) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError as e:
        raise InvalidPaymentUpdate(f"Unknown payment status {value!r}") from e


def parse_amount(value) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise InvalidPaymentUpdate(f"Invalid amount {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidPaymentUpdate(f"Invalid amount {value!r}") from e
    if not amount.is_finite():
        raise InvalidPaymentUpdate(f"Invalid amount {value!r}")
    return amount


def check_transition(current: PaymentStatus, new: PaymentStatus):
    """Raise InvalidPaymentUpdate unless current -> new is allowed"""
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidPaymentUpdate(f"Cannot move a {current.value} rent record to {new.value}")


def mark_paid(record: RentRecord, paid_on: Optional[date] = None) -> RentRecord:
    """Record full payment of the period"""
    check_transition(record.status, PaymentStatus.PAID)
    return record.with_changes(
        status=PaymentStatus.PAID,
        paid_date=paid_on or date.today(),
        amount_paid=record.amount_due,
    )


def mark_partial(record: RentRecord, amount_paid, remarks: Optional[str] = None) -> RentRecord:
    """
    Record a partial payment

    amount_paid is the cumulative amount received for the period and must be
    strictly between zero and the amount due; a full amount is a paid record.
    """
    check_transition(record.status, PaymentStatus.PARTIAL)
    amount = parse_amount(amount_paid)
    if amount <= 0:
        raise InvalidPaymentUpdate("Partial payment amount must be greater than zero")
    if amount >= record.amount_due:
        raise InvalidPaymentUpdate(
            f"Partial payment {amount} covers the full rent {record.amount_due}; mark the record as paid"
        )
    return record.with_changes(
        status=PaymentStatus.PARTIAL,
        paid_date=None,
        amount_paid=amount,
        remarks=record.remarks if remarks is None else remarks,
    )


def apply_update(record: RentRecord, status=None, amount_paid=None,
                 paid_date: Optional[date] = None, remarks: Optional[str] = None) -> RentRecord:
    """Edit a record from a form: optional status change, paid amount/date and remarks"""
    new_status = parse_status(status) if status is not None else record.status

    if new_status == PaymentStatus.PAID and record.status == PaymentStatus.PAID:
        # correcting the paid date of a settled record
        updated = record.with_changes(paid_date=paid_date or record.paid_date)
    elif new_status == PaymentStatus.PAID:
        updated = mark_paid(record, paid_on=paid_date)
    elif new_status == PaymentStatus.PARTIAL:
        updated = mark_partial(record, record.amount_paid if amount_paid is None else amount_paid)
    else:
        if record.status != PaymentStatus.PENDING:
            check_transition(record.status, new_status)
        updated = record

    if remarks is not None:
        updated = updated.with_changes(remarks=remarks)
    return updated


def outstanding_amount(record: RentRecord) -> Decimal:
    if record.status == PaymentStatus.PAID:
        return Decimal("0")
    if record.status == PaymentStatus.PARTIAL:
        return max(record.amount_due - record.amount_paid, Decimal("0"))
    return record.amount_due


def total_outstanding(records: Iterable[RentRecord]) -> Decimal:
    return sum((outstanding_amount(r) for r in records), Decimal("0"))
