"""
Data models for rent accounting
Tenancy terms, monthly rent records and reconciliation plans
"""

from dataclasses import dataclass, field, replace
from typing import Optional, List, Dict, Any, NamedTuple
from datetime import date
from decimal import Decimal
from enum import Enum


class PaymentStatus(str, Enum):
    """Payment state of one rent record"""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class TenancyStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    TERMINATED = "terminated"


class RentRecordKey(NamedTuple):
    """Natural key of a rent record: one record per tenancy per billed month"""
    tenancy_id: int
    period_start: date


@dataclass
class RentRecord:
    """One billing period's rent obligation and its payment status"""

    tenancy_id: int
    period_start: date
    amount_due: Decimal
    status: PaymentStatus = PaymentStatus.PENDING
    paid_date: Optional[date] = None
    remarks: str = ""

    # Structured partial-payment amount; remarks is only a free-text note
    amount_paid: Decimal = Decimal("0")

    # Store identity, None until persisted
    rent_id: Optional[int] = None
    created_at: Optional[str] = None

    @property
    def key(self) -> RentRecordKey:
        return RentRecordKey(self.tenancy_id, self.period_start)

    @property
    def is_protected(self) -> bool:
        """Paid and partial records carry real transaction history"""
        return self.status != PaymentStatus.PENDING

    def with_changes(self, **changes) -> "RentRecord":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            'rent_id': self.rent_id,
            'tenancy_id': self.tenancy_id,
            'rent_month': self.period_start.isoformat(),
            'rent_amount': float(self.amount_due),
            'payment_status': self.status.value,
            'paid_date': self.paid_date.isoformat() if self.paid_date else None,
            'amount_paid': float(self.amount_paid),
            'remarks': self.remarks,
            'created_at': self.created_at,
        }


# A draft is a record that has not been written to the store yet
RentRecordDraft = RentRecord


def new_draft(tenancy_id: int, period_start: date, amount_due: Decimal) -> RentRecordDraft:
    """Fresh pending record for one due period"""
    return RentRecord(
        tenancy_id=tenancy_id,
        period_start=period_start,
        amount_due=amount_due,
        status=PaymentStatus.PENDING,
        paid_date=None,
        remarks="",
    )


@dataclass
class Tenancy:
    """Rental agreement linking one tenant to one property"""

    tenancy_id: Optional[int]
    property_id: int
    tenant_id: int
    start_date: date
    monthly_rent: Decimal
    advance_amount: Decimal = Decimal("0")
    end_date: Optional[date] = None
    status: TenancyStatus = TenancyStatus.ACTIVE
    created_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.end_date is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tenancy_id': self.tenancy_id,
            'property_id': self.property_id,
            'tenant_id': self.tenant_id,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'monthly_rent': float(self.monthly_rent),
            'advance_amount': float(self.advance_amount),
            'status': self.status.value,
            'created_at': self.created_at,
        }


@dataclass
class ReconciliationPlan:
    """Store operations needed to bring pending records in line with new tenancy terms"""

    to_delete: List[RentRecordKey] = field(default_factory=list)
    to_insert: List[RentRecordDraft] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_delete and not self.to_insert

    def to_dict(self) -> Dict[str, Any]:
        return {
            'deleted_months': [key.period_start.isoformat() for key in self.to_delete],
            'inserted_months': [draft.period_start.isoformat() for draft in self.to_insert],
        }
