"""
Tenancy lifecycle
Creating, editing and ending tenancies, keeping rent records in step
"""

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Dict, Optional, Tuple

from rent_application import database
from rent_application.database import SqlitePaymentStore, get_db_connection
from rent_application.rent_accounting.core.errors import InvalidScheduleInput, RecordNotFound, TenancyConflict
from rent_application.rent_accounting.core.models import ReconciliationPlan, Tenancy, TenancyStatus
from rent_application.rent_accounting.schedule.generator import (
    validate_monthly_rent,
    validate_start_date,
    generate_initial_schedule,
    reconcile_schedule,
)
from rent_application.rent_accounting.utils.date_utils import DateLike, parse_date, to_date

logger = logging.getLogger(__name__)


def _parse_advance(value) -> Decimal:
    if value in (None, ''):
        return Decimal("0")
    try:
        return validate_monthly_rent(value)
    except InvalidScheduleInput as e:
        raise InvalidScheduleInput(f"Invalid advance amount {value!r}") from e


def _reconcile_status(tenancy: Tenancy, status_given: bool):
    """
    Keep status and end_date in agreement: an open tenancy is active and a
    closed one is not. An explicit status that contradicts end_date is
    rejected; otherwise the status follows end_date.
    """
    closed = tenancy.end_date is not None
    if closed == (tenancy.status != TenancyStatus.ACTIVE):
        return
    if status_given:
        if closed:
            raise InvalidScheduleInput("A tenancy with an end date cannot be active")
        raise InvalidScheduleInput(f"A {tenancy.status.value} tenancy needs an end date")
    tenancy.status = TenancyStatus.COMPLETED if closed else TenancyStatus.ACTIVE


def sync_rent_schedule(
    store,
    tenancy_id: int,
    start_date: DateLike,
    monthly_rent,
    as_of: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
) -> ReconciliationPlan:
    """
    Bring stored pending records in line with the tenancy's current terms

    Runs find -> reconcile -> delete_many -> insert_many against the store.
    Store failures propagate as StoreUnavailable; nothing is retried here.
    Give the store a shared connection to make the delete and insert atomic.
    """
    existing = store.find(tenancy_id)
    plan = reconcile_schedule(tenancy_id, start_date, monthly_rent, as_of, existing, end_date=end_date)
    if plan.is_empty:
        return plan
    store.delete_many(tenancy_id, plan.to_delete)
    store.insert_many(plan.to_insert)
    logger.info(f"✅ Rent schedule synced for tenancy {tenancy_id}: -{len(plan.to_delete)} +{len(plan.to_insert)}")
    return plan


def create_tenancy(data: Dict, as_of: Optional[DateLike] = None) -> Tuple[Tenancy, int]:
    """
    Create a tenancy and its initial rent schedule in one transaction

    Args:
        data: property_id, tenant_id, start_date, monthly_rent, advance_amount
        as_of: Evaluation date for the schedule (defaults to today)
    Returns:
        (tenancy, number of rent records generated)
    """
    start = validate_start_date(data.get('start_date'))
    rent = validate_monthly_rent(data.get('monthly_rent'))
    try:
        property_id = int(data['property_id'])
        tenant_id = int(data['tenant_id'])
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidScheduleInput("property_id and tenant_id must be integers") from e

    with get_db_connection() as conn:
        if database.get_property(property_id, conn=conn) is None:
            raise RecordNotFound(f"Property {property_id} not found")
        if database.get_tenant(tenant_id, conn=conn) is None:
            raise RecordNotFound(f"Tenant {tenant_id} not found")

        active = database.get_active_tenancy(property_id, conn=conn)
        if active is not None:
            raise TenancyConflict(f"Property {property_id} already has active tenancy {active.tenancy_id}")

        tenancy = Tenancy(
            tenancy_id=None,
            property_id=property_id,
            tenant_id=tenant_id,
            start_date=start,
            monthly_rent=rent,
            advance_amount=_parse_advance(data.get('advance_amount')),
        )
        tenancy.tenancy_id = database.insert_tenancy(tenancy, conn=conn)

        drafts = generate_initial_schedule(tenancy.tenancy_id, start, rent, as_of)
        SqlitePaymentStore(conn).insert_many(drafts)

    logger.info(f"🏠 Tenancy {tenancy.tenancy_id} created for property {property_id} with {len(drafts)} rent record(s)")
    return tenancy, len(drafts)


def update_tenancy(tenancy_id: int, changes: Dict, as_of: Optional[DateLike] = None) -> Tuple[Tenancy, ReconciliationPlan]:
    """
    Apply edits to a tenancy; re-sync pending rent when start date, rent or
    end date changed

    Paid and partial records are kept as they are. The new rent only applies
    to regenerated pending records, never to history. Clearing end_date
    reopens the tenancy, which fails with TenancyConflict while another
    tenancy on the property is active.
    """
    with get_db_connection() as conn:
        current = database.get_tenancy(tenancy_id, conn=conn)
        if current is None:
            raise RecordNotFound(f"Tenancy {tenancy_id} not found")

        updated = replace(current)
        if changes.get('start_date') not in (None, ''):
            updated.start_date = validate_start_date(changes['start_date'])
        if changes.get('monthly_rent') not in (None, ''):
            updated.monthly_rent = validate_monthly_rent(changes['monthly_rent'])
        if 'advance_amount' in changes:
            updated.advance_amount = _parse_advance(changes['advance_amount'])
        if changes.get('tenant_id') is not None:
            try:
                updated.tenant_id = int(changes['tenant_id'])
            except (TypeError, ValueError) as e:
                raise InvalidScheduleInput(f"Invalid tenant_id {changes['tenant_id']!r}") from e
            if database.get_tenant(updated.tenant_id, conn=conn) is None:
                raise RecordNotFound(f"Tenant {updated.tenant_id} not found")
        if 'end_date' in changes:
            try:
                updated.end_date = parse_date(changes['end_date'])
            except (ValueError, TypeError) as e:
                raise InvalidScheduleInput(f"Invalid end date {changes['end_date']!r}") from e
        if changes.get('status'):
            try:
                updated.status = TenancyStatus(changes['status'])
            except ValueError as e:
                raise InvalidScheduleInput(f"Unknown tenancy status {changes['status']!r}") from e
        _reconcile_status(updated, status_given=bool(changes.get('status')))

        if current.end_date is not None and updated.end_date is None:
            active = database.get_active_tenancy(updated.property_id, conn=conn)
            if active is not None and active.tenancy_id != tenancy_id:
                raise TenancyConflict(
                    f"Property {updated.property_id} already has active tenancy {active.tenancy_id}"
                )

        database.save_tenancy(updated, conn=conn)

        plan = ReconciliationPlan()
        terms_changed = (
            updated.start_date != current.start_date
            or updated.monthly_rent != current.monthly_rent
            or updated.end_date != current.end_date
        )
        if terms_changed:
            logger.info(f"📝 Tenancy {tenancy_id} terms changed, syncing rent schedule")
            plan = sync_rent_schedule(
                SqlitePaymentStore(conn),
                tenancy_id,
                updated.start_date,
                updated.monthly_rent,
                as_of,
                end_date=updated.end_date,
            )

    return updated, plan


def end_tenancy(tenancy_id: int, as_of: Optional[DateLike] = None,
                status: TenancyStatus = TenancyStatus.COMPLETED) -> Tenancy:
    """Close a tenancy; records due by the end date stay for follow-up"""
    end_date = to_date(as_of)
    tenancy, _ = update_tenancy(
        tenancy_id,
        {'end_date': end_date.isoformat(), 'status': status.value},
        as_of=end_date,
    )
    logger.info(f"🔚 Tenancy {tenancy_id} ended on {end_date}")
    return tenancy


def delete_property(property_id: int, as_of: Optional[date] = None) -> bool:
    """
    Remove a property

    A property with any tenancy history is soft-deleted (is_active = 0) after
    its active tenancy, if any, is ended. A property with no history is
    deleted outright.

    Returns:
        True when the property was soft-deleted
    """
    if database.get_property(property_id) is None:
        raise RecordNotFound(f"Property {property_id} not found")

    tenancies = database.list_tenancies(property_id=property_id)
    if not tenancies:
        database.delete_property(property_id)
        logger.info(f"🗑️ Property {property_id} deleted")
        return False

    for tenancy in tenancies:
        if tenancy.is_active:
            end_tenancy(tenancy.tenancy_id, as_of=as_of)

    database.update_property(property_id, {'is_active': False})
    logger.info(f"📦 Property {property_id} archived with {len(tenancies)} tenancy record(s)")
    return True
