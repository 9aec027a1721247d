"""
Rent schedule engine tests: due-period generation and reconciliation
"""
from datetime import date
from decimal import Decimal

import pytest

from rent_application.rent_accounting.core.errors import InvalidScheduleInput, StoreUnavailable
from rent_application.rent_accounting.core.models import PaymentStatus, RentRecordKey
from rent_application.rent_accounting.schedule.generator import (
    due_dates,
    generate_initial_schedule,
    missing_periods,
    reconcile_schedule,
)
from rent_application.rent_accounting.utils.date_utils import edate, eomonth, parse_date
from rent_application.tenancy_management import sync_rent_schedule


def months(drafts):
    return [d.period_start for d in drafts]


class InMemoryPaymentStore:
    """Payment store double keyed by (tenancy_id, period_start)"""

    def __init__(self, records=(), fail_on=None):
        self.records = {r.key: r for r in records}
        self.fail_on = fail_on
        self.calls = []

    def find(self, tenancy_id, statuses=None):
        self.calls.append('find')
        return sorted(
            (r for r in self.records.values()
             if r.tenancy_id == tenancy_id and (statuses is None or r.status in statuses)),
            key=lambda r: r.period_start,
        )

    def insert_many(self, drafts):
        self.calls.append('insert_many')
        if self.fail_on == 'insert_many':
            raise StoreUnavailable("insert failed")
        for draft in drafts:
            assert draft.key not in self.records
            self.records[draft.key] = draft

    def delete_many(self, tenancy_id, keys):
        self.calls.append('delete_many')
        if self.fail_on == 'delete_many':
            raise StoreUnavailable("delete failed")
        for key in keys:
            self.records.pop(key)


def apply(records, plan):
    deleted = set(plan.to_delete)
    return [r for r in records if r.key not in deleted] + list(plan.to_insert)


# ============ DATE ARITHMETIC ============
def test_edate_clamps_to_month_end():
    assert edate(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert edate(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert edate(date(2024, 1, 31), 2) == date(2024, 3, 31)
    assert edate(date(2024, 3, 31), 1) == date(2024, 4, 30)


def test_eomonth():
    assert eomonth(date(2024, 2, 10)) == date(2024, 2, 29)
    assert eomonth(date(2024, 12, 5)) == date(2024, 12, 31)
    assert eomonth(date(2024, 1, 15), 1) == date(2024, 2, 29)


def test_due_dates_clamped_without_drift():
    assert due_dates(date(2024, 1, 31), date(2024, 5, 31)) == [
        date(2024, 2, 29),
        date(2024, 3, 31),
        date(2024, 4, 30),
        date(2024, 5, 31),
    ]


# ============ GENERATION ============
def test_three_completed_periods():
    drafts = generate_initial_schedule(7, date(2024, 1, 15), 10000, as_of=date(2024, 4, 20))

    assert months(drafts) == [date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)]
    for draft in drafts:
        assert draft.tenancy_id == 7
        assert draft.amount_due == Decimal("10000")
        assert draft.status == PaymentStatus.PENDING
        assert draft.paid_date is None
        assert draft.remarks == ""
        assert draft.rent_id is None


def test_period_due_on_its_due_date():
    assert months(generate_initial_schedule(1, "2024-01-15", 500, as_of="2024-02-15")) == [date(2024, 2, 1)]
    assert generate_initial_schedule(1, "2024-01-15", 500, as_of="2024-02-14") == []


def test_future_start_has_no_records():
    assert generate_initial_schedule(1, date(2024, 6, 1), 500, as_of=date(2024, 4, 20)) == []


def test_move_in_month_not_billed_before_it_completes():
    assert generate_initial_schedule(1, date(2024, 4, 1), 500, as_of=date(2024, 4, 30)) == []


def test_leap_year_clamping():
    drafts = generate_initial_schedule(1, date(2024, 1, 31), 900, as_of=date(2024, 3, 30))
    assert months(drafts) == [date(2024, 2, 1)]

    drafts = generate_initial_schedule(1, date(2024, 1, 31), 900, as_of=date(2024, 3, 31))
    assert months(drafts) == [date(2024, 2, 1), date(2024, 3, 1)]


def test_datetime_and_string_inputs():
    from datetime import datetime
    a = generate_initial_schedule(1, datetime(2024, 1, 15, 9, 30), "10000.50", as_of="2024-04-20")
    b = generate_initial_schedule(1, "2024-01-15", Decimal("10000.50"), as_of=date(2024, 4, 20))
    assert a == b
    assert a[0].amount_due == Decimal("10000.50")


def test_zero_rent_is_allowed():
    drafts = generate_initial_schedule(1, date(2024, 1, 15), 0, as_of=date(2024, 2, 20))
    assert drafts[0].amount_due == Decimal("0")


def test_end_date_caps_schedule():
    drafts = generate_initial_schedule(
        1, date(2024, 1, 15), 500, as_of=date(2024, 8, 1), end_date=date(2024, 4, 10)
    )
    assert months(drafts) == [date(2024, 2, 1), date(2024, 3, 1)]


def test_parse_date_accepts_iso_datetime_strings():
    assert parse_date("2024-01-15") == date(2024, 1, 15)
    assert parse_date(" 2024-01-15 ") == date(2024, 1, 15)
    assert parse_date("2024-01-15T09:30:00") == date(2024, 1, 15)
    assert parse_date("2024-01-15 09:30:00") == date(2024, 1, 15)


@pytest.mark.parametrize("start", [
    "2024-13-01", "not a date", None, "", 20240115,
    "2024-01-15garbage", "2024-01-15T25:00:00", "2024-01-1",
])
def test_invalid_start_date(start):
    with pytest.raises(InvalidScheduleInput):
        generate_initial_schedule(1, start, 500, as_of=date(2024, 4, 20))


@pytest.mark.parametrize("rent", [-1, "-0.01", float("nan"), float("inf"), "Infinity", "abc", None, True])
def test_invalid_rent(rent):
    with pytest.raises(InvalidScheduleInput):
        generate_initial_schedule(1, date(2024, 1, 15), rent, as_of=date(2024, 4, 20))


def test_invalid_schedule_input_is_a_value_error():
    with pytest.raises(ValueError):
        generate_initial_schedule(1, date(2024, 1, 15), -5, as_of=date(2024, 4, 20))


def test_deterministic():
    args = (3, date(2023, 5, 31), 12000)
    assert generate_initial_schedule(*args, as_of=date(2024, 9, 1)) == \
        generate_initial_schedule(*args, as_of=date(2024, 9, 1))


def test_monotonic_coverage():
    start = date(2023, 1, 31)
    earlier = set(months(generate_initial_schedule(1, start, 100, as_of=date(2023, 7, 15))))
    later = set(months(generate_initial_schedule(1, start, 100, as_of=date(2024, 2, 29))))
    assert earlier and earlier < later


def test_no_duplicate_periods_over_long_horizon():
    drafts = generate_initial_schedule(1, date(2019, 1, 31), 100, as_of=date(2024, 12, 31))
    periods = months(drafts)
    assert len(periods) == len(set(periods)) == 71
    assert periods == sorted(periods)


def test_missing_periods_only_returns_absent_months():
    existing = generate_initial_schedule(1, date(2024, 1, 15), 100, as_of=date(2024, 3, 20))
    drafts = missing_periods(1, date(2024, 1, 15), 100, date(2024, 5, 20), existing)
    assert months(drafts) == [date(2024, 4, 1), date(2024, 5, 1)]


# ============ RECONCILIATION ============
@pytest.fixture
def stored_schedule():
    return generate_initial_schedule(7, date(2024, 1, 15), 10000, as_of=date(2024, 4, 20))


def test_rent_change_regenerates_all_pending(stored_schedule):
    plan = reconcile_schedule(7, date(2024, 1, 15), 12000, date(2024, 4, 20), stored_schedule)

    assert plan.to_delete == [RentRecordKey(7, date(2024, m, 1)) for m in (2, 3, 4)]
    assert months(plan.to_insert) == [date(2024, m, 1) for m in (2, 3, 4)]
    assert all(d.amount_due == Decimal("12000") for d in plan.to_insert)


def test_paid_record_is_preserved(stored_schedule):
    records = list(stored_schedule)
    records[0] = records[0].with_changes(status=PaymentStatus.PAID, paid_date=date(2024, 2, 16))

    plan = reconcile_schedule(7, date(2024, 1, 15), 12000, date(2024, 4, 20), records)

    assert plan.to_delete == [RentRecordKey(7, date(2024, 3, 1)), RentRecordKey(7, date(2024, 4, 1))]
    assert months(plan.to_insert) == [date(2024, 3, 1), date(2024, 4, 1)]


def test_due_day_shift_keeps_paid_march(stored_schedule):
    records = list(stored_schedule)
    records[1] = records[1].with_changes(status=PaymentStatus.PAID, paid_date=date(2024, 3, 15))

    plan = reconcile_schedule(7, date(2024, 1, 20), 10000, date(2024, 4, 19), records)

    assert RentRecordKey(7, date(2024, 3, 1)) not in plan.to_delete
    assert set(plan.to_delete) == {RentRecordKey(7, date(2024, 2, 1)), RentRecordKey(7, date(2024, 4, 1))}
    # April 20 has not arrived yet under the new due day
    assert months(plan.to_insert) == [date(2024, 2, 1)]

    # once April 20 arrives the stored pending Feb and Apr already match the new terms
    plan = reconcile_schedule(7, date(2024, 1, 20), 10000, date(2024, 4, 20), records)
    assert plan.is_empty

    plan = reconcile_schedule(7, date(2024, 1, 20), 10500, date(2024, 4, 20), records)
    assert months(plan.to_insert) == [date(2024, 2, 1), date(2024, 4, 1)]
    assert set(plan.to_delete) == {RentRecordKey(7, date(2024, 2, 1)), RentRecordKey(7, date(2024, 4, 1))}


def test_partial_record_is_protected(stored_schedule):
    records = list(stored_schedule)
    records[2] = records[2].with_changes(status=PaymentStatus.PARTIAL, amount_paid=Decimal("4000"))

    plan = reconcile_schedule(7, date(2023, 11, 15), 11000, date(2024, 4, 20), records)

    assert records[2].key not in plan.to_delete
    assert date(2024, 4, 1) not in months(plan.to_insert)
    assert months(plan.to_insert) == [date(2023, 12, 1), date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)]


def test_protected_records_never_touched_across_edits():
    base = generate_initial_schedule(1, date(2023, 1, 31), 100, as_of=date(2024, 6, 30))
    records = [
        r.with_changes(status=PaymentStatus.PAID) if i % 3 == 0
        else r.with_changes(status=PaymentStatus.PARTIAL, amount_paid=Decimal("40")) if i % 3 == 1
        else r
        for i, r in enumerate(base)
    ]
    protected = {r.key for r in records if r.is_protected}

    for new_start in (date(2022, 12, 1), date(2023, 1, 31), date(2023, 3, 28), date(2023, 8, 15)):
        for rent in (50, 100, 250):
            plan = reconcile_schedule(1, new_start, rent, date(2024, 6, 30), records)
            assert not protected & set(plan.to_delete)
            assert not {k.period_start for k in protected} & set(months(plan.to_insert))


def test_reconcile_is_idempotent_once_applied(stored_schedule):
    records = list(stored_schedule)
    records[0] = records[0].with_changes(status=PaymentStatus.PAID, paid_date=date(2024, 2, 16))
    args = (7, date(2024, 1, 20), 12500, date(2024, 5, 2))

    first = reconcile_schedule(*args, records)
    assert not first.is_empty

    second = reconcile_schedule(*args, apply(records, first))
    assert second.to_delete == []
    assert second.to_insert == []


def test_unchanged_terms_give_empty_plan(stored_schedule):
    plan = reconcile_schedule(7, date(2024, 1, 15), "10000.00", date(2024, 4, 20), stored_schedule)
    assert plan.is_empty


def test_reconcile_validates_before_planning(stored_schedule):
    with pytest.raises(InvalidScheduleInput):
        reconcile_schedule(7, "2024-02-30", 100, date(2024, 4, 20), stored_schedule)
    with pytest.raises(InvalidScheduleInput):
        reconcile_schedule(7, date(2024, 1, 15), -100, date(2024, 4, 20), stored_schedule)


# ============ STORE SYNC ============
def test_sync_runs_delete_then_insert(stored_schedule):
    store = InMemoryPaymentStore(stored_schedule)

    plan = sync_rent_schedule(store, 7, date(2024, 1, 15), 12000, as_of=date(2024, 4, 20))

    assert store.calls == ['find', 'delete_many', 'insert_many']
    assert len(plan.to_insert) == 3
    assert {r.amount_due for r in store.find(7)} == {Decimal("12000")}


def test_sync_skips_writes_when_nothing_changed(stored_schedule):
    store = InMemoryPaymentStore(stored_schedule)
    sync_rent_schedule(store, 7, date(2024, 1, 15), 10000, as_of=date(2024, 4, 20))
    assert store.calls == ['find']


def test_store_failure_propagates_unchanged(stored_schedule):
    store = InMemoryPaymentStore(stored_schedule, fail_on='insert_many')
    with pytest.raises(StoreUnavailable, match="insert failed"):
        sync_rent_schedule(store, 7, date(2024, 1, 15), 12000, as_of=date(2024, 4, 20))
    # no retry
    assert store.calls.count('insert_many') == 1
