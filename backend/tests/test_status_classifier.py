"""
Status Classifier Tests.

Covers the lifecycle state machine: terminal statuses, sticky Overdue and the
grace boundary.
"""

import pytest
from datetime import datetime, timedelta, timezone

from backend.app.domain.ledger.status_classifier import (
    EntrySnapshot, IllegalStatusTransitionError, apply_classification, as_utc_naive,
    can_transition, classify, ensure_transition, whole_days_between,
)
from backend.app.models.ledger_enums import EntryStatus, EntryType

TODAY = datetime(2024, 6, 1, 12, 0, 0)


def snapshot(days_ago, status=EntryStatus.UNPAID, entry_type=EntryType.SELL, **fields):
    return EntrySnapshot(
        entry_type=entry_type,
        status=status,
        amount=fields.pop("amount", 1000.0),
        paid_amount=fields.pop("paid_amount", 0.0),
        date=TODAY - timedelta(days=days_ago),
        **fields,
    )


def test_sell_past_grace_becomes_overdue():
    result = classify(snapshot(70), grace_period=30, today=TODAY)

    assert result.status == EntryStatus.OVERDUE
    assert result.days_elapsed == 70
    assert result.overdue_start_date == TODAY - timedelta(days=40)


def test_grace_boundary_is_exclusive():
    assert classify(snapshot(30), 30, TODAY).status == EntryStatus.UNPAID
    assert classify(snapshot(31), 30, TODAY).status == EntryStatus.OVERDUE


def test_partially_paid_uses_grace_like_unpaid():
    assert classify(snapshot(10, EntryStatus.PARTIALLY_PAID), 30, TODAY).status == EntryStatus.PARTIALLY_PAID
    assert classify(snapshot(45, EntryStatus.PARTIALLY_PAID), 30, TODAY).status == EntryStatus.OVERDUE


@pytest.mark.parametrize("entry_type", [EntryType.BUY, EntryType.PAYMENT_IN, EntryType.CASH_OUT])
def test_non_sell_never_overdue(entry_type):
    result = classify(snapshot(400, entry_type=entry_type), 30, TODAY)
    assert result.status == EntryStatus.UNPAID
    assert result.overdue_start_date is None


@pytest.mark.parametrize("status", [EntryStatus.PAID, EntryStatus.CANCELLED])
@pytest.mark.parametrize("today", [TODAY, TODAY + timedelta(days=365)])
def test_terminal_statuses_unchanged(status, today):
    snap = snapshot(200, status, days_elapsed=12)
    result = classify(snap, 30, today)

    assert result.status == status
    assert result.days_elapsed == 12
    assert result.overdue_start_date is None


def test_overdue_is_sticky_when_grace_grows():
    start = TODAY - timedelta(days=5)
    snap = snapshot(35, EntryStatus.OVERDUE, overdue_start_date=start)

    result = classify(snap, grace_period=60, today=TODAY)

    assert result.status == EntryStatus.OVERDUE
    assert result.overdue_start_date == start


def test_existing_overdue_start_date_never_moves():
    start = TODAY - timedelta(days=50)
    snap = snapshot(70, EntryStatus.OVERDUE, overdue_start_date=start)
    assert classify(snap, 30, TODAY).overdue_start_date == start


def test_classify_is_idempotent():
    snap = snapshot(70)
    first = classify(snap, 30, TODAY)
    second = classify(apply_classification(snap, first), 30, TODAY)
    assert first == second


def test_future_dated_entry_has_zero_days():
    result = classify(snapshot(-3), 30, TODAY)
    assert result.days_elapsed == 0
    assert result.status == EntryStatus.UNPAID


def test_transition_table():
    assert can_transition(EntryStatus.UNPAID, EntryStatus.OVERDUE)
    assert can_transition(EntryStatus.OVERDUE, EntryStatus.PAID)
    assert not can_transition(EntryStatus.OVERDUE, EntryStatus.UNPAID)
    assert not can_transition(EntryStatus.PAID, EntryStatus.OVERDUE)

    with pytest.raises(IllegalStatusTransitionError):
        ensure_transition(EntryStatus.CANCELLED, EntryStatus.PAID)


def test_aware_datetimes_are_normalised():
    aware = datetime(2024, 6, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert as_utc_naive(aware) == datetime(2024, 6, 1, 12, 0)
    assert whole_days_between(TODAY - timedelta(days=3, hours=1), aware) == 3
