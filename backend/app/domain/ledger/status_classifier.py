"""
Status Classifier.

Pure state machine for the ledger entry payment lifecycle:

    Unpaid / Partially Paid --(grace period passes)--> Overdue
    Unpaid / Partially Paid / Overdue --(settlement)--> Partially Paid | Paid
    any open status --(administrative action)--> Cancelled

Paid and Cancelled are terminal. Overdue is sticky: once an entry has an
overdue_start_date it never goes back to Unpaid through classification.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, FrozenSet, Optional

from backend.app.models.ledger_enums import EntryStatus, EntryType

TERMINAL_STATUSES = frozenset({EntryStatus.PAID, EntryStatus.CANCELLED})

ALLOWED_TRANSITIONS: Dict[EntryStatus, FrozenSet[EntryStatus]] = {
    EntryStatus.UNPAID: frozenset({
        EntryStatus.OVERDUE, EntryStatus.PARTIALLY_PAID, EntryStatus.PAID, EntryStatus.CANCELLED,
    }),
    EntryStatus.PARTIALLY_PAID: frozenset({
        EntryStatus.OVERDUE, EntryStatus.PARTIALLY_PAID, EntryStatus.PAID, EntryStatus.CANCELLED,
    }),
    EntryStatus.OVERDUE: frozenset({
        EntryStatus.PARTIALLY_PAID, EntryStatus.PAID, EntryStatus.CANCELLED,
    }),
    EntryStatus.PAID: frozenset(),
    EntryStatus.CANCELLED: frozenset(),
}


class IllegalStatusTransitionError(ValueError):
    """Raised when a status change is not in ALLOWED_TRANSITIONS."""

    def __init__(self, old: EntryStatus, new: EntryStatus):
        self.old = old
        self.new = new
        super().__init__(f"Illegal status transition {old.value} -> {new.value}")


def can_transition(old: EntryStatus, new: EntryStatus) -> bool:
    return old == new or new in ALLOWED_TRANSITIONS[old]


def ensure_transition(old: EntryStatus, new: EntryStatus) -> EntryStatus:
    """Return new if old -> new is legal, raise otherwise."""
    if not can_transition(old, new):
        raise IllegalStatusTransitionError(old, new)
    return new


def as_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise aware datetimes to naive UTC so stored and computed values compare."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def whole_days_between(start: datetime, end: datetime) -> int:
    """floor(end - start) in days, never negative."""
    delta = as_utc_naive(end) - as_utc_naive(start)
    return max(0, delta.days)


@dataclass(frozen=True)
class EntrySnapshot:
    """The fields of a ledger entry the classifier reads."""
    entry_type: EntryType
    status: EntryStatus
    amount: float
    paid_amount: float
    date: datetime
    paid_date: Optional[datetime] = None
    overdue_start_date: Optional[datetime] = None
    days_elapsed: int = 0

    @classmethod
    def of(cls, entry) -> "EntrySnapshot":
        return cls(
            entry_type=entry.entry_type,
            status=entry.status,
            amount=entry.amount,
            paid_amount=entry.paid_amount or 0.0,
            date=as_utc_naive(entry.date),
            paid_date=as_utc_naive(entry.paid_date),
            overdue_start_date=as_utc_naive(entry.overdue_start_date),
            days_elapsed=entry.days_elapsed or 0,
        )


@dataclass(frozen=True)
class Classification:
    status: EntryStatus
    days_elapsed: int
    overdue_start_date: Optional[datetime]


def classify(snapshot: EntrySnapshot, grace_period: int, today: datetime) -> Classification:
    """
    Compute the current status and day counter of an entry.

    Idempotent for a fixed `today`. Terminal entries come back unchanged.
    """
    if snapshot.status in TERMINAL_STATUSES:
        return Classification(
            status=snapshot.status,
            days_elapsed=snapshot.days_elapsed,
            overdue_start_date=snapshot.overdue_start_date,
        )

    days_elapsed = whole_days_between(snapshot.date, today)
    status = snapshot.status
    overdue_start_date = snapshot.overdue_start_date

    if snapshot.entry_type == EntryType.SELL and days_elapsed > grace_period:
        status = ensure_transition(snapshot.status, EntryStatus.OVERDUE)
        if overdue_start_date is None:
            overdue_start_date = snapshot.date + timedelta(days=grace_period)

    return Classification(
        status=status,
        days_elapsed=days_elapsed,
        overdue_start_date=overdue_start_date,
    )


def apply_classification(snapshot: EntrySnapshot, result: Classification) -> EntrySnapshot:
    """The snapshot as it would look after writing `result` back."""
    return replace(
        snapshot,
        status=result.status,
        days_elapsed=result.days_elapsed,
        overdue_start_date=result.overdue_start_date,
    )
