"""
Overdue aging report.

Groups open Sell entries by how far past their grace period they are and
sums the outstanding amount and compounding interest per bucket.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.domain.ledger.interest import interest_compounding
from backend.app.domain.ledger.settings_resolver import SettingsResolver
from backend.app.domain.ledger.status_classifier import as_utc_naive
from backend.app.models.ledger_entry import LedgerEntry
from backend.app.models.ledger_enums import CompoundingPeriod, EntryType, OPEN_STATUSES

# (label, min effective days, max effective days)
AGING_BUCKETS = (
    ("1-7 days", 1, 7),
    ("8-30 days", 8, 30),
    ("31-60 days", 31, 60),
    ("61+ days", 61, None),
)


@dataclass
class AgingBucket:
    name: str
    min_days: int
    max_days: Optional[int]
    entry_count: int = 0
    amount: float = 0.0
    interest: float = 0.0

    def holds(self, days: int) -> bool:
        return days >= self.min_days and (self.max_days is None or days <= self.max_days)


def empty_buckets() -> List[AgingBucket]:
    return [AgingBucket(name=name, min_days=low, max_days=high) for name, low, high in AGING_BUCKETS]


async def build_aging_report(
    db: AsyncSession,
    company_id: int,
    now: Optional[datetime] = None,
    resolver: Optional[SettingsResolver] = None,
) -> List[AgingBucket]:
    now = as_utc_naive(now or datetime.utcnow())
    resolver = resolver or SettingsResolver()

    company = await resolver.company_settings(db, company_id)
    compounding = company.compounding_period if company is not None else CompoundingPeriod.DAILY
    minimum_fee = company.minimum_fee if company is not None else None

    result = await db.execute(
        select(LedgerEntry)
        .where(
            LedgerEntry.company_id == company_id,
            LedgerEntry.entry_type == EntryType.SELL,
            LedgerEntry.status.in_(OPEN_STATUSES),
        )
        .order_by(LedgerEntry.date)
    )
    entries = list(result.scalars().all())

    buckets = empty_buckets()
    for entry in entries:
        terms = await resolver.resolve(db, company_id, entry.customer_id)
        reference = as_utc_naive(entry.due_date or entry.date)
        effective_days = (now - reference).days - terms.grace_period
        if effective_days <= 0:
            continue

        outstanding = entry.outstanding_amount
        interest = interest_compounding(
            outstanding, effective_days, terms.interest_rate, compounding, minimum_fee
        )
        for bucket in buckets:
            if bucket.holds(effective_days):
                bucket.entry_count += 1
                bucket.amount += outstanding
                bucket.interest += interest
                break

    return buckets
