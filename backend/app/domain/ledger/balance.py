"""
Credit/Balance Aggregator.

Positive balance: the customer owes the company.
Negative balance: the company owes the customer.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.models.credit_settings import CustomerCreditSettings
from backend.app.models.ledger_entry import LedgerEntry
from backend.app.models.ledger_enums import EntryStatus, EntryType


@dataclass(frozen=True)
class CustomerBalance:
    balance: float
    credit_limit: float
    available_credit: float
    credit_utilization: float  # percent


def entry_balance_effect(entry) -> float:
    """
    Signed contribution of one entry to the customer balance.

    Sell/Buy entries count only their open amount, and Payment In/Out count
    their full amount, including the Payment In that settlement books against
    a Sell. A settled payment therefore lowers the balance twice (once through
    paid_amount, once through its payment entry). This matches the balance
    semantics the clients already rely on; change both sides together or not
    at all.
    """
    if entry.status == EntryStatus.CANCELLED:
        return 0.0

    if entry.entry_type in (EntryType.SELL, EntryType.BUY):
        if entry.status == EntryStatus.PAID:
            return 0.0
        open_amount = entry.amount - (entry.paid_amount or 0.0)
        return open_amount if entry.entry_type == EntryType.SELL else -open_amount

    if entry.entry_type == EntryType.PAYMENT_IN:
        return -entry.amount
    if entry.entry_type == EntryType.PAYMENT_OUT:
        return entry.amount

    # Cash entries do not touch customer balances
    return 0.0


def aggregate_balance(entries: Iterable, credit_limit: float) -> CustomerBalance:
    """Fold entries into a balance. Order independent; rounds only the output."""
    balance = sum(entry_balance_effect(entry) for entry in entries)
    owed = max(0.0, balance)
    available_credit = max(0.0, credit_limit - owed)
    utilization = owed / credit_limit * 100 if credit_limit > 0 else 0.0

    return CustomerBalance(
        balance=round(balance, 2),
        credit_limit=round(credit_limit, 2),
        available_credit=round(available_credit, 2),
        credit_utilization=round(utilization, 2),
    )


async def get_customer_balance(db: AsyncSession, company_id: int, customer_id: int) -> CustomerBalance:
    """
    Balance of one customer within a company.

    Raises:
        ResourceNotFoundError: the customer has no entries and no credit settings here
    """
    result = await db.execute(
        select(LedgerEntry).where(
            LedgerEntry.company_id == company_id,
            LedgerEntry.customer_id == customer_id,
            LedgerEntry.status != EntryStatus.CANCELLED,
        )
    )
    entries = list(result.scalars().all())

    result = await db.execute(
        select(CustomerCreditSettings).where(
            CustomerCreditSettings.company_id == company_id,
            CustomerCreditSettings.customer_id == customer_id,
        )
    )
    credit_settings: Optional[CustomerCreditSettings] = result.scalar_one_or_none()

    if not entries and credit_settings is None:
        raise ResourceNotFoundError("Customer", customer_id)

    credit_limit = credit_settings.credit_limit if credit_settings is not None else 0.0
    return aggregate_balance(entries, credit_limit)
