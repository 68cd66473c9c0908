"""
Payment Settlement Processor (Domain Logic).

Applies a payment to one Sell entry as a single unit of work:
1. Validate amount, ownership and entry state
2. Cap (or reject) anything above the outstanding amount
3. Update paid amount / status / paid date on the entry
4. Book a linked Payment In entry
5. Promote the customer's credit limit by payment behaviour
6. Log the status change with the credit delta

Everything commits together or not at all.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core.config import EngineDefaults, engine_defaults
from backend.app.core.exceptions import (
    AlreadySettledError,
    AppException,
    ConcurrentUpdateError,
    EntryNotSettleableError,
    InvalidAmountError,
    OverpaymentError,
    ResourceNotFoundError,
    StoreUnavailableError,
)
from backend.app.domain.ledger.settings_resolver import SettingsResolver
from backend.app.domain.ledger.status_classifier import as_utc_naive, ensure_transition, whole_days_between
from backend.app.models.ledger_entry import LedgerEntry
from backend.app.models.ledger_enums import EntryStatus, EntryType, PaymentMethod
from backend.app.services.audit import record_status_change

logger = logging.getLogger("ledger.settlement")

API_ACTOR = "api"


@dataclass
class SettlementResult:
    entry_id: int
    status: EntryStatus
    settlement_amount: float
    remaining_amount: float
    is_fully_paid: bool
    excess_amount: float
    payment_entry_id: int
    paid_date: Optional[datetime] = None
    credit_limit_before: Optional[float] = None
    credit_limit_after: Optional[float] = None


def credit_increase_pct(defaults: EngineDefaults, is_fully_paid: bool, was_overdue: bool) -> float:
    """Percentage of the current credit limit granted for a payment."""
    if not is_fully_paid:
        return defaults.credit_increase_partial_pct
    if was_overdue:
        return defaults.credit_increase_after_overdue_pct
    return defaults.credit_increase_on_time_pct


class SettlementProcessor:

    def __init__(
        self,
        resolver: Optional[SettingsResolver] = None,
        defaults: EngineDefaults = engine_defaults,
    ):
        self.defaults = defaults
        self.resolver = resolver or SettingsResolver(defaults)

    async def _load_entry(self, db: AsyncSession, company_id: int, entry_id: int) -> Optional[LedgerEntry]:
        result = await db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.id == entry_id, LedgerEntry.company_id == company_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def settle(
        self,
        db: AsyncSession,
        company_id: int,
        entry_id: int,
        amount: float,
        payment_method: PaymentMethod,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SettlementResult:
        """
        Settle a payment against a Sell entry.

        Args:
            db: Database session (committed or rolled back here)
            company_id: Caller's company; entries of other companies are not found
            entry_id: Sell entry receiving the payment
            amount: Incoming payment, must be > 0
            payment_method: How the payment was made
            actor_id: Recorded on the status change log and the payment entry
            now: Clock override

        Returns:
            SettlementResult

        Raises:
            InvalidAmountError, ResourceNotFoundError, EntryNotSettleableError,
            AlreadySettledError, OverpaymentError, ConcurrentUpdateError,
            StoreUnavailableError
        """
        if amount is None or not math.isfinite(amount) or amount <= 0:
            raise InvalidAmountError(amount)

        now = as_utc_naive(now or datetime.utcnow())
        actor = actor_id or API_ACTOR

        try:
            entry = await self._load_entry(db, company_id, entry_id)
            if entry is None:
                raise ResourceNotFoundError("Ledger entry", entry_id)
            if entry.entry_type != EntryType.SELL:
                raise EntryNotSettleableError(entry_id, "only Sell entries take payments")
            if entry.status == EntryStatus.CANCELLED:
                raise EntryNotSettleableError(entry_id, "entry is cancelled")

            paid_before = entry.paid_amount or 0.0
            if entry.status == EntryStatus.PAID or paid_before >= entry.amount:
                raise AlreadySettledError(entry_id)

            # Amounts
            remaining_before = entry.amount - paid_before
            excess_amount = max(0.0, amount - remaining_before)
            if excess_amount > 0 and self.defaults.overpayment_policy == "reject":
                raise OverpaymentError(entry_id, amount, remaining_before)

            settlement_amount = min(amount, remaining_before)
            new_paid = paid_before + settlement_amount
            is_fully_paid = new_paid >= entry.amount
            was_overdue = entry.status == EntryStatus.OVERDUE or entry.overdue_start_date is not None

            old_status = entry.status
            new_status = ensure_transition(
                old_status, EntryStatus.PAID if is_fully_paid else EntryStatus.PARTIALLY_PAID
            )

            # Entry update
            entry.paid_amount = min(new_paid, entry.amount)
            entry.status = new_status
            entry.payment_method = payment_method
            entry.updated_at = datetime.utcnow()
            if is_fully_paid:
                entry.paid_date = now
                entry.days_elapsed = whole_days_between(entry.date, now)
                entry.accrued_interest = 0.0

            # Linked payment entry
            payment = LedgerEntry(
                company_id=entry.company_id,
                customer_id=entry.customer_id,
                entry_type=EntryType.PAYMENT_IN,
                status=EntryStatus.PAID,
                amount=settlement_amount,
                paid_amount=settlement_amount,
                payment_method=payment_method,
                date=now,
                paid_date=now,
                related_entry_id=entry.id,
                description=f"Payment for {entry.invoice_number or f'entry {entry.id}'}",
                created_by=actor,
            )
            db.add(payment)

            # Credit promotion
            credit_before = None
            credit_after = None
            credit_settings = await self.resolver.customer_settings(db, entry.company_id, entry.customer_id)
            if credit_settings is not None:
                pct = credit_increase_pct(self.defaults, is_fully_paid, was_overdue)
                credit_before = credit_settings.credit_limit
                credit_after = credit_before * (1 + pct / 100)
                credit_settings.credit_limit = credit_after
                credit_settings.updated_at = datetime.utcnow()

            remaining_amount = max(0.0, entry.amount - entry.paid_amount)
            if old_status != new_status:
                record_status_change(
                    db,
                    entry,
                    old_status=old_status,
                    new_status=new_status,
                    reason=(
                        f"Payment of {settlement_amount:.2f} received via {payment_method.value}. "
                        f"Remaining: {remaining_amount:.2f}"
                    ),
                    actor=actor,
                    accrued_interest=entry.accrued_interest or 0.0,
                    credit_limit_change=(
                        credit_after - credit_before if credit_settings is not None else None
                    ),
                )

            await db.flush()
            payment_entry_id = payment.id
            await db.commit()

        except StaleDataError as e:
            await db.rollback()
            logger.warning("Settlement of entry %s lost an optimistic lock race: %s", entry_id, e)
            raise ConcurrentUpdateError("Ledger entry", entry_id) from e
        except (OperationalError, InterfaceError, OSError) as e:
            await db.rollback()
            raise StoreUnavailableError(f"Could not settle entry {entry_id}: {e}") from e
        except (AppException, SQLAlchemyError, ValueError):
            await db.rollback()
            raise

        logger.info(
            "Settled entry %s: amount=%.2f remaining=%.2f fully_paid=%s excess=%.2f credit %s -> %s",
            entry_id, settlement_amount, remaining_amount, is_fully_paid, excess_amount,
            credit_before, credit_after,
        )

        return SettlementResult(
            entry_id=entry_id,
            status=new_status,
            settlement_amount=settlement_amount,
            remaining_amount=remaining_amount,
            is_fully_paid=is_fully_paid,
            excess_amount=excess_amount,
            payment_entry_id=payment_entry_id,
            paid_date=now if is_fully_paid else None,
            credit_limit_before=credit_before,
            credit_limit_after=credit_after,
        )
