"""
Reconciliation Sweep (Domain Logic).

Re-evaluates every open Sell entry against current settings so that status,
day counters, accrued interest and overdue start dates stay consistent.

Flow per entry:
1. Reload the entry (fresh read, never the session cache)
2. Resolve grace period / interest rate (customer -> company -> default)
3. Classify and compute simple interest on the outstanding principal
4. Write back only when something changed, with a status change log row
5. Commit that entry alone; a failure is rolled back, recorded and skipped

Safe to run repeatedly: a second run with the same clock writes nothing.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import EngineDefaults, engine_defaults
from backend.app.core.exceptions import ResourceNotFoundError, StoreUnavailableError
from backend.app.domain.ledger.interest import interest_simple
from backend.app.domain.ledger.settings_resolver import ResolvedTerms, SettingsResolver
from backend.app.domain.ledger.status_classifier import (
    Classification, EntrySnapshot, as_utc_naive, classify,
)
from backend.app.models.credit_settings import CompanyOverdueSettings
from backend.app.models.dlq import DeadLetterQueue, DLQStatus
from backend.app.models.ledger_entry import LedgerEntry
from backend.app.models.ledger_enums import EntryStatus, EntryType, OPEN_STATUSES
from backend.app.services.audit import AuditActor, record_status_change

logger = logging.getLogger("ledger.reconciliation")

# Connectivity failures that mean the store itself is unreachable
STORE_ERRORS = (OperationalError, InterfaceError, OSError)


@dataclass
class EntryTransition:
    entry_id: int
    company_id: int
    customer_id: Optional[int]
    old_status: EntryStatus
    new_status: EntryStatus
    days_elapsed: int
    days_overdue: int
    accrued_interest: float


@dataclass
class EntryFailure:
    entry_id: int
    company_id: int
    error: str


@dataclass
class PendingUpdate:
    entry_id: int
    invoice_number: Optional[str]
    current_status: EntryStatus
    suggested_status: EntryStatus
    current_days_elapsed: int
    suggested_days_elapsed: int
    current_interest: float
    suggested_interest: float
    grace_period: int
    days_overdue: int


@dataclass
class SweepResult:
    updated_count: int = 0
    total_processed: int = 0
    failed_count: int = 0
    companies_processed: int = 0
    cancelled: bool = False
    transitions: List[EntryTransition] = field(default_factory=list)
    failures: List[EntryFailure] = field(default_factory=list)


@dataclass(frozen=True)
class Evaluation:
    """Freshly derived state of one entry."""
    classification: Classification
    terms: ResolvedTerms
    days_overdue: int
    accrued_interest: float

    def differs_from(self, entry: LedgerEntry, epsilon: float) -> bool:
        return (
            entry.status != self.classification.status
            or (entry.days_elapsed or 0) != self.classification.days_elapsed
            or as_utc_naive(entry.overdue_start_date) != self.classification.overdue_start_date
            or abs((entry.accrued_interest or 0.0) - self.accrued_interest) > epsilon
        )


class ReconciliationSweep:

    task_name = "reconciliation_sweep"

    def __init__(
        self,
        resolver: Optional[SettingsResolver] = None,
        defaults: EngineDefaults = engine_defaults,
    ):
        self.defaults = defaults
        self.resolver = resolver or SettingsResolver(defaults)

    def evaluate(self, entry: LedgerEntry, terms: ResolvedTerms, now: datetime) -> Evaluation:
        """Classify an entry and compute its interest. Pure."""
        classification = classify(EntrySnapshot.of(entry), terms.grace_period, now)
        days_overdue = max(0, classification.days_elapsed - terms.grace_period)

        accrued_interest = 0.0
        if classification.status == EntryStatus.OVERDUE:
            accrued_interest = interest_simple(entry.outstanding_amount, days_overdue, terms.interest_rate)

        return Evaluation(
            classification=classification,
            terms=terms,
            days_overdue=days_overdue,
            accrued_interest=accrued_interest,
        )

    async def _company_scope(self, db: AsyncSession, company_id: Optional[int]) -> List[int]:
        """
        One company, or every company with overdue settings configured.

        With no company configured at all, every company that has ledger
        entries is swept with the engine defaults.
        """
        if company_id is not None:
            return [company_id]

        result = await db.execute(
            select(CompanyOverdueSettings.company_id).order_by(CompanyOverdueSettings.company_id)
        )
        company_ids = list(result.scalars().all())
        if company_ids:
            return company_ids

        result = await db.execute(
            select(LedgerEntry.company_id).distinct().order_by(LedgerEntry.company_id)
        )
        return list(result.scalars().all())

    async def _open_entry_ids(self, db: AsyncSession, company_id: int) -> List[int]:
        result = await db.execute(
            select(LedgerEntry.id)
            .where(
                LedgerEntry.company_id == company_id,
                LedgerEntry.entry_type == EntryType.SELL,
                LedgerEntry.status.in_(OPEN_STATUSES),
            )
            .order_by(LedgerEntry.id)
        )
        return list(result.scalars().all())

    async def _load_entry(self, db: AsyncSession, entry_id: int) -> Optional[LedgerEntry]:
        result = await db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.id == entry_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _reconcile_one(
        self, db: AsyncSession, entry_id: int, now: datetime, actor: str
    ) -> Tuple[bool, Optional[EntryTransition]]:
        """
        Reconcile a single entry in its own transaction.

        Returns:
            (updated, transition) where transition is set on a status change
        """
        entry = await self._load_entry(db, entry_id)
        if entry is None or entry.entry_type != EntryType.SELL or entry.status not in OPEN_STATUSES:
            # Settled, cancelled or removed since the id scan
            await db.commit()
            return False, None

        terms = await self.resolver.resolve(db, entry.company_id, entry.customer_id)
        evaluation = self.evaluate(entry, terms, now)

        if not evaluation.differs_from(entry, self.defaults.interest_epsilon):
            await db.commit()
            return False, None

        old_status = entry.status
        new_status = evaluation.classification.status

        entry.status = new_status
        entry.days_elapsed = evaluation.classification.days_elapsed
        entry.overdue_start_date = evaluation.classification.overdue_start_date
        entry.accrued_interest = evaluation.accrued_interest
        entry.updated_at = datetime.utcnow()

        transition = None
        if old_status != new_status:
            record_status_change(
                db,
                entry,
                old_status=old_status,
                new_status=new_status,
                reason=(
                    f"Automatic status transition: {evaluation.classification.days_elapsed} days elapsed, "
                    f"grace period: {terms.grace_period} days. "
                    f"Interest applied: {evaluation.accrued_interest:.2f}"
                ),
                actor=actor,
                accrued_interest=evaluation.accrued_interest,
            )
            transition = EntryTransition(
                entry_id=entry.id,
                company_id=entry.company_id,
                customer_id=entry.customer_id,
                old_status=old_status,
                new_status=new_status,
                days_elapsed=evaluation.classification.days_elapsed,
                days_overdue=evaluation.days_overdue,
                accrued_interest=evaluation.accrued_interest,
            )

        await db.commit()
        return True, transition

    async def _dead_letter(self, db: AsyncSession, failure: EntryFailure) -> None:
        """Park a failed entry for later retry. Never fails the batch."""
        try:
            db.add(DeadLetterQueue(
                task_name=self.task_name,
                error_message=failure.error,
                payload={"entry_id": failure.entry_id, "company_id": failure.company_id},
                status=DLQStatus.FAILED,
            ))
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Could not dead-letter entry %s: %s", failure.entry_id, e)

    async def _record_failure(
        self, db: AsyncSession, result: SweepResult, entry_id: int, company_id: int, error: Exception
    ) -> None:
        await db.rollback()
        failure = EntryFailure(entry_id=entry_id, company_id=company_id, error=str(error))
        result.failures.append(failure)
        result.failed_count += 1
        logger.warning("Reconciliation skipped entry %s: %s", entry_id, error)
        await self._dead_letter(db, failure)

    async def run(
        self,
        db: AsyncSession,
        company_id: Optional[int] = None,
        now: Optional[datetime] = None,
        cancel_event: Optional[asyncio.Event] = None,
        actor: str = AuditActor.SYSTEM_AUTO,
    ) -> SweepResult:
        """
        Sweep one company (or all configured companies when company_id is None).

        Args:
            db: Database session; committed once per entry
            company_id: Tenant scope, None for the cross-tenant run
            now: Clock override
            cancel_event: Checked between entries; set it to stop the batch
            actor: Recorded on status change log rows

        Raises:
            StoreUnavailableError: the scope could not be read; nothing was written
        """
        now = as_utc_naive(now or datetime.utcnow())
        result = SweepResult()

        try:
            company_ids = await self._company_scope(db, company_id)
        except STORE_ERRORS as e:
            await db.rollback()
            raise StoreUnavailableError(f"Could not read sweep scope: {e}") from e

        for scope_company_id in company_ids:
            try:
                entry_ids = await self._open_entry_ids(db, scope_company_id)
            except STORE_ERRORS as e:
                await db.rollback()
                raise StoreUnavailableError(f"Could not read open entries: {e}") from e

            result.companies_processed += 1

            for entry_id in entry_ids:
                if cancel_event is not None and cancel_event.is_set():
                    result.cancelled = True
                    break

                result.total_processed += 1
                try:
                    updated, transition = await self._reconcile_one(db, entry_id, now, actor)
                except (SQLAlchemyError, ValueError) as e:
                    # ValueError: malformed settings or an illegal transition for this entry
                    await self._record_failure(db, result, entry_id, scope_company_id, e)
                    continue

                if updated:
                    result.updated_count += 1
                if transition is not None:
                    result.transitions.append(transition)

            if result.cancelled:
                logger.info("Reconciliation sweep cancelled after %s entries", result.total_processed)
                break

        logger.info(
            "Reconciliation sweep done: companies=%s processed=%s updated=%s failed=%s transitions=%s",
            result.companies_processed,
            result.total_processed,
            result.updated_count,
            result.failed_count,
            len(result.transitions),
        )
        return result

    async def reconcile_entry(
        self,
        db: AsyncSession,
        entry_id: int,
        now: Optional[datetime] = None,
        actor: str = AuditActor.SYSTEM_AUTO,
    ) -> bool:
        """
        Reconcile one entry outside a batch (dead-letter retries).

        Returns:
            True if the entry was written
        """
        now = as_utc_naive(now or datetime.utcnow())
        entry = await self._load_entry(db, entry_id)
        if entry is None:
            raise ResourceNotFoundError("Ledger entry", entry_id)
        try:
            updated, _ = await self._reconcile_one(db, entry_id, now, actor)
        except (SQLAlchemyError, ValueError):
            await db.rollback()
            raise
        return updated

    async def preview(
        self,
        db: AsyncSession,
        company_id: int,
        now: Optional[datetime] = None,
    ) -> Tuple[int, List[PendingUpdate]]:
        """
        Dry run: what a sweep of this company would change. Writes nothing.

        Returns:
            (total_checked, pending_updates)
        """
        now = as_utc_naive(now or datetime.utcnow())
        try:
            entry_ids = await self._open_entry_ids(db, company_id)
            pending: List[PendingUpdate] = []
            for entry_id in entry_ids:
                entry = await self._load_entry(db, entry_id)
                if entry is None:
                    continue
                terms = await self.resolver.resolve(db, entry.company_id, entry.customer_id)
                try:
                    evaluation = self.evaluate(entry, terms, now)
                except ValueError as e:
                    logger.warning("Preview skipped entry %s: %s", entry_id, e)
                    continue
                if not evaluation.differs_from(entry, self.defaults.interest_epsilon):
                    continue
                pending.append(PendingUpdate(
                    entry_id=entry.id,
                    invoice_number=entry.invoice_number,
                    current_status=entry.status,
                    suggested_status=evaluation.classification.status,
                    current_days_elapsed=entry.days_elapsed or 0,
                    suggested_days_elapsed=evaluation.classification.days_elapsed,
                    current_interest=entry.accrued_interest or 0.0,
                    suggested_interest=evaluation.accrued_interest,
                    grace_period=terms.grace_period,
                    days_overdue=evaluation.days_overdue,
                ))
        except STORE_ERRORS as e:
            await db.rollback()
            raise StoreUnavailableError(f"Could not read open entries: {e}") from e
        return len(entry_ids), pending
