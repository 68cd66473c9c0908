"""
Status change audit service.

The single append-only sink for ledger status transitions. Only the
reconciliation sweep and the settlement processor write here, and always
inside their own unit of work: the log row commits or rolls back with the
entry update it describes.
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.status_change_log import StatusChangeLog
from backend.app.models.ledger_entry import LedgerEntry
from backend.app.models.ledger_enums import EntryStatus


class AuditActor:
    """Standardized actor identifiers for system-initiated changes."""
    SYSTEM_AUTO = "system-auto"  # Scheduled sweep
    AUTOMATION = "system-cron"  # X-API-Key triggered sweep


def record_status_change(
    db: AsyncSession,
    entry: LedgerEntry,
    old_status: EntryStatus,
    new_status: EntryStatus,
    reason: str,
    actor: str,
    accrued_interest: float = 0.0,
    credit_limit_change: Optional[float] = None,
) -> StatusChangeLog:
    """
    Append a status transition to the audit trail.

    The row is added to the caller's session; the caller commits.

    Args:
        db: Database session holding the entry update
        entry: Entry whose status changed
        old_status: Status before the change
        new_status: Status after the change
        reason: Human readable explanation
        actor: User identifier or AuditActor.SYSTEM_AUTO
        accrued_interest: Interest on the entry at the time of change
        credit_limit_change: Credit limit delta applied with the change, if any

    Returns:
        The pending StatusChangeLog instance
    """
    log_row = StatusChangeLog(
        entry_id=entry.id,
        customer_id=entry.customer_id,
        company_id=entry.company_id,
        old_status=old_status,
        new_status=new_status,
        reason=reason[:500],
        accrued_interest=accrued_interest,
        credit_limit_change=credit_limit_change,
        actor=actor,
    )
    db.add(log_row)
    return log_row


async def get_status_history(
    db: AsyncSession,
    company_id: int,
    entry_id: int,
    limit: int = 100
) -> list[StatusChangeLog]:
    """
    Retrieve the transitions of one entry, oldest first.

    Args:
        db: Database session
        company_id: Tenant scope
        entry_id: Ledger entry id
        limit: Maximum number of records to return
    """
    query = (
        select(StatusChangeLog)
        .where(StatusChangeLog.company_id == company_id, StatusChangeLog.entry_id == entry_id)
        .order_by(StatusChangeLog.id)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_recent_changes(
    db: AsyncSession,
    company_id: int,
    limit: int = 50
) -> list[StatusChangeLog]:
    """Most recent transitions across a company, newest first."""
    query = (
        select(StatusChangeLog)
        .where(StatusChangeLog.company_id == company_id)
        .order_by(desc(StatusChangeLog.id))
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())
