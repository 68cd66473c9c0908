"""
Reconciliation API Endpoints.

On-demand sweeps for the caller's company, the dry-run preview, the
status-change audit trail, and the key-protected automation trigger used by
external schedulers.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List

from backend.app.db.session import get_db
from backend.app.models.ledger_entry import LedgerEntry
from backend.app.schemas.ledger import (
    SweepResponse, SweepPreviewResponse, PendingUpdateResponse, StatusChangeResponse, money,
)
from backend.app.core.dependencies import require_automation_key
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import require_role, actor_of, ANY_ROLE, WRITE_ROLES
from backend.app.core.redis_client import get_redis
from backend.app.domain.ledger.reconciliation import ReconciliationSweep
from backend.app.services.audit import get_status_history, get_recent_changes
from backend.app.services.sweep_scheduler import run_locked_sweep

router = APIRouter(prefix="/ledger", tags=["Ledger - Reconciliation"])
automation_router = APIRouter(prefix="/automation", tags=["Automation"])


@router.post("/reconcile", response_model=SweepResponse)
async def reconcile_company(
    current_user: dict = Depends(require_role(WRITE_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Re-evaluate every open Sell entry of the caller's company."""
    result = await ReconciliationSweep().run(
        db,
        company_id=int(current_user["company_id"]),
        actor=actor_of(current_user),
    )
    return SweepResponse.from_result(result)


@router.get("/reconcile/preview", response_model=SweepPreviewResponse)
async def preview_reconciliation(
    current_user: dict = Depends(require_role(ANY_ROLE)),
    db: AsyncSession = Depends(get_db)
):
    """List what a sweep would change, without writing anything."""
    total_checked, pending = await ReconciliationSweep().preview(db, int(current_user["company_id"]))
    return SweepPreviewResponse(
        total_checked=total_checked,
        needs_update=len(pending),
        pending_updates=[
            PendingUpdateResponse(
                entry_id=p.entry_id,
                invoice_number=p.invoice_number,
                current_status=p.current_status,
                suggested_status=p.suggested_status,
                current_days_elapsed=p.current_days_elapsed,
                suggested_days_elapsed=p.suggested_days_elapsed,
                current_interest=money(p.current_interest),
                suggested_interest=money(p.suggested_interest),
                grace_period=p.grace_period,
                days_overdue=p.days_overdue,
            )
            for p in pending
        ],
    )


@router.get("/status-changes", response_model=List[StatusChangeResponse])
async def list_recent_status_changes(
    limit: int = Query(50, ge=1, le=500),
    current_user: dict = Depends(require_role(ANY_ROLE)),
    db: AsyncSession = Depends(get_db)
):
    """Most recent status transitions in the caller's company."""
    return await get_recent_changes(db, int(current_user["company_id"]), limit=limit)


@router.get("/{entry_id}/status-history", response_model=List[StatusChangeResponse])
async def entry_status_history(
    entry_id: int = Path(..., description="Ledger entry ID"),
    current_user: dict = Depends(require_role(ANY_ROLE)),
    db: AsyncSession = Depends(get_db)
):
    """Status transitions of one entry, oldest first."""
    company_id = int(current_user["company_id"])
    result = await db.execute(
        select(LedgerEntry.id).where(LedgerEntry.id == entry_id, LedgerEntry.company_id == company_id)
    )
    if result.scalar_one_or_none() is None:
        raise ResourceNotFoundError("Ledger entry", entry_id)
    return await get_status_history(db, company_id, entry_id)


@automation_router.post("/reconcile", response_model=SweepResponse)
async def automated_reconcile(
    actor: str = Depends(require_automation_key),
    redis=Depends(get_redis),
    db: AsyncSession = Depends(get_db)
):
    """
    Sweep every configured company.

    Requires the X-API-Key header. Returns skipped=true when another sweep
    holds the lock.
    """
    result = await run_locked_sweep(db, redis, actor=actor)
    return SweepResponse.from_result(result)
