"""
Admin Operations API Endpoints.

Inspection and retry of ledger entries the reconciliation sweep parked in
the Dead Letter Queue.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import select
from datetime import datetime
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.models.dlq import DeadLetterQueue, DLQStatus
from backend.app.models.enums import UserRole
from backend.app.schemas.ledger import DLQItemResponse
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import require_role, actor_of
from backend.app.domain.ledger.reconciliation import ReconciliationSweep

logger = logging.getLogger("ledger.ops")

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


async def _load_item(db: AsyncSession, dlq_id: int) -> Optional[DeadLetterQueue]:
    result = await db.execute(
        select(DeadLetterQueue)
        .where(DeadLetterQueue.id == dlq_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@router.get("/dlq", response_model=List[DLQItemResponse])
async def list_dlq_items(
    status: Optional[DLQStatus] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """List dead-lettered sweep items, newest first."""
    query = select(DeadLetterQueue).order_by(DeadLetterQueue.id.desc()).limit(limit)
    if status is not None:
        query = query.where(DeadLetterQueue.status == status)
    result = await db.execute(query)
    return result.scalars().all()


@router.post("/dlq/{dlq_id}/retry", response_model=DLQItemResponse)
async def retry_dlq_item(
    dlq_id: int = Path(..., description="DLQ Item ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Re-run reconciliation for the entry behind a DLQ item.

    PROCESSED on success, FAILED (with the new error) when it fails again,
    ARCHIVED when the entry no longer exists.
    """
    item = await _load_item(db, dlq_id)
    if not item:
        raise HTTPException(status_code=404, detail="DLQ item not found")
    if item.status == DLQStatus.PROCESSED:
        return item

    entry_id = (item.payload or {}).get("entry_id")
    if entry_id is None:
        raise HTTPException(status_code=400, detail="DLQ item has no entry to retry")

    item.status = DLQStatus.RETRYING
    item.retry_count = (item.retry_count or 0) + 1
    item.last_retry_at = datetime.utcnow()
    await db.commit()

    outcome = DLQStatus.PROCESSED
    error_message = None
    try:
        await ReconciliationSweep().reconcile_entry(db, entry_id, actor=actor_of(current_user))
    except ResourceNotFoundError as e:
        outcome = DLQStatus.ARCHIVED
        error_message = e.message
    except (SQLAlchemyError, ValueError) as e:
        outcome = DLQStatus.FAILED
        error_message = str(e)
        logger.warning("DLQ retry %s for entry %s failed again: %s", dlq_id, entry_id, e)

    item = await _load_item(db, dlq_id)
    item.status = outcome
    if error_message:
        item.error_message = error_message
    await db.commit()
    return item
