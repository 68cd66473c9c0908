"""
Scheduled reconciliation sweep.

Runs the cross-company sweep every `sweep_interval_minutes` inside the API
process. Workers coordinate through a Redis lock so one sweep runs at a
time; the sweep is idempotent, so a missing Redis only costs duplicate work.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import StoreUnavailableError
from backend.app.core.redis_client import SWEEP_LOCK_KEY, acquire_lock, redis_client, release_lock
from backend.app.db.session import AsyncSessionLocal
from backend.app.domain.ledger.reconciliation import ReconciliationSweep, SweepResult
from backend.app.services.audit import AuditActor

logger = logging.getLogger("ledger.scheduler")


async def run_locked_sweep(
    db: AsyncSession,
    client,
    cancel_event: Optional[asyncio.Event] = None,
    now: Optional[datetime] = None,
    sweep: Optional[ReconciliationSweep] = None,
    actor: str = AuditActor.SYSTEM_AUTO,
) -> Optional[SweepResult]:
    """
    Run the all-companies sweep under the Redis sweep lock.

    Returns:
        The sweep result, or None when another worker holds the lock
    """
    token = await acquire_lock(client, SWEEP_LOCK_KEY, settings.sweep_lock_ttl_seconds)
    if token is None:
        logger.info("Reconciliation sweep skipped: lock held by another worker")
        return None

    try:
        return await (sweep or ReconciliationSweep()).run(
            db, company_id=None, now=now, cancel_event=cancel_event, actor=actor
        )
    finally:
        await release_lock(client, SWEEP_LOCK_KEY, token)


class SweepScheduler:
    """Background asyncio task owned by the application lifespan."""

    def __init__(self, interval_minutes: int, session_factory=AsyncSessionLocal, client=redis_client):
        self.interval_minutes = interval_minutes
        self.session_factory = session_factory
        self.client = client
        self.stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self.interval_minutes > 0

    def start(self) -> None:
        if not self.enabled or self._task is not None:
            return
        self.stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name="reconciliation-sweep")
        logger.info("Reconciliation sweep scheduled every %s minutes", self.interval_minutes)

    async def run_once(self) -> Optional[SweepResult]:
        async with self.session_factory() as db:
            return await run_locked_sweep(db, self.client, cancel_event=self.stop_event)

    async def _loop(self) -> None:
        while not self.stop_event.is_set():
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval_minutes * 60)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_once()
            except StoreUnavailableError as e:
                logger.error("Scheduled sweep could not reach the store: %s", e.message)
            except Exception:
                logger.exception("Scheduled sweep failed")

    async def stop(self) -> None:
        """Signal cancellation (checked between entries) and wait for the loop."""
        self.stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
