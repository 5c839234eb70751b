"""Renewal Reconciler - repairs renewals that stopped halfway.

Renewal writes the successor contract first and archives the predecessor
second. When the second write fails both contracts stay active. This job
runs on an interval and archives such predecessors.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings
from app.services.contract_renewal import ContractRenewalService
from app.store.contracts import ContractStore

logger = logging.getLogger(__name__)

JOB_ID = "renewal_reconciler"

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler
    if scheduler is None:
        scheduler = AsyncIOScheduler()
    return scheduler


async def reconcile_renewals(store: ContractStore) -> int:
    """Job body: archive predecessors left active by a failed renewal."""
    logger.info("Starting renewal reconciliation...")
    try:
        repaired = await ContractRenewalService(store).reconcile_renewals()
    except Exception as e:
        logger.error(f"Renewal reconciliation failed: {e}", exc_info=True)
        return 0
    logger.info(f"Renewal reconciliation complete. Repaired: {len(repaired)}")
    return len(repaired)


def start_renewal_reconciler(store: ContractStore) -> Optional[AsyncIOScheduler]:
    """Register the interval job and start the scheduler."""
    if not settings.RENEWAL_RECONCILER_ENABLED:
        logger.info("Renewal reconciler disabled")
        return None

    sched = get_scheduler()
    sched.add_job(
        reconcile_renewals,
        IntervalTrigger(minutes=settings.RENEWAL_RECONCILE_INTERVAL_MINUTES),
        args=[store],
        id=JOB_ID,
        name="Repair half-finished contract renewals",
        replace_existing=True,
    )
    if not sched.running:
        sched.start()
    logger.info(
        f"Renewal reconciler scheduled every {settings.RENEWAL_RECONCILE_INTERVAL_MINUTES} minutes"
    )
    return sched


def stop_renewal_reconciler() -> None:
    sched = get_scheduler()
    if sched.running:
        sched.shutdown(wait=False)
        logger.info("Renewal reconciler stopped")
