"""
Application Scheduler - APScheduler Integration

Runs the periodic ledger reconciliation audit. The audit only reports drift
(log + Slack); repairs stay an explicit, out-of-band operation.
"""

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings

logger = structlog.get_logger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler(
    timezone='UTC',
    job_defaults={
        'coalesce': True,  # Combine multiple missed executions into one
        'max_instances': 1,  # Only one instance of each job at a time
        'misfire_grace_time': 3600  # Job can run up to 1 hour late
    }
)


def scheduler_listener(event):
    """Listener for scheduler events (executed jobs, errors)."""
    if event.exception:
        logger.error("scheduled_job_failed", job_id=event.job_id, error=str(event.exception))
    else:
        logger.info("scheduled_job_executed", job_id=event.job_id)


# Add event listener
scheduler.add_listener(scheduler_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)


async def run_reconciliation_audit(session_factory=None, ledger=None) -> dict:
    """
    Scheduled task: reconcile every account against its ledger.

    Returns:
        Dict with the number of accounts checked and the drifted ones
    """
    from app.core.deps import get_ledger_service
    from app.db.session import AsyncSessionLocal

    session_factory = session_factory or AsyncSessionLocal
    ledger = ledger or get_ledger_service()

    async with session_factory() as session:
        reports = await ledger.reconcile_all(session)

    drifted = [report.to_dict() for report in reports if not report.in_sync]
    logger.info("reconciliation_audit_completed", accounts=len(reports), drifted=len(drifted))
    return {"accounts": len(reports), "drifted": drifted}


def setup_jobs():
    """Setup all scheduled jobs."""
    scheduler.add_job(
        run_reconciliation_audit,
        IntervalTrigger(minutes=settings.RECONCILE_AUDIT_INTERVAL_MINUTES),
        id='ledger_reconciliation_audit',
        name='Ledger Reconciliation Audit',
        replace_existing=True
    )
    logger.info(
        "scheduled_job_added",
        job_id="ledger_reconciliation_audit",
        interval_minutes=settings.RECONCILE_AUDIT_INTERVAL_MINUTES,
    )


def start_scheduler():
    """
    Start the scheduler.

    Called during application startup (in lifespan).
    """
    if not settings.RECONCILE_AUDIT_ENABLED:
        logger.info("scheduler_disabled")
        return

    if not scheduler.running:
        setup_jobs()
        scheduler.start()
        for job in scheduler.get_jobs():
            logger.info("scheduler_job_registered", job_id=job.id, next_run=str(job.next_run_time))
    else:
        logger.warning("scheduler_already_running")


def stop_scheduler():
    """
    Stop the scheduler.

    Called during application shutdown (in lifespan).
    """
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("scheduler_stopped")
