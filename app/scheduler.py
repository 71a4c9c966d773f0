# app/scheduler.py
"""
Background scheduler for the workshop lifecycle jobs.

The scheduler only decides *when* jobs run; all business logic lives in
app.background_tasks.workshop_tasks and the services it calls.
"""

import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED

from app.background_tasks.workshop_tasks import (
    finalize_attendance,
    issue_onboarding_tokens,
    retry_failed_refunds,
    send_follow_ups,
    sweep_expired_sessions,
    top_up_invitations,
)

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None

# (func, trigger, id, name)
JOBS = [
    (
        top_up_invitations,
        CronTrigger(hour=9, minute=0),
        "top_up_invitations",
        "Invite Next Waitlist Batch",
    ),
    (
        sweep_expired_sessions,
        IntervalTrigger(hours=1),
        "sweep_expired_sessions",
        "Sweep Expired Payment Sessions",
    ),
    (
        finalize_attendance,
        IntervalTrigger(hours=1),
        "finalize_attendance",
        "Finalize Attendance For Ended Workshops",
    ),
    (
        issue_onboarding_tokens,
        CronTrigger(hour=8, minute=0),
        "issue_onboarding_tokens",
        "Issue Onboarding Links",
    ),
    (
        send_follow_ups,
        CronTrigger(hour=10, minute=0),
        "send_follow_ups",
        "Send Post-Workshop Follow-ups",
    ),
    (
        retry_failed_refunds,
        IntervalTrigger(hours=1),
        "retry_failed_refunds",
        "Retry Failed Refunds",
    ),
]


def _on_job_error(event):
    """Log scheduler job errors with full context."""
    exc = event.exception
    logger.error(
        "Scheduled job FAILED: job_id=%s error=%s",
        event.job_id, exc,
        exc_info=(type(exc), exc, None) if exc else None,
    )
    if event.traceback:
        logger.error("Traceback for job %s:\n%s", event.job_id, event.traceback)


def _on_job_missed(event):
    """Log when a scheduled job misses its execution window."""
    logger.warning(
        "Scheduled job MISSED: job_id=%s scheduled_run_time=%s",
        event.job_id,
        event.scheduled_run_time,
    )


def init_scheduler(start: bool = True):
    """
    Initialize the background scheduler with all periodic jobs.

    Called once when the application starts up.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already initialized")
        return scheduler

    scheduler = BackgroundScheduler(
        timezone="UTC",
        job_defaults={
            'coalesce': True,  # Combine missed executions
            'max_instances': 1,  # Only one instance of each job at a time
            'misfire_grace_time': 300,
        }
    )

    for func, trigger, job_id, name in JOBS:
        scheduler.add_job(
            func=func,
            trigger=trigger,
            id=job_id,
            name=name,
            replace_existing=True,
        )
        logger.info("Scheduled job: %s (%s)", job_id, trigger)

    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.add_listener(_on_job_missed, EVENT_JOB_MISSED)

    if start:
        scheduler.start()
        logger.info("Background scheduler started successfully")

    return scheduler


def shutdown_scheduler():
    """Gracefully shut down the scheduler."""
    global scheduler

    if scheduler is not None:
        if scheduler.running:
            scheduler.shutdown(wait=True)
        logger.info("Background scheduler shutdown complete")
        scheduler = None


def get_scheduler_status():
    """Current status of all scheduled jobs."""
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        next_run_time = getattr(job, "next_run_time", None)
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": next_run_time.isoformat() if next_run_time else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs
    }
