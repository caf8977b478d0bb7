"""
APScheduler configuration and job scheduling for the backup service.

Manages:
- The recurring backup job (cron expression or fixed interval)
- Scheduler lifecycle and status reporting
"""

import logging
import re

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from mongo_backup.backup.executor import run_scheduled_backup


logger = logging.getLogger(__name__)

BACKUP_JOB_ID = 'mongo_backup'

_INTERVAL_PATTERN = re.compile(r'^every\s+(\d+)\s*([mhd])$', re.IGNORECASE)
_INTERVAL_UNITS = {'m': 'minutes', 'h': 'hours', 'd': 'days'}

# Global scheduler instance and Flask app reference
scheduler = None
flask_app = None


def parse_schedule(expression: str, timezone: str = 'UTC'):
    """
    Build an APScheduler trigger from a schedule expression.

    Accepts a five-field crontab ('0 12 * * *') or a fixed interval
    ('every 24h', 'every 30m', 'every 1d').

    Args:
        expression: Schedule expression
        timezone: Timezone for the trigger

    Returns:
        CronTrigger or IntervalTrigger

    Raises:
        ValueError: If the expression is empty or invalid
    """
    if not expression or not expression.strip():
        raise ValueError("Schedule expression is empty")

    expression = expression.strip()

    match = _INTERVAL_PATTERN.match(expression)
    if match:
        amount = int(match.group(1))
        if amount <= 0:
            raise ValueError(f"Interval must be positive: {expression}")
        unit = _INTERVAL_UNITS[match.group(2).lower()]
        return IntervalTrigger(timezone=timezone, **{unit: amount})

    return CronTrigger.from_crontab(expression, timezone=timezone)


def init_scheduler(app):
    """
    Initialize and configure APScheduler.

    Args:
        app: Flask app instance
    """
    global scheduler, flask_app

    if scheduler is not None:
        return scheduler

    # Store Flask app reference for use in background threads
    flask_app = app

    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one backup at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    timezone = app.config.get('SCHEDULER_TIMEZONE', 'UTC')

    scheduler = BackgroundScheduler(
        executors=executors,
        job_defaults=job_defaults,
        timezone=timezone
    )

    schedule = app.config.get('BACKUP_SCHEDULE')
    if schedule:
        scheduler.add_job(
            func=_execute_backup_wrapper,
            trigger=parse_schedule(schedule, timezone),
            id=BACKUP_JOB_ID,
            name='MongoDB Backup',
            replace_existing=True
        )
        logger.info(f"Scheduled MongoDB backup ({schedule}, {timezone})")
    else:
        logger.info("No backup schedule configured")

    return scheduler


def start_scheduler():
    """
    Start the APScheduler.

    Should be called after Flask app is initialized.
    """
    global scheduler

    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if not scheduler.running:
        scheduler.start()
        logger.info(f"APScheduler started successfully (state={scheduler.state})")

        for job in scheduler.get_jobs():
            next_run = job.next_run_time.isoformat() if job.next_run_time else 'N/A'
            logger.info(f"  - {job.id}: {job.name} (next run: {next_run})")
    else:
        logger.info(f"Scheduler already running (state={scheduler.state})")


def stop_scheduler():
    """Stop the APScheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")


def _execute_backup_wrapper():
    """
    Run the scheduled backup inside the Flask app context.

    run_scheduled_backup never raises, so a failed run cannot take the
    scheduler thread down.
    """
    global flask_app

    with flask_app.app_context():
        result = run_scheduled_backup(flask_app)
        logger.info(f"Scheduled backup finished with status: {result.status}")


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs.

    Returns:
        List of dicts with job information
    """
    global scheduler

    if scheduler is None:
        return []

    jobs = []

    for job in scheduler.get_jobs():
        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if getattr(job, 'next_run_time', None) else None,
            'trigger': str(job.trigger)
        })

    return jobs


def is_scheduler_running() -> bool:
    """Check if the scheduler is running in this process."""
    global scheduler

    return scheduler is not None and scheduler.running
