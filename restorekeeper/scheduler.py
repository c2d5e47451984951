"""
APScheduler configuration and job scheduling for Restorekeeper.

Manages:
- Scheduled restore point creation (based on cron expressions)
- Daily retention policy enforcement
"""

import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.executors.pool import ThreadPoolExecutor

from restorekeeper import db
from restorekeeper.models import BackupJobRecord
from restorekeeper.backup.errors import NotFoundError
from restorekeeper.backup.executor import execute_backup_job, enforce_retention_policies

logger = logging.getLogger(__name__)

# Global scheduler instance and Flask app reference
scheduler = None
flask_app = None


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

    jobstores = {
        'default': SQLAlchemyJobStore(url=app.config['SQLALCHEMY_DATABASE_URI'])
    }

    # A single worker keeps runs against the shared repository sequential
    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BackgroundScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone=app.config.get('SCHEDULER_TIMEZONE', 'UTC')
    )

    # Add retention policy job (runs daily, 2 AM UTC by default)
    scheduler.add_job(
        func=_enforce_retention_wrapper,
        trigger=CronTrigger(hour=app.config.get('RETENTION_CRON_HOUR', 2), minute=0),
        id='retention_cleanup',
        name='Daily Retention Cleanup',
        replace_existing=True
    )

    return scheduler


def start_scheduler():
    """
    Start the APScheduler.

    Should be called after Flask app is initialized.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if not scheduler.running:
        scheduler.start()
        logger.info(f"APScheduler started (state={scheduler.state})")

        for job in scheduler.get_jobs():
            next_run = job.next_run_time.isoformat() if job.next_run_time else 'N/A'
            logger.info(f"  - {job.id}: {job.name} (next run: {next_run})")
    else:
        logger.info(f"Scheduler already running (state={scheduler.state})")


def stop_scheduler():
    """Stop the APScheduler."""
    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")


def sync_backup_jobs():
    """
    Synchronize backup jobs from database to scheduler.

    This function should be called:
    - After app startup
    - After creating/updating/deleting backup jobs

    Does nothing when the scheduler is disabled in this process.
    """
    if scheduler is None:
        logger.debug("Scheduler not initialized, skipping job sync")
        return

    records = BackupJobRecord.query.all()

    scheduled_job_ids = {job.id for job in scheduler.get_jobs() if job.id.startswith('backup_')}

    for record in records:
        job_id = f"backup_{record.id}"

        if record.enabled and record.schedule_cron:
            _add_scheduled_job(record)
            scheduled_job_ids.discard(job_id)
        elif job_id in scheduled_job_ids:
            _remove_scheduled_job(record.id)
            scheduled_job_ids.discard(job_id)

    # Remove any leftover scheduled jobs that don't exist in database
    for leftover_id in scheduled_job_ids:
        scheduler.remove_job(leftover_id)
        logger.info(f"Removed orphaned scheduled job: {leftover_id}")


def _add_scheduled_job(record: BackupJobRecord):
    """
    Add (or replace) a backup job in the scheduler.

    Args:
        record: BackupJobRecord instance
    """
    job_id = f"backup_{record.id}"

    try:
        trigger = CronTrigger.from_crontab(record.schedule_cron, timezone='UTC')

        scheduler.add_job(
            func=_execute_backup_wrapper,
            args=[record.id],
            trigger=trigger,
            id=job_id,
            name=f"Backup: {record.name}",
            replace_existing=True
        )

        logger.info(f"Scheduled backup job: {record.name} ({record.schedule_cron})")

    except ValueError as e:
        logger.error(f"Failed to schedule backup job {record.name}: {e}")


def _remove_scheduled_job(record_id: str):
    """
    Remove a backup job from the scheduler.

    Args:
        record_id: BackupJobRecord ID
    """
    scheduler.remove_job(f"backup_{record_id}")
    logger.info(f"Removed scheduled backup job ID: {record_id}")


def _execute_backup_wrapper(job_id: str, allow_disabled: bool = False):
    """
    Run a backup job inside the Flask app context.

    Args:
        job_id: BackupJobRecord ID to execute
        allow_disabled: Run even if the job is disabled (manual triggers)
    """
    with flask_app.app_context():
        try:
            logger.info(f"Scheduler executing backup job ID: {job_id}")
            history = execute_backup_job(job_id, allow_disabled=allow_disabled)
            logger.info(f"Backup job {job_id} completed with status: {history.status}")
        except Exception as e:
            logger.error(f"Scheduler backup job {job_id} failed: {e}")


def _enforce_retention_wrapper():
    """Run the retention sweep inside the Flask app context."""
    with flask_app.app_context():
        summary = enforce_retention_policies()
        logger.info(
            f"Retention sweep: {summary['jobs_processed']} jobs, "
            f"{summary['restore_points_evicted']} restore points evicted"
        )


def trigger_backup_now(job_id: str) -> str:
    """
    Queue a backup job to run in the scheduler's worker right away.

    Args:
        job_id: BackupJobRecord ID to execute

    Returns:
        ID of the one-off scheduler job

    Raises:
        RuntimeError: If the scheduler is not initialized
        NotFoundError: If job not found
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized")

    record = db.session.get(BackupJobRecord, job_id)
    if not record:
        raise NotFoundError(f"Backup job not found: {job_id}")

    now = datetime.now(timezone.utc)
    manual_id = f"manual_{job_id}_{int(now.timestamp())}"

    # Short delay so the request commits before the worker reads the job
    scheduler.add_job(
        func=_execute_backup_wrapper,
        args=[job_id, True],
        trigger=DateTrigger(run_date=now + timedelta(seconds=1)),
        id=manual_id,
        name=f"Manual: {record.name}",
        replace_existing=False
    )

    logger.info(f"Manually triggered backup job: {record.name}")
    return manual_id


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs.

    Returns:
        List of dicts with job information
    """
    if scheduler is None:
        return []

    jobs = []

    for job in scheduler.get_jobs():
        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger)
        })

    return jobs
