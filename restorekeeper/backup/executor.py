"""
Backup executor - runs a saved backup job end to end.

Workflow:
1. Create RunHistory record (status: running)
2. Load the repository and the job state
3. Create a restore point (archives are written to the repository)
4. Save job and repository state
5. Enforce the job's retention policy (if configured) and save again
6. Update RunHistory (status: success/failed)

The module also provides the daily retention sweep over every job.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List

from restorekeeper import db
from restorekeeper.models import BackupJobRecord, RunHistory
from .errors import BackupError, NotFoundError, ValidationError
from .retention import create_controller
from .store import load_job_state, load_repository_state, save_job_state, save_repository_state

logger = logging.getLogger(__name__)


def apply_retention(record: BackupJobRecord, job, repository, controller) -> List:
    """
    Enforce a retention controller on a loaded job and save the result.

    Restore points evicted before a failure are saved as well, so the stored
    backup never references storages that were already deleted.

    Returns:
        Evicted restore points

    Raises:
        BackupError: If cleaning a victim fails (after the partial result is saved)
    """
    try:
        victims = job.enforce_retention(controller, logger)
    except BackupError:
        save_job_state(record, job)
        save_repository_state(repository)
        db.session.commit()
        raise

    save_job_state(record, job)
    save_repository_state(repository)
    db.session.commit()
    return victims


class RestorePointExecutor:
    """
    Orchestrates one restore point run for a job record.
    """

    def __init__(self, record: BackupJobRecord):
        """
        Initialize executor.

        Args:
            record: BackupJobRecord to run
        """
        self.record = record
        self.history_record = None
        self.logs = []

    def execute(self) -> RunHistory:
        """
        Execute the run.

        Returns:
            RunHistory record with execution results
        """
        self.history_record = RunHistory(
            job_id=self.record.id,
            status='running',
            started_at=datetime.utcnow()
        )
        db.session.add(self.history_record)
        db.session.commit()

        self._log(f"Starting backup job: {self.record.name}")

        try:
            self._execute_workflow()

            self.history_record.status = 'success'
            self.history_record.completed_at = datetime.utcnow()
            self._log("Backup completed successfully")

        except Exception as e:
            # Drop uncommitted state changes, keep the history record
            db.session.rollback()
            self.history_record.status = 'failed'
            self.history_record.completed_at = datetime.utcnow()
            self.history_record.error_message = str(e)
            self._log(f"Backup failed: {e}")

        finally:
            self.history_record.logs = '\n'.join(self.logs)
            db.session.commit()

        return self.history_record

    def _execute_workflow(self):
        """Execute the main workflow steps."""
        repository = load_repository_state()
        job = load_job_state(self.record, repository)
        self._log(f"Job objects: {len(job.job_objects)} (algorithm: {job.algorithm.name})")

        restore_point = job.create_restore_point()
        self.history_record.restore_point_id = restore_point.id
        self.history_record.storages_count = len(restore_point.storages)
        self._log(f"Created restore point {restore_point.id} with {len(restore_point.storages)} storages")

        save_job_state(self.record, job)
        save_repository_state(repository)
        db.session.commit()

        if not self.record.retention_policy:
            self._log("Retention policy not configured, skipping")
            return

        controller = create_controller(json.loads(self.record.retention_policy))
        victims = apply_retention(self.record, job, repository, controller)
        self.history_record.evicted_count = len(victims)
        self._log(f"Retention evicted {len(victims)} restore points")

    def _log(self, message: str):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
        """
        timestamp = datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.info(message)


def execute_backup_job(job_id: str, allow_disabled: bool = False) -> RunHistory:
    """
    Execute a backup job by ID.

    Args:
        job_id: ID of the job to execute
        allow_disabled: If True, allow execution of disabled jobs (for manual triggers)

    Returns:
        RunHistory record with execution results

    Raises:
        NotFoundError: If job not found
        ValidationError: If job is disabled and not allowed
    """
    record = db.session.get(BackupJobRecord, job_id)

    if not record:
        raise NotFoundError(f"Backup job not found: {job_id}")

    if not record.enabled and not allow_disabled:
        raise ValidationError(f"Backup job is disabled: {record.name}")

    executor = RestorePointExecutor(record)
    return executor.execute()


class RetentionManager:
    """
    Applies every job's retention policy to its saved backup.
    """

    def __init__(self):
        self.logs = []

    def enforce_all_policies(self) -> Dict[str, Any]:
        """
        Enforce retention policies for all backup jobs.

        Returns:
            Dict with summary of cleanup operations:
            {
                'jobs_processed': int,
                'restore_points_evicted': int,
                'errors': List[str],
                'logs': List[str]
            }
        """
        self._log("Starting retention policy enforcement for all jobs")

        summary = {
            'jobs_processed': 0,
            'restore_points_evicted': 0,
            'errors': []
        }

        records = BackupJobRecord.query.filter(BackupJobRecord.retention_policy.isnot(None)).all()

        for record in records:
            try:
                summary['restore_points_evicted'] += self.enforce_job_policy(record)
                summary['jobs_processed'] += 1
            except Exception as e:
                db.session.rollback()
                error_msg = f"Failed to enforce policy for job {record.name}: {e}"
                self._log(error_msg)
                summary['errors'].append(error_msg)

        self._log(
            f"Retention enforcement complete. "
            f"Jobs: {summary['jobs_processed']}, "
            f"Evicted: {summary['restore_points_evicted']}, "
            f"Errors: {len(summary['errors'])}"
        )

        summary['logs'] = self.logs
        return summary

    def enforce_job_policy(self, record: BackupJobRecord) -> int:
        """
        Enforce retention policy for one job.

        Returns:
            Number of restore points evicted
        """
        controller = create_controller(json.loads(record.retention_policy))

        repository = load_repository_state()
        job = load_job_state(record, repository)
        victims = apply_retention(record, job, repository, controller)

        self._log(f"Job {record.name}: evicted {len(victims)} restore points")
        return len(victims)

    def _log(self, message: str):
        timestamp = datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.info(message)


def enforce_retention_policies() -> Dict[str, Any]:
    """
    Enforce retention policies for all jobs.

    This function should be called by the scheduler on a daily basis.

    Returns:
        Summary dict from RetentionManager.enforce_all_policies()
    """
    manager = RetentionManager()
    return manager.enforce_all_policies()
