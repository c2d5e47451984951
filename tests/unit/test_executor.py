"""
Unit tests for backup executor (restorekeeper/backup/executor.py).

Tests RestorePointExecutor runs against a real repository in tmp_path and
the retention sweep over saved jobs.
"""

import json
import os
from unittest.mock import patch

import pytest

from restorekeeper.backup.errors import NotFoundError, StorageError, ValidationError
from restorekeeper.backup.executor import (
    RestorePointExecutor,
    RetentionManager,
    enforce_retention_policies,
    execute_backup_job
)
from restorekeeper.backup.store import load_repository_state
from restorekeeper.models import BackupJobRecord, RunHistory


def restore_points(record):
    return json.loads(record.state)['backup']['restore_points']


class TestRestorePointExecutor:
    """Test RestorePointExecutor class."""

    def test_executor_initialization(self, db, job_record):
        """Test RestorePointExecutor initializes correctly."""
        executor = RestorePointExecutor(job_record)

        assert executor.record == job_record
        assert executor.history_record is None
        assert executor.logs == []

    def test_successful_run(self, db, job_record):
        """Test a run creates a restore point and records history."""
        result = RestorePointExecutor(job_record).execute()

        assert result.status == 'success'
        assert result.job_id == job_record.id
        assert result.completed_at is not None
        assert result.storages_count == 1
        assert result.evicted_count == 0

        points = restore_points(job_record)
        assert len(points) == 1
        assert points[0]['id'] == result.restore_point_id

        storage = points[0]['storages'][0]['full_name']
        assert os.path.exists(storage)
        assert storage in load_repository_state().locations

    def test_run_logs(self, db, job_record):
        """Test run logs are timestamped and stored on the history record."""
        result = RestorePointExecutor(job_record).execute()

        assert "Starting backup job: test_job" in result.logs
        assert "Backup completed successfully" in result.logs
        assert result.logs.startswith('[')

    def test_retention_applied_after_run(self, db, job_record):
        """Test the job's count policy trims old restore points."""
        for _ in range(2):
            RestorePointExecutor(job_record).execute()

        result = RestorePointExecutor(job_record).execute()

        assert result.status == 'success'
        assert result.evicted_count == 1
        assert len(restore_points(job_record)) == 2

    def test_run_without_retention_policy(self, db, job_record):
        """Test runs without a policy keep every restore point."""
        job_record.retention_policy = None
        db.session.commit()

        for _ in range(3):
            result = RestorePointExecutor(job_record).execute()

        assert result.evicted_count is None
        assert "Retention policy not configured" in result.logs
        assert len(restore_points(job_record)) == 3

    def test_failed_run_keeps_state(self, db, job_record, source_files):
        """Test a failing run is recorded and the saved job is unchanged."""
        state_before = job_record.state
        (source_files / 'a.txt').unlink()

        result = RestorePointExecutor(job_record).execute()

        assert result.status == 'failed'
        assert 'not readable' in result.error_message
        assert "Backup failed" in result.logs
        assert job_record.state == state_before
        assert not any(
            name.endswith('.zip')
            for _, _, files in os.walk(load_repository_state().repository.base_path)
            for name in files
        )

    def test_failed_retention_keeps_restore_point(self, db, job_record):
        """Test a broken policy fails the run after the restore point was saved."""
        job_record.retention_policy = json.dumps({'type': 'weekly'})
        db.session.commit()

        result = RestorePointExecutor(job_record).execute()

        assert result.status == 'failed'
        assert 'Invalid retention policy type' in result.error_message
        assert len(restore_points(job_record)) == 1


class TestExecuteBackupJob:
    """Test execute_backup_job function."""

    def test_execute_backup_job(self, db, job_record):
        """Test executing a job by id."""
        result = execute_backup_job(job_record.id)

        assert result.status == 'success'
        assert RunHistory.query.filter_by(job_id=job_record.id).count() == 1

    def test_execute_backup_job_not_found(self, db):
        """Test executing an unknown job raises NotFoundError."""
        with pytest.raises(NotFoundError, match="not found"):
            execute_backup_job('missing-id')

    def test_execute_backup_job_disabled(self, db, job_record):
        """Test disabled jobs only run when explicitly allowed."""
        job_record.enabled = False
        db.session.commit()

        with pytest.raises(ValidationError, match="disabled"):
            execute_backup_job(job_record.id)

        result = execute_backup_job(job_record.id, allow_disabled=True)
        assert result.status == 'success'


class TestRetentionManager:
    """Test the retention sweep."""

    def test_enforce_all_policies(self, db, job_record):
        """Test every job with a policy is trimmed."""
        job_record.retention_policy = None
        db.session.commit()
        for _ in range(3):
            RestorePointExecutor(job_record).execute()

        job_record.retention_policy = json.dumps({'type': 'count', 'limit': 1})
        db.session.commit()

        summary = enforce_retention_policies()

        assert summary['jobs_processed'] == 1
        assert summary['restore_points_evicted'] == 2
        assert summary['errors'] == []
        assert len(restore_points(job_record)) == 1

    def test_jobs_without_policy_are_skipped(self, db, job_record):
        """Test jobs without a policy are not processed."""
        job_record.retention_policy = None
        db.session.commit()

        summary = RetentionManager().enforce_all_policies()

        assert summary['jobs_processed'] == 0

    def test_errors_are_collected(self, db, job_record):
        """Test a failing job is reported instead of aborting the sweep."""
        with patch.object(RetentionManager, 'enforce_job_policy', side_effect=ValidationError("broken")):
            summary = RetentionManager().enforce_all_policies()

        assert summary['jobs_processed'] == 0
        assert len(summary['errors']) == 1
        assert 'test_job' in summary['errors'][0]
        assert any('Retention enforcement complete' in line for line in summary['logs'])

    def test_enforce_job_policy_returns_count(self, db, job_record):
        """Test a single job's eviction count."""
        for _ in range(3):
            RestorePointExecutor(job_record).execute()

        # The count policy of 2 already ran after each execution
        assert RetentionManager().enforce_job_policy(job_record) == 0
        assert BackupJobRecord.query.count() == 1

    def test_failed_cleaning_saves_earlier_evictions(self, db, job_record):
        """Test points evicted before a cleaning failure stay evicted."""
        job_record.retention_policy = None
        db.session.commit()
        for _ in range(3):
            RestorePointExecutor(job_record).execute()
        oldest, middle, newest = [point['id'] for point in restore_points(job_record)]

        job_record.retention_policy = json.dumps({'type': 'count', 'limit': 1})
        db.session.commit()

        with patch(
            'restorekeeper.backup.retention.DeleteUnsharedStoragesAlgorithm.clean_restore_point',
            side_effect=[[], StorageError("disk failure")]
        ):
            with pytest.raises(StorageError, match="disk failure"):
                RetentionManager().enforce_job_policy(job_record)

        db.session.rollback()
        remaining = [point['id'] for point in restore_points(job_record)]
        assert remaining == [oldest, newest]
