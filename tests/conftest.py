"""
Shared pytest fixtures for Restorekeeper tests.

This module provides fixtures for:
- Flask app and test client
- Database setup with in-memory SQLite
- Repositories rooted in a temporary directory
- Source files to back up
- Mock fixtures for the scheduler
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from restorekeeper import create_app, db as _db
from restorekeeper.models import BackupJobRecord
from restorekeeper.backup.compression import Compressor
from restorekeeper.backup.repository import LocalFilesRepository
from restorekeeper.backup.extended_repository import ExtendedRepository


@pytest.fixture(scope='function')
def app(tmp_path):
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite database for fast, isolated tests.
    """
    app = create_app('testing', {
        'REPOSITORY_DIR': str(tmp_path / 'repository'),
        'LOG_DIR': str(tmp_path / 'logs'),
    })

    yield app


@pytest.fixture(scope='function')
def db(app):
    """
    Database with all tables.

    Each test gets a fresh database.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def client(app, db):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture
def source_files(tmp_path):
    """
    Create source objects to back up.

    Creates:
    - sources/a.txt
    - sources/b.txt
    - sources/docs/ (directory with two files)
    """
    sources = tmp_path / 'sources'
    sources.mkdir()
    (sources / 'a.txt').write_text('content a')
    (sources / 'b.txt').write_text('content b')

    docs = sources / 'docs'
    docs.mkdir()
    (docs / 'readme.md').write_text('# readme')
    (docs / 'notes.txt').write_text('notes')

    return sources


@pytest.fixture
def repository(tmp_path):
    """Local zip repository under tmp_path/repository."""
    return LocalFilesRepository(str(tmp_path / 'repository'), Compressor('zip'))


@pytest.fixture
def extended_repository(repository):
    """Location-tracking wrapper around the local repository."""
    return ExtendedRepository(repository)


@pytest.fixture
def job_record(db, source_files):
    """
    Create a saved backup job with two job objects and a count policy.
    """
    from restorekeeper.backup.algorithms import SingleStorageAlgorithm
    from restorekeeper.backup.entities import JobObject
    from restorekeeper.backup.job import BackupJob
    from restorekeeper.backup.store import load_repository_state, save_job_state, save_repository_state

    repository = load_repository_state()
    job = BackupJob(
        repository,
        SingleStorageAlgorithm(),
        [JobObject(str(source_files / 'a.txt')), JobObject(str(source_files / 'b.txt'))]
    )

    record = BackupJobRecord(
        id=job.id,
        name='test_job',
        description='Test backup job',
        enabled=True,
        algorithm='single',
        schedule_cron='0 2 * * *',
        retention_policy=json.dumps({'type': 'count', 'limit': 2}),
        state='{}'
    )
    save_job_state(record, job)
    save_repository_state(repository)
    db.session.add(record)
    db.session.commit()
    return record


@pytest.fixture(scope='function')
def mock_scheduler():
    """
    Mock APScheduler for testing scheduler functionality.
    """
    with patch('restorekeeper.scheduler.BackgroundScheduler') as mock_sched:
        scheduler_instance = MagicMock()
        mock_sched.return_value = scheduler_instance

        scheduler_instance.running = False
        scheduler_instance.state = 0
        scheduler_instance.get_jobs.return_value = []

        yield scheduler_instance
