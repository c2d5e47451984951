"""
Database-backed state for backup jobs and the shared repository.

Job state and the repository location mapping are kept as JSON documents
on their records; these helpers convert between records and live objects.
"""

import json

from flask import current_app

from restorekeeper import db
from restorekeeper.models import BackupJobRecord, RepositoryState
from .compression import Compressor
from .extended_repository import ExtendedRepository
from .job import BackupJob
from .repository import LocalFilesRepository
from .serialization import dump_job, dump_repository, load_job, load_repository


def load_repository_state() -> ExtendedRepository:
    """
    Load the shared repository, or create it from configuration.

    Returns:
        ExtendedRepository instance
    """
    record = RepositoryState.query.first()
    if record:
        return load_repository(json.loads(record.document))

    base = LocalFilesRepository(
        current_app.config['REPOSITORY_DIR'],
        Compressor(current_app.config['COMPRESSION_FORMAT'])
    )
    return ExtendedRepository(base)


def save_repository_state(repository: ExtendedRepository):
    """Store the repository document (caller commits)."""
    record = RepositoryState.query.first()
    if record is None:
        record = RepositoryState(document='{}')
        db.session.add(record)
    record.document = json.dumps(dump_repository(repository))


def load_job_state(record: BackupJobRecord, repository) -> BackupJob:
    """Rebuild the BackupJob saved on a record."""
    return load_job(json.loads(record.state), repository)


def save_job_state(record: BackupJobRecord, job: BackupJob):
    """Store the job document on its record (caller commits)."""
    record.state = json.dumps(dump_job(job))
