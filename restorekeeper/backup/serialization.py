"""
Conversion of backup jobs and repositories to plain documents.

Documents only contain JSON-compatible values so they can be stored with
json.dumps and rebuilt field for field.
"""

from datetime import datetime
from typing import Any, Dict

from .algorithms import create_algorithm
from .compression import Compressor
from .entities import Backup, JobObject, RestorePoint, Storage
from .errors import ValidationError
from .extended_repository import ExtendedRepository
from .job import BackupJob
from .repository import LocalFilesRepository


def dump_restore_point(restore_point: RestorePoint) -> Dict[str, Any]:
    return {
        'id': restore_point.id,
        'creation_time': restore_point.creation_time.isoformat(),
        'storages': [
            {
                'full_name': storage.full_name,
                'source_paths': list(storage.source_paths)
            }
            for storage in restore_point.storages
        ]
    }


def load_restore_point(document: Dict[str, Any]) -> RestorePoint:
    storages = [
        Storage(storage['full_name'], storage['source_paths'])
        for storage in document['storages']
    ]
    return RestorePoint(
        storages,
        datetime.fromisoformat(document['creation_time']),
        document['id']
    )


def dump_job(job: BackupJob) -> Dict[str, Any]:
    """
    Serialize a backup job and its backup history.

    Args:
        job: BackupJob instance

    Returns:
        Dict with id, algorithm, job_objects and backup
    """
    return {
        'id': job.id,
        'algorithm': job.algorithm.name,
        'job_objects': [job_object.full_name for job_object in job.job_objects],
        'backup': {
            'restore_points': [
                dump_restore_point(point) for point in job.backup.restore_points
            ]
        }
    }


def load_job(document: Dict[str, Any], repository) -> BackupJob:
    """
    Rebuild a backup job from a document produced by dump_job.

    Job objects are not re-validated, since sources may have disappeared
    since the state was saved.

    Raises:
        ValidationError: If the document is malformed
    """
    try:
        backup = Backup(
            load_restore_point(point)
            for point in document['backup']['restore_points']
        )
        return BackupJob(
            repository,
            create_algorithm(document['algorithm']),
            [JobObject(name) for name in document['job_objects']],
            job_id=document['id'],
            backup=backup,
            validate=False
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid backup job document: {e}")


def dump_repository(repository: ExtendedRepository) -> Dict[str, Any]:
    """Serialize an extended local repository and its location mapping."""
    return {
        'base_path': str(repository.repository.base_path),
        'compression_format': repository.compressor.compression_format,
        'locations': {
            name: list(paths) for name, paths in repository.locations.items()
        }
    }


def load_repository(document: Dict[str, Any]) -> ExtendedRepository:
    """
    Rebuild an extended local repository from a document.

    Raises:
        ValidationError: If the document is malformed
    """
    try:
        base = LocalFilesRepository(
            document['base_path'],
            Compressor(document['compression_format'])
        )
        return ExtendedRepository(base, document.get('locations', {}))
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid repository document: {e}")
