"""
Backup job - a named set of source objects and the restore points taken of them.

Lifecycle:
1. Construct with a repository and a storage creation algorithm
2. Add/remove job objects
3. Create restore points (archives are written to the repository)
4. Delete restore points, manually or through a retention controller
"""

import logging
import uuid
from datetime import datetime
from typing import Iterable, List, Optional

from .entities import Backup, JobObject, RestorePoint
from .errors import DuplicateError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class BackupJob:
    """
    Orchestrates restore point creation for a set of job objects.
    """

    def __init__(
        self,
        repository,
        algorithm,
        job_objects: Optional[Iterable[JobObject]] = None,
        job_id: Optional[str] = None,
        backup: Optional[Backup] = None,
        validate: bool = True
    ):
        """
        Initialize backup job.

        Args:
            repository: Repository storing the job's archives
            algorithm: Storage creation algorithm
            job_objects: Initial job objects
            job_id: Existing identifier (a fresh UUID is generated otherwise)
            backup: Existing backup history (used when loading saved state)
            validate: Check objects and register the namespace; disabled only
                when reconstructing a saved job

        Raises:
            ValidationError: If an initial object doesn't exist in the repository
            DuplicateError: If an initial object is listed twice
        """
        if repository is None:
            raise ValidationError("Backup job needs a repository")
        if algorithm is None:
            raise ValidationError("Backup job needs a storage creation algorithm")

        objects = list(job_objects or [])

        if validate:
            # Validate everything before touching the repository
            missing = next(
                (obj for obj in objects if not repository.object_exists(obj.full_name)),
                None
            )
            if missing is not None:
                raise ValidationError(
                    f"Impossible to create backup job: job object {missing.full_name} doesn't exist"
                )

        seen = set()
        for obj in objects:
            if obj in seen:
                raise DuplicateError(f"{obj.full_name} is listed twice")
            seen.add(obj)

        self.id = job_id or str(uuid.uuid4())
        self.repository = repository
        self.algorithm = algorithm
        self._job_objects = objects
        self.backup = backup if backup is not None else Backup()

        if validate:
            repository.create_job_namespace(self.id)

    @property
    def job_objects(self) -> tuple:
        return tuple(self._job_objects)

    def add_job_object(self, job_object: JobObject):
        """
        Start tracking a job object.

        Raises:
            ValidationError: If the object doesn't exist in the repository
            DuplicateError: If the object is already tracked
        """
        if not self.repository.object_exists(job_object.full_name):
            raise ValidationError(f"Job object {job_object.full_name} doesn't exist")

        if job_object in self._job_objects:
            raise DuplicateError(f"{job_object.full_name} already in this backup job")

        self._job_objects.append(job_object)

    def delete_job_object(self, job_object: JobObject):
        """
        Stop tracking a job object.

        Raises:
            NotFoundError: If the object is not tracked
        """
        if job_object not in self._job_objects:
            raise NotFoundError(f"{job_object.full_name} not in this backup job")

        self._job_objects.remove(job_object)

    def create_restore_point(self, creation_time: Optional[datetime] = None) -> RestorePoint:
        """
        Archive the current job objects into a new restore point.

        The restore point is appended only once every storage was written.

        Args:
            creation_time: Timestamp of the point (default: now, UTC)

        Returns:
            The new restore point

        Raises:
            ValidationError: If the job has no job objects
            StorageError: If an archive cannot be created
        """
        if not self._job_objects:
            raise ValidationError("Backup job has no job objects to archive")

        storages = self.algorithm.create_storages(
            self.repository,
            [job_object.full_name for job_object in self._job_objects],
            self.id
        )

        restore_point = RestorePoint(storages, creation_time)
        self.backup.add_restore_point(restore_point)

        logger.info(
            f"Created restore point {restore_point.id} for job {self.id} "
            f"({len(storages)} storages)"
        )
        return restore_point

    def delete_restore_point(self, restore_point: RestorePoint) -> bool:
        """
        Remove a restore point and delete its storages.

        Storages are only deleted when the point was actually part of the
        backup. Storages already gone from the repository are skipped.

        Returns:
            True if the restore point was removed
        """
        if not self.backup.delete_restore_point(restore_point):
            return False

        existing = [
            name for name in restore_point.storage_names
            if self.repository.storage_exists(name)
        ]
        if existing:
            self.repository.delete_storages(existing)
        return True

    def enforce_retention(self, controller, log=None) -> List[RestorePoint]:
        """
        Apply a retention controller to this job's backup.

        Each evicted point is removed from the backup as soon as its storages
        were cleaned. If cleaning fails part way, the points already cleaned
        are gone from the backup and the error propagates.

        Args:
            controller: Retention controller
            log: Logger receiving the retention summary (default: module logger)

        Returns:
            Evicted restore points (empty if nothing was evicted)
        """
        return controller.control_restore_points(
            list(self.backup.restore_points),
            self.repository,
            log or logger,
            on_cleaned=self.backup.delete_restore_point
        )

    def __repr__(self):
        return f'<BackupJob {self.id} objects={len(self._job_objects)} points={len(self.backup)}>'
