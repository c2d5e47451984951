"""
Value objects of the backup core: job objects, storages, restore points and
the backup history that owns them.
"""

import uuid
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from .errors import NotFoundError, ValidationError


class JobObject:
    """Reference to a source path tracked by a backup job."""

    def __init__(self, full_name: str):
        if not full_name:
            raise ValidationError("Job object path must not be empty")
        self._full_name = str(full_name)

    @property
    def full_name(self) -> str:
        return self._full_name

    def __eq__(self, other):
        if not isinstance(other, JobObject):
            return NotImplemented
        return self._full_name == other._full_name

    def __hash__(self):
        return hash(self._full_name)

    def __repr__(self):
        return f'<JobObject {self._full_name}>'


class Storage:
    """One archive file plus the source paths packed into it."""

    def __init__(self, full_name: str, source_paths: Iterable[str]):
        if not full_name:
            raise ValidationError("Storage name must not be empty")
        self._full_name = str(full_name)
        self._source_paths = tuple(source_paths)

    @property
    def full_name(self) -> str:
        return self._full_name

    @property
    def source_paths(self) -> Tuple[str, ...]:
        return self._source_paths

    def __eq__(self, other):
        if not isinstance(other, Storage):
            return NotImplemented
        return (self._full_name, self._source_paths) == (other._full_name, other._source_paths)

    def __hash__(self):
        return hash((self._full_name, self._source_paths))

    def __repr__(self):
        return f'<Storage {self._full_name} sources={len(self._source_paths)}>'


class RestorePoint:
    """
    Immutable snapshot of a job: creation time plus the storages written.

    Identity is the restore point id, so two points with equal content are
    still distinct.
    """

    def __init__(
        self,
        storages: Iterable[Storage],
        creation_time: Optional[datetime] = None,
        restore_point_id: Optional[str] = None
    ):
        if storages is None:
            raise ValidationError("Restore point needs a storage collection")

        self._id = restore_point_id or str(uuid.uuid4())
        self._creation_time = creation_time or datetime.utcnow()
        self._storages = tuple(storages)

    @property
    def id(self) -> str:
        return self._id

    @property
    def creation_time(self) -> datetime:
        return self._creation_time

    @property
    def storages(self) -> Tuple[Storage, ...]:
        return self._storages

    @property
    def storage_names(self) -> List[str]:
        return [storage.full_name for storage in self._storages]

    def describe(self) -> str:
        """One-line summary used in retention logs."""
        return (
            f"Restore point {self._id} created at "
            f"{self._creation_time.isoformat()} with {len(self._storages)} storages"
        )

    def __repr__(self):
        return f'<RestorePoint {self._id} created={self._creation_time.isoformat()}>'


class Backup:
    """Ordered history of restore points belonging to one backup job."""

    def __init__(self, restore_points: Optional[Iterable[RestorePoint]] = None):
        self._restore_points = list(restore_points or [])

    @property
    def restore_points(self) -> Tuple[RestorePoint, ...]:
        return tuple(self._restore_points)

    def add_restore_point(self, restore_point: RestorePoint):
        if restore_point is None:
            raise ValidationError("Restore point must not be None")
        self._restore_points.append(restore_point)

    def delete_restore_point(self, restore_point: RestorePoint) -> bool:
        """
        Remove a restore point by id.

        Returns:
            True if the point was part of this backup and got removed
        """
        for index, existing in enumerate(self._restore_points):
            if existing.id == restore_point.id:
                del self._restore_points[index]
                return True
        return False

    def get_restore_point(self, restore_point_id: str) -> RestorePoint:
        for restore_point in self._restore_points:
            if restore_point.id == restore_point_id:
                return restore_point
        raise NotFoundError(f"Restore point not found: {restore_point_id}")

    def __len__(self):
        return len(self._restore_points)
