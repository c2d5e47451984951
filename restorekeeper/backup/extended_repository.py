"""
Repository wrapper that remembers where archived objects came from.

Every storage created through the wrapper is recorded together with the
original source paths packed into it. The mapping backs two features:
restoring a restore point (to its original location or to another directory)
and detecting storages whose content is already covered by another storage,
which retention relies on before deleting anything.
"""

import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .errors import ConflictError, NotFoundError, ValidationError


class ExtendedRepository:
    """
    Location-tracking wrapper around a repository.

    Holds the wrapped repository and delegates storage operations to it.
    """

    def __init__(self, repository, locations: Optional[Dict[str, List[str]]] = None):
        """
        Initialize extended repository.

        Args:
            repository: Wrapped repository (e.g. LocalFilesRepository)
            locations: Previously recorded storage -> source paths mapping
        """
        if repository is None:
            raise ValidationError("Extended repository needs a repository to wrap")

        self.repository = repository
        self.locations = {
            name: list(paths) for name, paths in (locations or {}).items()
        }

    @property
    def compressor(self):
        return self.repository.compressor

    def create_job_namespace(self, job_id: str) -> str:
        return self.repository.create_job_namespace(job_id)

    def object_exists(self, full_name: str) -> bool:
        return self.repository.object_exists(full_name)

    def create_storage(
        self,
        sources: Union[str, List[str]],
        job_id: str,
        storage_id: str
    ) -> str:
        """Create a storage and record the sources it was packed from."""
        source_paths = [sources] if isinstance(sources, str) else list(sources)
        storage_path = self.repository.create_storage(source_paths, job_id, storage_id)
        self.locations[storage_path] = source_paths
        return storage_path

    def delete_storages(self, storage_names: List[str]):
        """Delete storages and forget their recorded locations."""
        self.repository.delete_storages(storage_names)
        for name in storage_names:
            self.locations.pop(name, None)

    def delete_job_namespace(self, job_id: str):
        """Delete a job's namespace and forget every storage recorded in it."""
        self.repository.delete_job_namespace(job_id)

        job_path = Path(self.repository.base_path) / str(job_id)
        for name in [name for name in self.locations if Path(name).parent == job_path]:
            del self.locations[name]

    def storage_exists(self, storage_name: str) -> bool:
        return self.repository.storage_exists(storage_name)

    def get_storage_size(self, storage_name: str) -> int:
        return self.repository.get_storage_size(storage_name)

    def original_locations(self, storage_path: str) -> List[str]:
        """
        Source paths recorded for a storage.

        Raises:
            NotFoundError: If the storage is not tracked
        """
        if storage_path not in self.locations:
            raise NotFoundError(f"Storage is not tracked: {storage_path}")
        return list(self.locations[storage_path])

    def storages_share_content(self, storage_path: str, candidate_storages: Iterable[str]) -> bool:
        """
        Check whether another storage already holds everything in storage_path.

        Args:
            storage_path: Storage whose content is checked
            candidate_storages: Storage paths to compare against

        Returns:
            True if any tracked candidate was packed from a superset of the
            sources of storage_path
        """
        if storage_path is None or candidate_storages is None:
            raise ValidationError("Storage path and candidate storages are required")

        if storage_path not in self.locations:
            return False

        sources = set(self.locations[storage_path])
        return any(
            sources.issubset(self.locations[candidate])
            for candidate in candidate_storages
            if candidate in self.locations
        )

    def restore_to_location(self, storage_paths: Iterable[str], target_dir: str):
        """
        Extract every original object of the storages into target_dir.

        Objects keep their original basenames. Nothing is extracted if any
        destination name already exists, or if two objects share a basename.

        Raises:
            NotFoundError: If a storage is not tracked
            ConflictError: If a file with the same name exists in target_dir
                or is restored twice
        """
        if storage_paths is None or target_dir is None:
            raise ValidationError("Storage paths and target directory are required")

        plan = []
        planned = set()
        for storage_path in storage_paths:
            for object_path in self.original_locations(storage_path):
                entry_name = Path(object_path).name
                if entry_name in planned:
                    raise ConflictError(
                        f"Impossible to restore to {target_dir}: {entry_name} is restored more than once"
                    )
                planned.add(entry_name)
                plan.append((storage_path, entry_name, os.path.join(target_dir, entry_name)))

        os.makedirs(target_dir, exist_ok=True)

        for _, entry_name, destination in plan:
            if os.path.exists(destination):
                raise ConflictError(
                    f"Impossible to restore to {target_dir}: {entry_name} already exists"
                )

        for storage_path, entry_name, destination in plan:
            self.compressor.extract(storage_path, entry_name, destination)

    def restore_to_original_location(self, storage_paths: Iterable[str]):
        """
        Extract every object of the storages back to its recorded path.

        Existing files at the original paths are overwritten.

        Raises:
            NotFoundError: If a storage is not tracked
        """
        if storage_paths is None:
            raise ValidationError("Storage paths are required")

        for storage_path in storage_paths:
            for object_path in self.original_locations(storage_path):
                parent = os.path.dirname(object_path)
                if parent:
                    os.makedirs(parent, exist_ok=True)
                self.compressor.extract(storage_path, Path(object_path).name, object_path)
