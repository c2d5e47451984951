"""
Storage creation algorithms.

Supports:
- SingleStorageAlgorithm: every job object goes into one archive
- SplitStoragesAlgorithm: one archive per job object
"""

import logging
import uuid
from typing import List

from .entities import Storage
from .errors import BackupError, ValidationError

logger = logging.getLogger(__name__)


class StorageCreationAlgorithm:
    """
    Base class for storage creation strategies.

    Subclasses decide how source paths are grouped into archives by
    implementing _group_sources.
    """

    name = None

    def create_storages(self, repository, source_paths: List[str], job_id: str) -> List[Storage]:
        """
        Create storages for the given source paths.

        Args:
            repository: Repository that writes the archives
            source_paths: Full paths of the job objects
            job_id: Backup job identifier

        Returns:
            List of created storages (empty if there is nothing to pack)

        Raises:
            StorageError: If an archive cannot be created. Storages written
                earlier in the same call are removed first.
        """
        storages = []

        try:
            for group in self._group_sources(list(source_paths)):
                storage_path = repository.create_storage(group, job_id, str(uuid.uuid4()))
                sources = [group] if isinstance(group, str) else group
                storages.append(Storage(storage_path, sources))
        except BackupError:
            self._discard(repository, storages)
            raise

        return storages

    def _group_sources(self, source_paths: List[str]) -> list:
        raise NotImplementedError

    def _discard(self, repository, storages: List[Storage]):
        if not storages:
            return
        try:
            repository.delete_storages([storage.full_name for storage in storages])
        except BackupError as e:
            logger.warning(f"Failed to remove partial storages: {e}")

    def __repr__(self):
        return f'<{self.__class__.__name__}>'


class SingleStorageAlgorithm(StorageCreationAlgorithm):
    """Packs all job objects into a single archive."""

    name = 'single'

    def _group_sources(self, source_paths):
        return [source_paths] if source_paths else []


class SplitStoragesAlgorithm(StorageCreationAlgorithm):
    """Packs each job object into its own archive."""

    name = 'split'

    def _group_sources(self, source_paths):
        # Plain paths go through the single-source create_storage form
        return list(source_paths)


ALGORITHMS = {
    SingleStorageAlgorithm.name: SingleStorageAlgorithm,
    SplitStoragesAlgorithm.name: SplitStoragesAlgorithm,
}


def create_algorithm(name: str) -> StorageCreationAlgorithm:
    """
    Factory function to create a storage creation algorithm.

    Args:
        name: 'single' or 'split'

    Returns:
        Algorithm instance

    Raises:
        ValidationError: If name is unknown
    """
    if name not in ALGORITHMS:
        raise ValidationError(
            f"Invalid storage algorithm: {name}. Valid options: {list(ALGORITHMS.keys())}"
        )
    return ALGORITHMS[name]()
