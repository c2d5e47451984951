"""
Local filesystem repository for storage archives.

Archives are laid out per job:
{base_path}/{job_id}/{storage_id}.{ext}
"""

import os
import shutil
from pathlib import Path
from typing import List, Union

from .compression import Compressor, get_archive_size
from .errors import CompressionError, NotFoundError, StorageError


class LocalFilesRepository:
    """
    Repository keeping storage archives in a local directory.

    Source objects are read straight from the local filesystem; the compressor
    decides the archive format and file extension.
    """

    def __init__(self, base_path: str, compressor: Compressor = None):
        """
        Initialize local repository.

        Args:
            base_path: Base directory for storage archives
            compressor: Compressor used to pack archives (default: zip)
        """
        self.base_path = Path(base_path)
        self.compressor = compressor or Compressor()

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create repository directory: {e}")

    def create_job_namespace(self, job_id: str) -> str:
        """
        Create the directory holding a job's storages.

        Safe to call again for a job that already has a namespace.

        Args:
            job_id: Backup job identifier

        Returns:
            Path of the job directory
        """
        job_path = self.base_path / str(job_id)

        try:
            job_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create namespace for job {job_id}: {e}")

        return str(job_path)

    def object_exists(self, full_name: str) -> bool:
        """Check whether a source object exists on the filesystem."""
        return os.path.exists(full_name)

    def create_storage(
        self,
        sources: Union[str, List[str]],
        job_id: str,
        storage_id: str
    ) -> str:
        """
        Pack sources into one archive under the job namespace.

        Args:
            sources: A single source path or a list of source paths
            job_id: Backup job identifier
            storage_id: Unique identifier of the new storage

        Returns:
            Full path of the created archive

        Raises:
            StorageError: If a source is unreadable or the archive cannot be written
        """
        source_paths = [sources] if isinstance(sources, str) else list(sources)

        for source_path in source_paths:
            if not os.access(source_path, os.R_OK):
                raise StorageError(f"Source is not readable: {source_path}")

        job_path = Path(self.create_job_namespace(job_id))
        archive_path = job_path / f"{storage_id}.{self.compressor.extension}"

        try:
            return self.compressor.pack(source_paths, str(archive_path))
        except CompressionError:
            raise
        except OSError as e:
            raise StorageError(f"Failed to create storage {storage_id}: {e}")

    def delete_storages(self, storage_names: List[str]):
        """
        Delete storage archives.

        Every name is checked before any file is removed.

        Args:
            storage_names: Full paths returned by create_storage

        Raises:
            NotFoundError: If a storage does not exist
            StorageError: If deletion fails
        """
        missing = [name for name in storage_names if not os.path.isfile(name)]
        if missing:
            raise NotFoundError(f"Storage not found: {missing[0]}")

        for name in storage_names:
            try:
                os.remove(name)
            except PermissionError as e:
                raise StorageError(f"Permission denied deleting {name}: {e}")
            except OSError as e:
                raise StorageError(f"Failed to delete storage {name}: {e}")

    def storage_exists(self, storage_name: str) -> bool:
        return os.path.isfile(storage_name)

    def get_storage_size(self, storage_name: str) -> int:
        """Size of a storage archive in bytes."""
        return get_archive_size(storage_name)

    def delete_job_namespace(self, job_id: str):
        """
        Remove a job's directory with every archive left in it.

        Missing namespaces are ignored.

        Raises:
            StorageError: If the directory cannot be removed
        """
        job_path = self.base_path / str(job_id)
        if not job_path.exists():
            return

        try:
            shutil.rmtree(job_path)
        except OSError as e:
            raise StorageError(f"Failed to delete namespace for job {job_id}: {e}")
