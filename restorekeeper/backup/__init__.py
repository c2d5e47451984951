"""
Backup module for Restorekeeper.

This module handles the core backup functionality including:
- Compression (archive packing and single-entry extraction)
- Repository (local storage archives, location tracking)
- Storage creation algorithms
- Backup jobs and restore points
- Retention policy enforcement
- Execution orchestration
"""

from .errors import (
    BackupError,
    ValidationError,
    DuplicateError,
    NotFoundError,
    ConflictError,
    StorageError,
    CompressionError
)
from .compression import Compressor
from .repository import LocalFilesRepository
from .extended_repository import ExtendedRepository
from .algorithms import SingleStorageAlgorithm, SplitStoragesAlgorithm, create_algorithm
from .entities import JobObject, Storage, RestorePoint, Backup
from .job import BackupJob
from .retention import (
    DeleteUnsharedStoragesAlgorithm,
    ControllerByCount,
    ControllerByAge,
    ControllerBySize,
    HybridController,
    create_controller
)
from .serialization import dump_job, load_job, dump_repository, load_repository

__all__ = [
    'BackupError',
    'ValidationError',
    'DuplicateError',
    'NotFoundError',
    'ConflictError',
    'StorageError',
    'CompressionError',
    'Compressor',
    'LocalFilesRepository',
    'ExtendedRepository',
    'SingleStorageAlgorithm',
    'SplitStoragesAlgorithm',
    'create_algorithm',
    'JobObject',
    'Storage',
    'RestorePoint',
    'Backup',
    'BackupJob',
    'DeleteUnsharedStoragesAlgorithm',
    'ControllerByCount',
    'ControllerByAge',
    'ControllerBySize',
    'HybridController',
    'create_controller',
    'dump_job',
    'load_job',
    'dump_repository',
    'load_repository'
]
