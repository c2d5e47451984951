"""
Error taxonomy shared by the backup core.

All domain errors derive from BackupError so callers (executor, API routes)
can catch the whole family in one place.
"""


class BackupError(Exception):
    """Base class for backup domain errors."""
    pass


class ValidationError(BackupError):
    """Raised for invalid arguments or policy violations."""
    pass


class DuplicateError(ValidationError):
    """Raised when an object is already tracked by a backup job."""
    pass


class NotFoundError(BackupError):
    """Raised when a job object, restore point or storage is not tracked."""
    pass


class ConflictError(BackupError):
    """Raised when a restore would overwrite an existing file."""
    pass


class StorageError(BackupError):
    """Raised when a filesystem operation on the repository fails."""
    pass


class CompressionError(StorageError):
    """Raised when archive creation or extraction fails."""
    pass
