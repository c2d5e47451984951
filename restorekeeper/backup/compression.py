"""
Compression handlers for storage archives.

Supports multiple formats:
- zip: Standard zip compression
- tar.gz: Gzip compressed tar
- tar.bz2: Bzip2 compressed tar
- tar.xz: LZMA compressed tar
- none: No compression (tar only)

Every source is stored under its basename, so an entry can be extracted back
by the basename of the path it was packed from.
"""

import os
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import List, Optional

from .errors import CompressionError, NotFoundError


# Format -> (file extension, tarfile write mode or None for zip)
FORMATS = {
    'zip': ('zip', None),
    'tar.gz': ('tar.gz', 'w:gz'),
    'tar.bz2': ('tar.bz2', 'w:bz2'),
    'tar.xz': ('tar.xz', 'w:xz'),
    'none': ('tar', 'w'),
}


class Compressor:
    """
    Packs source paths into one archive and extracts single entries back out.

    The repository layers only talk to this class, so any object exposing
    ``extension``, ``pack`` and ``extract`` can be injected instead.
    """

    def __init__(self, compression_format: str = 'zip'):
        """
        Initialize compressor.

        Args:
            compression_format: Format to use ('zip', 'tar.gz', 'tar.bz2', 'tar.xz', 'none')

        Raises:
            ValueError: If compression_format is invalid
        """
        if compression_format not in FORMATS:
            raise ValueError(
                f"Invalid compression format: {compression_format}. "
                f"Valid options: {list(FORMATS.keys())}"
            )

        self.compression_format = compression_format
        self.extension = FORMATS[compression_format][0]

    def pack(self, source_paths: List[str], archive_path: str) -> str:
        """
        Create an archive at archive_path containing every source path.

        Args:
            source_paths: List of file/directory paths to include
            archive_path: Full path of the archive file to write

        Returns:
            archive_path

        Raises:
            CompressionError: If a source is missing, two sources share a
                basename, or writing the archive fails
        """
        if not source_paths:
            raise CompressionError("No source paths provided")

        names = [Path(path).name for path in source_paths]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise CompressionError(
                f"Sources share archive entry names: {', '.join(duplicates)}"
            )

        try:
            if self.compression_format == 'zip':
                _create_zip(source_paths, archive_path)
            else:
                _create_tar(source_paths, archive_path, FORMATS[self.compression_format][1])
            return archive_path
        except Exception as e:
            # Clean up partial archive on failure
            if os.path.exists(archive_path):
                try:
                    os.remove(archive_path)
                except OSError:
                    pass
            if isinstance(e, CompressionError):
                raise
            raise CompressionError(f"Failed to create archive: {e}")

    def extract(self, archive_path: str, entry_name: str, dest_path: str):
        """
        Extract one entry of an archive to dest_path.

        A file entry is written to dest_path itself; a directory entry is
        written as a tree rooted at dest_path. Existing files are overwritten.

        Args:
            archive_path: Path to the archive file
            entry_name: Basename the entry was packed under
            dest_path: Destination path for the entry

        Raises:
            NotFoundError: If the archive has no such entry
            CompressionError: If the archive cannot be read
        """
        if not os.path.exists(archive_path):
            raise NotFoundError(f"Archive not found: {archive_path}")

        try:
            if self.compression_format == 'zip':
                found = _extract_from_zip(archive_path, entry_name, dest_path)
            else:
                found = _extract_from_tar(archive_path, entry_name, dest_path)
        except (CompressionError, NotFoundError):
            raise
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
            raise CompressionError(f"Failed to extract {entry_name} from {archive_path}: {e}")

        if not found:
            raise NotFoundError(f"Entry {entry_name} not found in {archive_path}")


def _create_zip(source_paths: List[str], archive_path: str):
    """
    Create a ZIP archive.

    Args:
        source_paths: List of paths to include
        archive_path: Output archive path
    """
    with zipfile.ZipFile(archive_path, 'w', zipfile.ZIP_DEFLATED) as zipf:
        for source_path in source_paths:
            source = Path(source_path)

            if source.is_file():
                zipf.write(source, source.name)
            elif source.is_dir():
                _add_directory_to_zip(zipf, source)
            else:
                raise CompressionError(f"Path does not exist: {source_path}")


def _add_directory_to_zip(zipf: zipfile.ZipFile, directory: Path):
    """
    Recursively add directory to zip archive.

    Args:
        zipf: ZipFile object
        directory: Directory to add
    """
    # Explicit entry so empty directories survive a round trip
    zipf.writestr(f"{directory.name}/", '')
    for item in sorted(directory.rglob('*')):
        relative_path = item.relative_to(directory.parent).as_posix()
        if item.is_dir():
            zipf.writestr(f"{relative_path}/", '')
        elif item.is_file():
            zipf.write(item, relative_path)


def _create_tar(source_paths: List[str], archive_path: str, mode: str):
    """
    Create a TAR archive with optional compression.

    Args:
        source_paths: List of paths to include
        archive_path: Output archive path
        mode: tarfile write mode ('w:gz', 'w:bz2', 'w:xz', 'w')
    """
    with tarfile.open(archive_path, mode) as tar:
        for source_path in source_paths:
            source = Path(source_path)

            if not source.exists():
                raise CompressionError(f"Path does not exist: {source_path}")

            tar.add(source, arcname=source.name, recursive=True)


def _relative_to_entry(member_name: str, entry_name: str) -> Optional[str]:
    """Return member path relative to the entry, or None if outside it."""
    member_name = member_name.rstrip('/')
    if member_name == entry_name:
        return ''
    if member_name.startswith(entry_name + '/'):
        return member_name[len(entry_name) + 1:]
    return None


def _target_path(dest_path: str, relative: str) -> Path:
    if not relative:
        return Path(dest_path)
    if '..' in Path(relative).parts or Path(relative).is_absolute():
        raise CompressionError(f"Unsafe archive member path: {relative}")
    return Path(dest_path) / relative


def _extract_from_zip(archive_path: str, entry_name: str, dest_path: str) -> bool:
    found = False
    with zipfile.ZipFile(archive_path, 'r') as zipf:
        for info in zipf.infolist():
            relative = _relative_to_entry(info.filename, entry_name)
            if relative is None:
                continue

            found = True
            target = _target_path(dest_path, relative)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue

            target.parent.mkdir(parents=True, exist_ok=True)
            with zipf.open(info) as src, open(target, 'wb') as dst:
                shutil.copyfileobj(src, dst)
    return found


def _extract_from_tar(archive_path: str, entry_name: str, dest_path: str) -> bool:
    found = False
    with tarfile.open(archive_path, 'r:*') as tar:
        for member in tar.getmembers():
            relative = _relative_to_entry(member.name, entry_name)
            if relative is None:
                continue

            found = True
            target = _target_path(dest_path, relative)
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
            elif member.isfile():
                target.parent.mkdir(parents=True, exist_ok=True)
                src = tar.extractfile(member)
                with src, open(target, 'wb') as dst:
                    shutil.copyfileobj(src, dst)
            # Links and special files are not restored
    return found


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Args:
        archive_path: Path to the archive file

    Returns:
        File size in bytes

    Raises:
        NotFoundError: If file doesn't exist
        CompressionError: If file cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise NotFoundError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise CompressionError(f"Failed to get archive size: {e}")
