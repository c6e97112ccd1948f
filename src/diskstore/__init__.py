# SPDX-License-Identifier: MIT
"""diskstore: one file-storage API over local disks and S3-compatible buckets.

Usage::

    from diskstore import Storage, storage_from_env

    async with storage_from_env() as storage:
        await storage.put("local", "a/b/c.txt", b"hi")
        entries = await storage.list("local", "a")
"""

from .config import LocalDiskConfig, S3DiskConfig, configure_logging
from .exceptions import (
    DiskConfigError,
    DiskNotFoundError,
    InvalidPathError,
    OperationNotSupportedError,
    PathError,
    PathNotFoundError,
    StorageError,
)
from .router import Storage
from .security import validate_path, validate_prefix
from .storage import ByteStream, Disk, FileInfo, LocalDisk, Metadata
from .storage.factory import create_disk, disk_config_from_env, storage_from_env

__all__ = [
    "ByteStream",
    "Disk",
    "DiskConfigError",
    "DiskNotFoundError",
    "FileInfo",
    "InvalidPathError",
    "LocalDisk",
    "LocalDiskConfig",
    "Metadata",
    "OperationNotSupportedError",
    "PathError",
    "PathNotFoundError",
    "S3DiskConfig",
    "Storage",
    "StorageError",
    "configure_logging",
    "create_disk",
    "disk_config_from_env",
    "storage_from_env",
    "validate_path",
    "validate_prefix",
]
