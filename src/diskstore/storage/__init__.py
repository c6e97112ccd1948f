# SPDX-License-Identifier: MIT
"""Storage backends for diskstore.

Every backend implements the :class:`Disk` protocol so callers can switch
between local disk and S3-compatible object storage without code changes.

Usage::

    from diskstore.storage import LocalDisk
    from diskstore.config import LocalDiskConfig

    disk = LocalDisk(LocalDiskConfig(path="/srv/files"))
    await disk.put("hero.png", image_bytes)

The S3 backend lives in :mod:`diskstore.storage.s3` and needs the ``s3``
extra (boto3).
"""

from .local import METADATA_SUFFIX, LocalDisk
from .protocol import ByteStream, Disk, FileInfo, Metadata

__all__ = [
    "METADATA_SUFFIX",
    "ByteStream",
    "Disk",
    "FileInfo",
    "LocalDisk",
    "Metadata",
]
