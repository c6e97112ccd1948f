# SPDX-License-Identifier: MIT
"""Configuration for diskstore.

This module handles:
- Package logger setup
- Backend configuration models with validation
"""

from __future__ import annotations

import logging
import os
import sys

from pydantic import BaseModel, field_validator

# ---------- Logging configuration ----------
LOG_LEVEL = os.getenv("DISKSTORE_LOG_LEVEL", "WARNING").upper()
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("diskstore")
logger.setLevel(LOG_LEVEL)
logger.addHandler(logging.NullHandler())


def configure_logging(level: str | None = None) -> None:
    """Send diskstore logs to stderr using the standard diskstore format.

    Libraries should not install handlers on import, so applications call
    this explicitly when they want diskstore's logs on the console.

    Args:
        level: Log level name.  Defaults to ``DISKSTORE_LOG_LEVEL``.
    """
    resolved = (level or LOG_LEVEL).upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT, stream=sys.stderr)
    logger.setLevel(resolved)


# ---------- Backend configuration ----------

DEFAULT_REGION = "us-east-1"
DEFAULT_DIR_PERMISSIONS = 0o755
DEFAULT_FILE_PERMISSIONS = 0o644


class LocalDiskConfig(BaseModel, frozen=True):
    """Settings for :class:`~diskstore.storage.local.LocalDisk`.

    ``create_if_not_exist=False`` is honored: the root must then already
    exist and be a directory.
    """

    path: str
    create_if_not_exist: bool = True
    dir_permissions: int = DEFAULT_DIR_PERMISSIONS
    file_permissions: int = DEFAULT_FILE_PERMISSIONS

    @field_validator("path")
    @classmethod
    def _validate_path(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("path is required")
        return v.strip()

    @field_validator("dir_permissions", "file_permissions")
    @classmethod
    def _validate_mode(cls, v: int) -> int:
        # 0 means "unset" and falls back to the defaults, as in older configs
        if not 0 <= v <= 0o7777:
            raise ValueError(f"Invalid permission bits: {v:o}")
        return v

    def effective_dir_permissions(self) -> int:
        return self.dir_permissions or DEFAULT_DIR_PERMISSIONS

    def effective_file_permissions(self) -> int:
        return self.file_permissions or DEFAULT_FILE_PERMISSIONS


class S3DiskConfig(BaseModel, frozen=True):
    """Settings for :class:`~diskstore.storage.s3.S3Disk`.

    Works with AWS S3 and S3-compatible services (MinIO needs ``endpoint``
    and ``use_path_style=True``).  ``prefix`` scopes every key under a fixed
    prefix for multi-tenant buckets.
    """

    bucket: str
    endpoint: str = ""
    region: str = DEFAULT_REGION
    access_key: str = ""
    secret_key: str = ""
    session_token: str = ""
    prefix: str = ""
    use_path_style: bool = False

    @field_validator("bucket")
    @classmethod
    def _validate_bucket(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("bucket name is required")
        return v.strip()

    @field_validator("region")
    @classmethod
    def _default_region(cls, v: str) -> str:
        return v.strip() or DEFAULT_REGION

    @field_validator("prefix")
    @classmethod
    def _normalize_prefix(cls, v: str) -> str:
        return v.strip().strip("/")
