# SPDX-License-Identifier: MIT
"""Exception hierarchy for diskstore.

Every error raised by a disk or by :class:`~diskstore.router.Storage` derives
from :class:`StorageError`.  Path-level failures carry the operation name and
the caller-supplied path so callers can tell *what* failed without knowing
*which* backend raised it::

    try:
        data = await storage.get("s3", "reports/q3.pdf")
    except PathNotFoundError:
        data = None
"""

from __future__ import annotations


class StorageError(Exception):
    """Base class for all diskstore errors."""


class DiskConfigError(StorageError, ValueError):
    """A backend was configured with unusable settings."""


class DiskNotFoundError(StorageError, LookupError):
    """No disk is registered under the requested name."""

    def __init__(self, disk_name: str) -> None:
        self.disk_name = disk_name
        super().__init__(f"disk not found: {disk_name}")


class PathError(StorageError):
    """An operation on a single path failed.

    Raised as-is for underlying I/O and network failures (chained to the
    original exception), and through the subclasses below for the
    conditions callers routinely branch on.

    Attributes:
        op: Operation name, e.g. ``"get"`` or ``"set_metadata"``.
        path: The path exactly as the caller supplied it.
        reason: Human-readable cause, or the underlying exception.
    """

    default_reason = "operation failed"

    def __init__(self, op: str, path: str, reason: object | None = None) -> None:
        self.op = op
        self.path = path
        self.reason = reason if reason is not None else self.default_reason
        super().__init__(f"{op} {path}: {self.reason}")


class InvalidPathError(PathError, ValueError):
    """A path or prefix failed validation (empty, traversal, null byte)."""

    default_reason = "invalid path"


class PathNotFoundError(PathError, LookupError):
    """No content exists at a validated path."""

    default_reason = "file not found"


class OperationNotSupportedError(PathError, NotImplementedError):
    """The backend cannot perform the requested operation."""

    default_reason = "operation not supported"
