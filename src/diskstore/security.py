# SPDX-License-Identifier: MIT
"""Path validation shared by every disk.

All backends call :func:`validate_path` / :func:`validate_prefix` before
deriving a physical location from caller input.  Normalized paths are
forward-slash separated and relative to the disk root.

A path that normalizes to the root itself (``""``, ``"."``, ``"/"``,
``"a/.."``) has no referent and is rejected by :func:`validate_path`; the
same inputs are accepted by :func:`validate_prefix` and mean "everything".
"""

from __future__ import annotations

import pathlib
import posixpath

from .exceptions import InvalidPathError

_TRAVERSAL_PATTERNS = ("../", "..\\")


def _normalize(raw: str, op: str) -> str:
    if "\x00" in raw:
        raise InvalidPathError(op, raw, "null byte detected")

    cleaned = posixpath.normpath(raw)
    # POSIX keeps a leading "//" as-is; collapse it so stripping one
    # separator below always yields a relative path.
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")

    if cleaned == ".." or cleaned.startswith(_TRAVERSAL_PATTERNS):
        raise InvalidPathError(op, raw, "directory traversal detected")
    if any(p in text for text in (raw, cleaned) for p in _TRAVERSAL_PATTERNS):
        raise InvalidPathError(op, raw, "directory traversal detected")

    if cleaned.startswith(("/", "\\")):
        cleaned = cleaned[1:]
    if cleaned == ".":
        cleaned = ""
    return cleaned


def validate_path(raw: str, op: str = "validate") -> str:
    """Normalize a content path, rejecting anything unsafe.

    Args:
        raw: Caller-supplied path.
        op: Operation name recorded on the raised error.

    Returns:
        The cleaned, root-relative path.

    Raises:
        InvalidPathError: If the path is empty, refers to the root, contains
            a traversal segment, or contains a null byte.
    """
    if not raw:
        raise InvalidPathError(op, raw, "path cannot be empty")
    cleaned = _normalize(raw, op)
    if not cleaned:
        raise InvalidPathError(op, raw, "path refers to the disk root")
    return cleaned


def validate_prefix(raw: str, op: str = "validate") -> str:
    """Normalize a listing prefix.  Empty input yields ``""`` (list everything)."""
    if not raw:
        return ""
    return _normalize(raw, op)


def ensure_within_root(root: pathlib.Path, candidate: pathlib.Path, op: str, path: str) -> pathlib.Path:
    """Reject *candidate* if it resolves outside *root* (e.g. via a symlink).

    *root* must already be resolved.  Returns *candidate* unchanged.
    """
    try:
        candidate.resolve().relative_to(root)
    except ValueError as e:
        raise InvalidPathError(op, path, "path escapes the disk root") from e
    return candidate
