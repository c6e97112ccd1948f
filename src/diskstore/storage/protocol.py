# SPDX-License-Identifier: MIT
"""Disk protocol and shared types.

Defines the interface that all storage backends must implement.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

DEFAULT_CHUNK_SIZE = 64 * 1024


class Metadata(BaseModel, frozen=True):
    """Descriptive attributes recorded alongside a file's content.

    Only ``content_type`` and ``custom_headers`` are written by callers;
    ``size`` and ``last_modified`` are filled in by the backend when the
    metadata is read back.
    """

    content_type: str = ""
    size: int = 0
    last_modified: datetime | None = None
    custom_headers: dict[str, str] = Field(default_factory=dict)


@dataclass(frozen=True)
class FileInfo:
    """One entry returned by :meth:`Disk.list`."""

    path: str
    size: int
    last_modified: datetime | None
    is_dir: bool = False
    metadata: Metadata | None = None


class ByteStream:
    """Sequential reader over an open byte source.

    Supports ``await stream.read(n)`` and ``async for chunk in stream``.
    The owning context manager (see :meth:`Disk.get_stream`) closes the
    underlying handle; this object only reads from it.
    """

    def __init__(self, read: Callable[[int], Awaitable[bytes]], chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._read = read
        self._chunk_size = chunk_size

    async def read(self, size: int = -1) -> bytes:
        return await self._read(size)

    def __aiter__(self) -> ByteStream:
        return self

    async def __anext__(self) -> bytes:
        chunk = await self._read(self._chunk_size)
        if not chunk:
            raise StopAsyncIteration
        return chunk


@runtime_checkable
class Disk(Protocol):
    """Protocol every storage backend implements.

    Paths are relative to the backend's root and are validated by the
    backend itself (see :mod:`diskstore.security`).  Failures raise
    :class:`~diskstore.exceptions.PathError` subclasses carrying the
    operation name and the caller's path.
    """

    # ------------------------------------------------------------------
    # Basic operations
    # ------------------------------------------------------------------

    async def put(self, path: str, content: bytes) -> None:
        """Write *content*, replacing anything already stored at *path*."""
        ...

    async def get(self, path: str) -> bytes:
        """Read the full content at *path*.

        Raises:
            PathNotFoundError: If nothing is stored at *path*.
            InvalidPathError: If *path* fails validation.
        """
        ...

    async def delete(self, path: str) -> None:
        """Remove the content at *path* (and its metadata).

        Raises:
            PathNotFoundError: If nothing is stored at *path*.
        """
        ...

    # ------------------------------------------------------------------
    # Streaming operations
    # ------------------------------------------------------------------

    async def put_stream(self, path: str, chunks: AsyncIterable[bytes], metadata: Metadata | None = None) -> None:
        """Write content from an async chunk source, then record *metadata* if given."""
        ...

    def get_stream(self, path: str) -> AbstractAsyncContextManager[ByteStream]:
        """Return a context manager yielding a :class:`ByteStream` over *path*.

        The underlying handle is released when the ``async with`` block exits.
        """
        ...

    # ------------------------------------------------------------------
    # File operations
    # ------------------------------------------------------------------

    async def exists(self, path: str) -> bool:
        """Return whether file content exists at *path*.  Absence is not an error.

        A directory is not content: ``exists`` reports ``False`` for it and
        content reads raise :class:`PathNotFoundError`.
        """
        ...

    async def size(self, path: str) -> int:
        """Byte length of the content at *path*."""
        ...

    async def list(self, prefix: str = "") -> list[FileInfo]:
        """List files and directories below *prefix*, in no particular order."""
        ...

    async def copy(self, source_path: str, dest_path: str) -> None:
        """Duplicate content and metadata from *source_path* to *dest_path*."""
        ...

    async def move(self, source_path: str, dest_path: str) -> None:
        """Copy, then delete the source.  A failed delete leaves both copies."""
        ...

    # ------------------------------------------------------------------
    # Metadata operations
    # ------------------------------------------------------------------

    async def put_with_metadata(self, path: str, content: bytes, metadata: Metadata) -> None:
        """Write *content* and record *metadata* for it."""
        ...

    async def get_metadata(self, path: str) -> Metadata | None:
        """Return recorded metadata, or ``None`` if none was ever set."""
        ...

    async def set_metadata(self, path: str, metadata: Metadata) -> None:
        """Replace the metadata for existing content at *path*.

        Raises:
            PathNotFoundError: If nothing is stored at *path*.
        """
        ...
