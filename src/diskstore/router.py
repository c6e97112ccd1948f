# SPDX-License-Identifier: MIT
"""Named-disk router.

:class:`Storage` maps caller-chosen disk names to :class:`Disk` instances and
dispatches every operation to the named disk.  It also implements copies and
moves between two different disks by composing single-disk primitives.

Usage::

    from diskstore import LocalDisk, LocalDiskConfig, Storage

    storage = Storage()
    storage.add_disk("local", LocalDisk(LocalDiskConfig(path="/srv/files")))
    await storage.put("local", "reports/q3.txt", b"...")
    await storage.copy_between_disks("local", "archive", "reports/q3.txt", "2024/q3.txt")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import AsyncIterable
from contextlib import AbstractAsyncContextManager

from .exceptions import DiskNotFoundError
from .storage.protocol import ByteStream, Disk, FileInfo, Metadata

logger = logging.getLogger("diskstore")


class Storage:
    """Registry of named disks plus a dispatcher over them.

    The disk table is guarded by a lock held only while the table is read or
    changed, never across backend I/O.  Removing a disk does not wait for
    operations already dispatched to it.

    Args:
        disks: Optional initial ``name -> disk`` bindings.
    """

    def __init__(self, disks: dict[str, Disk] | None = None) -> None:
        self._lock = threading.Lock()
        self._disks: dict[str, Disk] = dict(disks or {})

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def add_disk(self, name: str, disk: Disk) -> None:
        """Bind *name* to *disk*, replacing any existing binding."""
        with self._lock:
            replaced = name in self._disks
            self._disks[name] = disk
        logger.info("%s disk %r -> %r", "Replaced" if replaced else "Registered", name, disk)

    def remove_disk(self, name: str) -> None:
        """Unbind *name*.  Does nothing if it is not registered."""
        with self._lock:
            removed = self._disks.pop(name, None)
        if removed is not None:
            logger.info("Removed disk %r", name)

    def has_disk(self, name: str) -> bool:
        with self._lock:
            return name in self._disks

    def disk_names(self) -> list[str]:
        with self._lock:
            return list(self._disks)

    def disk(self, name: str) -> Disk:
        """Return the disk bound to *name*.

        Raises:
            DiskNotFoundError: If no disk is registered under *name*.
        """
        with self._lock:
            d = self._disks.get(name)
        if d is None:
            raise DiskNotFoundError(name)
        return d

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close every registered disk that holds releasable resources.

        A disk that fails to close does not stop the others from closing;
        the first failure is re-raised once all disks were attempted.
        """
        with self._lock:
            disks = list(self._disks.items())
        first_error: Exception | None = None
        for name, d in disks:
            aclose = getattr(d, "aclose", None)
            if aclose is None:
                continue
            try:
                await aclose()
            except Exception as e:
                logger.warning("Failed to close disk %r: %s", name, e)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    async def __aenter__(self) -> Storage:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Basic operations
    # ------------------------------------------------------------------

    async def put(self, disk: str, path: str, content: bytes) -> None:
        await self.disk(disk).put(path, content)

    async def get(self, disk: str, path: str) -> bytes:
        return await self.disk(disk).get(path)

    async def delete(self, disk: str, path: str) -> None:
        await self.disk(disk).delete(path)

    # ------------------------------------------------------------------
    # Streaming operations
    # ------------------------------------------------------------------

    async def put_stream(
        self,
        disk: str,
        path: str,
        chunks: AsyncIterable[bytes],
        metadata: Metadata | None = None,
    ) -> None:
        await self.disk(disk).put_stream(path, chunks, metadata)

    def get_stream(self, disk: str, path: str) -> AbstractAsyncContextManager[ByteStream]:
        """Return the named disk's stream context manager for *path*.

        Raises :class:`DiskNotFoundError` immediately; path errors surface
        when the ``async with`` block is entered.
        """
        return self.disk(disk).get_stream(path)

    # ------------------------------------------------------------------
    # File operations
    # ------------------------------------------------------------------

    async def exists(self, disk: str, path: str) -> bool:
        return await self.disk(disk).exists(path)

    async def size(self, disk: str, path: str) -> int:
        return await self.disk(disk).size(path)

    async def list(self, disk: str, prefix: str = "") -> list[FileInfo]:
        return await self.disk(disk).list(prefix)

    async def copy(self, disk: str, source_path: str, dest_path: str) -> None:
        await self.disk(disk).copy(source_path, dest_path)

    async def move(self, disk: str, source_path: str, dest_path: str) -> None:
        await self.disk(disk).move(source_path, dest_path)

    # ------------------------------------------------------------------
    # Metadata operations
    # ------------------------------------------------------------------

    async def put_with_metadata(self, disk: str, path: str, content: bytes, metadata: Metadata) -> None:
        await self.disk(disk).put_with_metadata(path, content, metadata)

    async def get_metadata(self, disk: str, path: str) -> Metadata | None:
        return await self.disk(disk).get_metadata(path)

    async def set_metadata(self, disk: str, path: str, metadata: Metadata) -> None:
        await self.disk(disk).set_metadata(path, metadata)

    # ------------------------------------------------------------------
    # Cross-disk operations
    # ------------------------------------------------------------------

    async def copy_between_disks(self, source_disk: str, dest_disk: str, source_path: str, dest_path: str) -> None:
        """Copy content (and metadata, when readable) from one disk to another.

        The full content is read from the source before anything is written
        to the destination.  Not atomic: if the destination write fails, the
        source is untouched and the destination is left in whatever state its
        own ``put`` left it.  A failure to read source metadata is treated as
        "no metadata".
        """
        src = self.disk(source_disk)
        dst = self.disk(dest_disk)

        content = await src.get(source_path)

        metadata: Metadata | None
        try:
            metadata = await src.get_metadata(source_path)
        except Exception as e:
            logger.warning(
                "Copying %s:%s without metadata, metadata read failed: %s",
                source_disk,
                source_path,
                e,
            )
            metadata = None

        if metadata is not None:
            await dst.put_with_metadata(dest_path, content, metadata)
        else:
            await dst.put(dest_path, content)
        logger.debug("Copied %s:%s -> %s:%s (%d bytes)", source_disk, source_path, dest_disk, dest_path, len(content))

    async def move_between_disks(self, source_disk: str, dest_disk: str, source_path: str, dest_path: str) -> None:
        """Copy across disks, then delete the source.

        If the delete fails the content exists on both disks; the copy is not
        rolled back.
        """
        src = self.disk(source_disk)
        if src is self.disk(dest_disk):
            # Same backend on both sides: a plain move cannot delete its own copy
            await src.move(source_path, dest_path)
            return
        await self.copy_between_disks(source_disk, dest_disk, source_path, dest_path)
        await self.delete(source_disk, source_path)
