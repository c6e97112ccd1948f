# SPDX-License-Identifier: MIT
"""Local filesystem disk.

Content for ``path`` lives at ``<root>/<path>``; metadata, when set, lives in
a JSON sidecar at ``<root>/<path>.metadata.json``.  Sidecars never appear in
listings.
"""

from __future__ import annotations

import logging
import os
import pathlib
import shutil
import stat
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import aiofiles
import aiofiles.os
import anyio
from pydantic import ValidationError

from ..config import LocalDiskConfig
from ..exceptions import DiskConfigError, PathError, PathNotFoundError
from ..security import ensure_within_root, validate_path, validate_prefix
from .protocol import ByteStream, FileInfo, Metadata

logger = logging.getLogger("diskstore")

METADATA_SUFFIX = ".metadata.json"
_SIDECAR_FIELDS = {"content_type", "custom_headers"}

# A directory at a content path is treated as no content
_ABSENT = (FileNotFoundError, NotADirectoryError, IsADirectoryError)


def _timestamp(st: os.stat_result) -> datetime:
    return datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)


class LocalDisk:
    """Disk backed by a directory on the local filesystem.

    Args:
        config: Root directory, auto-create flag and permission bits applied
            to directories and files this disk creates.

    Raises:
        DiskConfigError: If the root cannot be created, or does not exist
            (or is not a directory) while ``create_if_not_exist`` is off.
    """

    def __init__(self, config: LocalDiskConfig) -> None:
        self._config = config
        self._dir_mode = config.effective_dir_permissions()
        self._file_mode = config.effective_file_permissions()

        root = pathlib.Path(config.path).expanduser()
        if config.create_if_not_exist:
            if not root.exists():
                try:
                    self._make_dirs(root)
                except OSError as e:
                    raise DiskConfigError(f"Failed to create disk root at {root}: {e}") from e
                logger.info("Auto-created disk root: %s", root)
            elif not root.is_dir():
                raise DiskConfigError(f"Disk root is not a directory: {root}")
        else:
            if not root.exists():
                raise DiskConfigError(f"Disk root does not exist: {root}")
            if not root.is_dir():
                raise DiskConfigError(f"Disk root is not a directory: {root}")

        self._root = root.resolve()

    @property
    def root(self) -> pathlib.Path:
        return self._root

    def __repr__(self) -> str:
        return f"LocalDisk(root={str(self._root)!r})"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve(self, op: str, path: str) -> pathlib.Path:
        valid = validate_path(path, op)
        return ensure_within_root(self._root, self._root / valid, op, path)

    @staticmethod
    def _sidecar(full: pathlib.Path) -> pathlib.Path:
        return full.with_name(full.name + METADATA_SUFFIX)

    def _opener(self, file: str, flags: int) -> int:
        return os.open(file, flags, self._file_mode)

    def _make_dirs(self, directory: pathlib.Path) -> None:
        """Create *directory* and any missing parents with the configured mode."""
        missing: list[pathlib.Path] = []
        current = directory
        while not current.exists():
            missing.append(current)
            current = current.parent
        for d in reversed(missing):
            try:
                os.mkdir(d, self._dir_mode)
            except FileExistsError:
                pass

    async def _stat_content(self, op: str, path: str, full: pathlib.Path) -> os.stat_result:
        """Stat the content at *full*.  Directories are not content and count as absent."""
        try:
            st = await aiofiles.os.stat(full)
        except _ABSENT as e:
            raise PathNotFoundError(op, path) from e
        except OSError as e:
            raise PathError(op, path, e) from e
        if not stat.S_ISREG(st.st_mode):
            raise PathNotFoundError(op, path)
        return st

    async def _write(self, op: str, path: str, full: pathlib.Path, chunks: AsyncIterable[bytes]) -> None:
        # Only errors from the destination file are wrapped; the chunk source's own errors propagate as-is
        try:
            await anyio.to_thread.run_sync(self._make_dirs, full.parent)
            f = await aiofiles.open(full, "wb", opener=self._opener)
        except OSError as e:
            raise PathError(op, path, e) from e
        try:
            async for chunk in chunks:
                try:
                    await f.write(chunk)
                except OSError as e:
                    raise PathError(op, path, e) from e
        finally:
            try:
                await f.close()
            except OSError as e:
                raise PathError(op, path, e) from e

    async def _load_metadata(self, op: str, path: str, full: pathlib.Path) -> Metadata | None:
        try:
            async with aiofiles.open(self._sidecar(full), encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PathError(op, path, e) from e
        try:
            return Metadata.model_validate_json(raw)
        except ValidationError as e:
            raise PathError(op, path, f"corrupt metadata sidecar: {e}") from e

    async def _save_metadata(self, op: str, path: str, full: pathlib.Path, metadata: Metadata) -> None:
        sidecar = self._sidecar(full)
        data = metadata.model_dump_json(include=_SIDECAR_FIELDS, indent=2)
        try:
            async with aiofiles.open(sidecar, "w", encoding="utf-8", opener=self._opener) as f:
                await f.write(data)
        except OSError as e:
            raise PathError(op, path, e) from e
        logger.debug("Wrote metadata sidecar: %s", sidecar)

    async def _drop_metadata(self, full: pathlib.Path) -> None:
        """Best-effort removal of a sidecar that no longer describes the content."""
        sidecar = self._sidecar(full)
        try:
            await aiofiles.os.remove(sidecar)
        except FileNotFoundError:
            return
        except OSError as e:
            logger.warning("Could not remove metadata sidecar %s: %s", sidecar, e)
            return
        logger.debug("Removed metadata sidecar: %s", sidecar)

    # ------------------------------------------------------------------
    # Basic operations
    # ------------------------------------------------------------------

    async def put(self, path: str, content: bytes) -> None:
        full = self._resolve("put", path)
        await self._write("put", path, full, _single(content))
        await self._drop_metadata(full)

    async def get(self, path: str) -> bytes:
        full = self._resolve("get", path)
        try:
            async with aiofiles.open(full, "rb") as f:
                return await f.read()
        except _ABSENT as e:
            raise PathNotFoundError("get", path) from e
        except OSError as e:
            raise PathError("get", path, e) from e

    async def delete(self, path: str) -> None:
        full = self._resolve("delete", path)
        try:
            await aiofiles.os.remove(full)
        except _ABSENT as e:
            raise PathNotFoundError("delete", path) from e
        except OSError as e:
            raise PathError("delete", path, e) from e
        await self._drop_metadata(full)

    # ------------------------------------------------------------------
    # Streaming operations
    # ------------------------------------------------------------------

    async def put_stream(self, path: str, chunks: AsyncIterable[bytes], metadata: Metadata | None = None) -> None:
        full = self._resolve("put_stream", path)
        await self._write("put_stream", path, full, chunks)
        if metadata is not None:
            await self._save_metadata("put_stream", path, full, metadata)
        else:
            await self._drop_metadata(full)

    @asynccontextmanager
    async def get_stream(self, path: str) -> AsyncIterator[ByteStream]:
        full = self._resolve("get_stream", path)
        try:
            f = await aiofiles.open(full, "rb")
        except _ABSENT as e:
            raise PathNotFoundError("get_stream", path) from e
        except OSError as e:
            raise PathError("get_stream", path, e) from e
        try:
            yield ByteStream(f.read)
        finally:
            await f.close()

    # ------------------------------------------------------------------
    # File operations
    # ------------------------------------------------------------------

    async def exists(self, path: str) -> bool:
        full = self._resolve("exists", path)
        try:
            await self._stat_content("exists", path, full)
        except PathNotFoundError:
            return False
        return True

    async def size(self, path: str) -> int:
        full = self._resolve("size", path)
        st = await self._stat_content("size", path, full)
        return st.st_size

    async def list(self, prefix: str = "") -> list[FileInfo]:
        valid = validate_prefix(prefix, "list")
        search = ensure_within_root(self._root, self._root / valid, "list", prefix)
        try:
            return await anyio.to_thread.run_sync(self._walk, search)
        except OSError as e:
            raise PathError("list", prefix, e) from e

    def _walk(self, search: pathlib.Path) -> list[FileInfo]:
        if not search.is_dir():
            return []

        entries: list[FileInfo] = []
        for dirpath, dirnames, filenames in os.walk(search):
            base = pathlib.Path(dirpath)
            sidecars = {name for name in filenames if name.endswith(METADATA_SUFFIX)}
            for name in dirnames + filenames:
                if name.endswith(METADATA_SUFFIX):
                    continue
                full = base / name
                try:
                    st = full.lstat()
                except OSError:
                    # Vanished or unreadable since the directory was scanned
                    logger.debug("Skipping unreadable entry: %s", full)
                    continue
                is_dir = stat.S_ISDIR(st.st_mode)
                metadata = None
                if not is_dir and name + METADATA_SUFFIX in sidecars:
                    metadata = self._read_sidecar(full, st)
                entries.append(
                    FileInfo(
                        path=full.relative_to(self._root).as_posix(),
                        size=st.st_size,
                        last_modified=_timestamp(st),
                        is_dir=is_dir,
                        metadata=metadata,
                    )
                )
        return entries

    def _read_sidecar(self, full: pathlib.Path, st: os.stat_result) -> Metadata | None:
        try:
            metadata = Metadata.model_validate_json(self._sidecar(full).read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable metadata sidecar for %s: %s", full, e)
            return None
        return metadata.model_copy(update={"size": st.st_size, "last_modified": _timestamp(st)})

    async def copy(self, source_path: str, dest_path: str) -> None:
        src = self._resolve("copy", source_path)
        dst = self._resolve("copy", dest_path)
        if src == dst:
            await self._stat_content("copy", source_path, src)
            return

        try:
            await anyio.to_thread.run_sync(self._copy_file, src, dst)
        except _SourceMissing as e:
            raise PathNotFoundError("copy", source_path) from e.__cause__
        except OSError as e:
            raise PathError("copy", dest_path, e) from e

        metadata = await self._load_metadata("copy", source_path, src)
        if metadata is not None:
            await self._save_metadata("copy", dest_path, dst, metadata)
        else:
            await self._drop_metadata(dst)

    def _copy_file(self, src: pathlib.Path, dst: pathlib.Path) -> None:
        try:
            reader = open(src, "rb")  # noqa: SIM115
        except _ABSENT as e:
            raise _SourceMissing() from e
        with reader:
            self._make_dirs(dst.parent)
            with open(dst, "wb", opener=self._opener) as writer:
                shutil.copyfileobj(reader, writer)

    async def move(self, source_path: str, dest_path: str) -> None:
        await self.copy(source_path, dest_path)
        if self._resolve("move", source_path) == self._resolve("move", dest_path):
            return
        await self.delete(source_path)

    # ------------------------------------------------------------------
    # Metadata operations
    # ------------------------------------------------------------------

    async def put_with_metadata(self, path: str, content: bytes, metadata: Metadata) -> None:
        await self.put(path, content)
        full = self._resolve("put_with_metadata", path)
        await self._save_metadata("put_with_metadata", path, full, metadata)

    async def get_metadata(self, path: str) -> Metadata | None:
        full = self._resolve("get_metadata", path)
        st = await self._stat_content("get_metadata", path, full)
        metadata = await self._load_metadata("get_metadata", path, full)
        if metadata is None:
            return None
        return metadata.model_copy(update={"size": st.st_size, "last_modified": _timestamp(st)})

    async def set_metadata(self, path: str, metadata: Metadata) -> None:
        full = self._resolve("set_metadata", path)
        await self._stat_content("set_metadata", path, full)
        await self._save_metadata("set_metadata", path, full, metadata)


class _SourceMissing(Exception):
    """Raised inside the copy worker thread when the source cannot be opened."""


async def _single(content: bytes) -> AsyncIterator[bytes]:
    yield content
