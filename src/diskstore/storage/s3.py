# SPDX-License-Identifier: MIT
"""S3-compatible object storage disk.

Wraps any S3-compatible service through boto3 (AWS works out of the box;
MinIO needs ``endpoint`` and ``use_path_style``).  boto3 is synchronous, so
every request runs in a worker thread and a cancelled caller returns
immediately instead of waiting for the request to finish.

Metadata is stored natively on the object: the content type plus the
user-metadata map.  S3 cannot edit attributes in place, so
:meth:`S3Disk.set_metadata` copies the object onto itself with replaced
attributes.
"""

from __future__ import annotations

import functools
import logging
import tempfile
from collections.abc import AsyncIterable, AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, TypeVar

import anyio
import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import S3DiskConfig
from ..exceptions import PathError, PathNotFoundError
from ..security import validate_path, validate_prefix
from .protocol import ByteStream, FileInfo, Metadata

logger = logging.getLogger("diskstore")

T = TypeVar("T")

# Chunks for put_stream stay in memory up to this size, then spill to disk
SPOOL_MAX_SIZE = 8 * 1024 * 1024

# S3 assigns this when an object is written without a content type
DEFAULT_CONTENT_TYPE = "binary/octet-stream"

_MISSING_CODES = frozenset({"NoSuchKey", "NotFound", "404"})

# User-metadata key recorded by every metadata-bearing write.  Its value says
# whether the caller supplied a content type, so an explicit empty or
# default type reads back unchanged.  Never returned in custom_headers.
METADATA_MARKER = "diskstore-metadata"
_TYPED = "typed"
_UNTYPED = "untyped"


def _is_missing(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _MISSING_CODES


def _newer(candidate: datetime | None, current: datetime | None) -> bool:
    return candidate is not None and (current is None or candidate > current)


def _object_args(metadata: Metadata | None) -> dict[str, Any]:
    """Translate metadata into put/copy request attributes."""
    args: dict[str, Any] = {}
    if metadata is None:
        return args
    if metadata.content_type:
        args["ContentType"] = metadata.content_type
    args["Metadata"] = {
        **metadata.custom_headers,
        METADATA_MARKER: _TYPED if metadata.content_type else _UNTYPED,
    }
    return args


class S3Disk:
    """Disk backed by an S3 bucket, optionally scoped to a key prefix.

    Args:
        config: Bucket, region, endpoint, credentials and key prefix.
        client: Pre-built boto3 S3 client.  Built from *config* when omitted.
    """

    def __init__(self, config: S3DiskConfig, client: Any | None = None) -> None:
        self._config = config
        self._bucket = config.bucket
        self._prefix = config.prefix
        self._client = client if client is not None else self._build_client(config)

    @staticmethod
    def _build_client(config: S3DiskConfig) -> Any:
        addressing = "path" if config.use_path_style else "auto"
        return boto3.client(
            "s3",
            region_name=config.region,
            endpoint_url=config.endpoint or None,  # leave empty for AWS
            aws_access_key_id=config.access_key or None,
            aws_secret_access_key=config.secret_key or None,
            aws_session_token=config.session_token or None,
            config=BotoConfig(s3={"addressing_style": addressing}),
        )

    def __repr__(self) -> str:
        return f"S3Disk(bucket={self._bucket!r}, prefix={self._prefix!r})"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close the underlying boto3 client and its connection pool."""
        await anyio.to_thread.run_sync(self._client.close)

    async def __aenter__(self) -> S3Disk:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Key helpers
    # ------------------------------------------------------------------

    def _key(self, valid_path: str) -> str:
        return f"{self._prefix}/{valid_path}" if self._prefix else valid_path

    def _strip(self, key: str) -> str:
        if self._prefix and key.startswith(self._prefix + "/"):
            return key[len(self._prefix) + 1 :]
        return key

    # ------------------------------------------------------------------
    # Request helper
    # ------------------------------------------------------------------

    async def _call(self, op: str, path: str, fn: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
        """Run a blocking boto3 call in a worker thread, translating its errors."""
        try:
            return await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs), abandon_on_cancel=True)
        except ClientError as e:
            if _is_missing(e):
                raise PathNotFoundError(op, path) from e
            raise PathError(op, path, e) from e
        except (BotoCoreError, Boto3Error) as e:
            raise PathError(op, path, e) from e

    async def _head(self, op: str, path: str, key: str) -> dict[str, Any]:
        return await self._call(op, path, self._client.head_object, Bucket=self._bucket, Key=key)

    # ------------------------------------------------------------------
    # Basic operations
    # ------------------------------------------------------------------

    async def put(self, path: str, content: bytes) -> None:
        key = self._key(validate_path(path, "put"))
        await self._call("put", path, self._client.put_object, Bucket=self._bucket, Key=key, Body=content)

    async def get(self, path: str) -> bytes:
        key = self._key(validate_path(path, "get"))
        resp = await self._call("get", path, self._client.get_object, Bucket=self._bucket, Key=key)
        body = resp["Body"]
        try:
            return await self._call("get", path, body.read)
        finally:
            body.close()

    async def delete(self, path: str) -> None:
        key = self._key(validate_path(path, "delete"))
        # DeleteObject succeeds for absent keys, so check first
        await self._head("delete", path, key)
        await self._call("delete", path, self._client.delete_object, Bucket=self._bucket, Key=key)

    # ------------------------------------------------------------------
    # Streaming operations
    # ------------------------------------------------------------------

    async def put_stream(self, path: str, chunks: AsyncIterable[bytes], metadata: Metadata | None = None) -> None:
        key = self._key(validate_path(path, "put_stream"))
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as spool:
            # Writes past SPOOL_MAX_SIZE hit the disk, so keep them off the event loop
            async for chunk in chunks:
                await anyio.to_thread.run_sync(spool.write, chunk)
            await anyio.to_thread.run_sync(spool.seek, 0)
            extra = _object_args(metadata)
            await self._call(
                "put_stream",
                path,
                self._client.upload_fileobj,
                spool,
                self._bucket,
                key,
                ExtraArgs=extra or None,
            )

    @asynccontextmanager
    async def get_stream(self, path: str) -> AsyncIterator[ByteStream]:
        key = self._key(validate_path(path, "get_stream"))
        resp = await self._call("get_stream", path, self._client.get_object, Bucket=self._bucket, Key=key)
        body = resp["Body"]

        async def read(size: int) -> bytes:
            return await self._call("get_stream", path, body.read, None if size < 0 else size)

        try:
            yield ByteStream(read)
        finally:
            body.close()

    # ------------------------------------------------------------------
    # File operations
    # ------------------------------------------------------------------

    async def exists(self, path: str) -> bool:
        key = self._key(validate_path(path, "exists"))
        try:
            await self._head("exists", path, key)
        except PathNotFoundError:
            return False
        return True

    async def size(self, path: str) -> int:
        key = self._key(validate_path(path, "size"))
        head = await self._head("size", path, key)
        return int(head.get("ContentLength", 0))

    async def list(self, prefix: str = "") -> list[FileInfo]:
        """List objects below *prefix*, following every continuation page.

        A non-empty prefix is treated as a directory.  S3 has no real
        directories, so one ``is_dir`` entry is synthesized for each
        intermediate key segment below the prefix.
        """
        valid = validate_prefix(prefix, "list")
        search = f"{valid}/" if valid else ""
        key_prefix = self._key(search)
        depth = len(valid.split("/")) if valid else 0

        paginator = self._client.get_paginator("list_objects_v2")
        pages = iter(paginator.paginate(Bucket=self._bucket, Prefix=key_prefix))

        files: list[FileInfo] = []
        dirs: dict[str, datetime | None] = {}
        page_count = 0
        while True:
            page = await self._call("list", prefix, next, pages, None)
            if page is None:
                break
            page_count += 1
            for obj in page.get("Contents", []):
                rel = self._strip(obj["Key"])
                modified = obj.get("LastModified")
                placeholder = rel.endswith("/")
                rel = rel.rstrip("/")
                if not rel or rel == valid:
                    continue

                parts = rel.split("/")
                last = len(parts) if placeholder else len(parts) - 1
                for i in range(depth + 1, last + 1):
                    d = "/".join(parts[:i])
                    if d not in dirs or _newer(modified, dirs[d]):
                        dirs[d] = modified
                if not placeholder:
                    files.append(FileInfo(path=rel, size=int(obj.get("Size", 0)), last_modified=modified))

        logger.debug("Listed %d objects in %d page(s) under %r", len(files), page_count, key_prefix)
        files.extend(FileInfo(path=d, size=0, last_modified=ts, is_dir=True) for d, ts in dirs.items())
        return files

    async def copy(self, source_path: str, dest_path: str) -> None:
        src_key = self._key(validate_path(source_path, "copy"))
        dst_key = self._key(validate_path(dest_path, "copy"))
        if src_key == dst_key:
            await self._head("copy", source_path, src_key)
            return
        await self._call(
            "copy",
            source_path,
            self._client.copy_object,
            Bucket=self._bucket,
            Key=dst_key,
            CopySource={"Bucket": self._bucket, "Key": src_key},
        )

    async def move(self, source_path: str, dest_path: str) -> None:
        await self.copy(source_path, dest_path)
        if validate_path(source_path, "move") == validate_path(dest_path, "move"):
            return
        await self.delete(source_path)

    # ------------------------------------------------------------------
    # Metadata operations
    # ------------------------------------------------------------------

    async def put_with_metadata(self, path: str, content: bytes, metadata: Metadata) -> None:
        key = self._key(validate_path(path, "put_with_metadata"))
        await self._call(
            "put_with_metadata",
            path,
            self._client.put_object,
            Bucket=self._bucket,
            Key=key,
            Body=content,
            **_object_args(metadata),
        )

    async def get_metadata(self, path: str) -> Metadata | None:
        """Return the object's attributes, or ``None`` if none were set.

        Objects written through this disk carry :data:`METADATA_MARKER` and
        read back exactly as written.  Objects written by other tools report
        metadata only when they have a non-default content type or user
        metadata.
        """
        key = self._key(validate_path(path, "get_metadata"))
        head = await self._head("get_metadata", path, key)
        content_type = head.get("ContentType") or ""
        custom_headers = dict(head.get("Metadata") or {})
        marker = custom_headers.pop(METADATA_MARKER, None)
        if marker is None:
            if content_type in ("", DEFAULT_CONTENT_TYPE) and not custom_headers:
                return None
        elif marker != _TYPED:
            content_type = ""
        return Metadata(
            content_type=content_type,
            size=int(head.get("ContentLength", 0)),
            last_modified=head.get("LastModified"),
            custom_headers=custom_headers,
        )

    async def set_metadata(self, path: str, metadata: Metadata) -> None:
        key = self._key(validate_path(path, "set_metadata"))
        args = _object_args(metadata)
        await self._call(
            "set_metadata",
            path,
            self._client.copy_object,
            Bucket=self._bucket,
            Key=key,
            CopySource={"Bucket": self._bucket, "Key": key},
            MetadataDirective="REPLACE",
            **args,
        )
