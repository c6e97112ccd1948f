# SPDX-License-Identifier: MIT
"""Shared pytest fixtures for diskstore tests."""

import io
import pathlib
import threading
from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError
from botocore.response import StreamingBody

from diskstore.config import LocalDiskConfig, S3DiskConfig
from diskstore.storage.local import LocalDisk
from diskstore.storage.s3 import S3Disk

BUCKET = "test-bucket"


# ==================== Fake S3 client ====================


def _client_error(code: str, operation: str, status: int = 404) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": "Not Found"}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


class FakeS3Client:
    """In-memory stand-in for a boto3 S3 client.

    Implements only the calls :class:`S3Disk` makes and mirrors S3's
    observable behavior: ``NoSuchKey`` from GetObject/CopyObject, a bare
    ``404`` from HeadObject, silent DeleteObject for absent keys, and
    paginated ListObjectsV2.
    """

    def __init__(self, page_size: int = 2) -> None:
        self.objects: dict[tuple[str, str], dict] = {}
        self.page_size = page_size
        self.closed = False
        self.block = threading.Event()
        self.block.set()

    def _store(self, bucket: str, key: str, body: bytes, content_type: str | None, metadata: dict | None) -> None:
        self.objects[(bucket, key)] = {
            "Body": body,
            "ContentType": content_type or "binary/octet-stream",
            "Metadata": {k.lower(): v for k, v in (metadata or {}).items()},
            "LastModified": datetime.now(timezone.utc),
        }

    def _object(self, bucket: str, key: str, operation: str) -> dict:
        self.block.wait()
        try:
            return self.objects[(bucket, key)]
        except KeyError:
            raise _client_error("NoSuchKey", operation) from None

    def put_object(self, Bucket, Key, Body, ContentType=None, Metadata=None):
        self.block.wait()
        data = Body if isinstance(Body, bytes) else Body.read()
        self._store(Bucket, Key, data, ContentType, Metadata)
        return {"ETag": '"fake"'}

    def upload_fileobj(self, Fileobj, Bucket, Key, ExtraArgs=None, Callback=None, Config=None):
        extra = ExtraArgs or {}
        self._store(Bucket, Key, Fileobj.read(), extra.get("ContentType"), extra.get("Metadata"))

    def get_object(self, Bucket, Key):
        obj = self._object(Bucket, Key, "GetObject")
        body = obj["Body"]
        return {
            "Body": StreamingBody(io.BytesIO(body), len(body)),
            "ContentLength": len(body),
            "ContentType": obj["ContentType"],
            "Metadata": dict(obj["Metadata"]),
        }

    def head_object(self, Bucket, Key):
        self.block.wait()
        obj = self.objects.get((Bucket, Key))
        if obj is None:
            raise _client_error("404", "HeadObject")
        return {
            "ContentLength": len(obj["Body"]),
            "ContentType": obj["ContentType"],
            "Metadata": dict(obj["Metadata"]),
            "LastModified": obj["LastModified"],
        }

    def delete_object(self, Bucket, Key):
        self.objects.pop((Bucket, Key), None)
        return {}

    def copy_object(self, Bucket, Key, CopySource, MetadataDirective="COPY", ContentType=None, Metadata=None):
        src = self._object(CopySource["Bucket"], CopySource["Key"], "CopyObject")
        if MetadataDirective == "REPLACE":
            self._store(Bucket, Key, src["Body"], ContentType, Metadata)
        else:
            self._store(Bucket, Key, src["Body"], src["ContentType"], src["Metadata"])
        return {}

    def get_paginator(self, operation_name):
        assert operation_name == "list_objects_v2"
        return _FakeListPaginator(self)

    def close(self):
        self.closed = True


class _FakeListPaginator:
    def __init__(self, client: FakeS3Client) -> None:
        self._client = client

    def paginate(self, Bucket, Prefix=""):
        keys = sorted(k for (b, k) in self._client.objects if b == Bucket and k.startswith(Prefix))
        if not keys:
            yield {"KeyCount": 0}
            return
        size = self._client.page_size
        for start in range(0, len(keys), size):
            batch = keys[start : start + size]
            yield {
                "KeyCount": len(batch),
                "Contents": [
                    {
                        "Key": k,
                        "Size": len(self._client.objects[(Bucket, k)]["Body"]),
                        "LastModified": self._client.objects[(Bucket, k)]["LastModified"],
                    }
                    for k in batch
                ],
            }


# ==================== Disk fixtures ====================


@pytest.fixture
def disk_root(tmp_path: pathlib.Path) -> pathlib.Path:
    """Create an empty directory to use as a local disk root."""
    root = tmp_path / "disk"
    root.mkdir()
    return root


@pytest.fixture
def local_disk(disk_root: pathlib.Path) -> LocalDisk:
    return LocalDisk(LocalDiskConfig(path=str(disk_root)))


@pytest.fixture
def fake_s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def s3_disk(fake_s3_client: FakeS3Client) -> S3Disk:
    return S3Disk(S3DiskConfig(bucket=BUCKET), client=fake_s3_client)


@pytest.fixture(params=["local", "s3"])
def disk(request, local_disk, s3_disk):
    """Each backend in turn, for behavior every disk must share."""
    return local_disk if request.param == "local" else s3_disk
