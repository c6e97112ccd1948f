# SPDX-License-Identifier: MIT
"""Unit tests for config models, logging setup and the env-driven factory."""

import logging

import pytest
from pydantic import ValidationError

from diskstore import config
from diskstore.config import (
    DEFAULT_DIR_PERMISSIONS,
    DEFAULT_FILE_PERMISSIONS,
    LocalDiskConfig,
    S3DiskConfig,
    configure_logging,
)
from diskstore.exceptions import DiskConfigError
from diskstore.router import Storage
from diskstore.storage.factory import create_disk, disk_config_from_env, storage_from_env
from diskstore.storage.local import LocalDisk
from diskstore.storage.s3 import S3Disk

# ------------------------------------------------------------------
# Config models
# ------------------------------------------------------------------


@pytest.mark.unit
class TestLocalDiskConfig:
    """Test LocalDiskConfig validation."""

    def test_defaults(self):
        cfg = LocalDiskConfig(path="/srv/files")
        assert cfg.create_if_not_exist is True
        assert cfg.effective_dir_permissions() == DEFAULT_DIR_PERMISSIONS
        assert cfg.effective_file_permissions() == DEFAULT_FILE_PERMISSIONS

    @pytest.mark.parametrize("path", ["", "   "])
    def test_path_required(self, path):
        with pytest.raises(ValidationError, match="path is required"):
            LocalDiskConfig(path=path)

    def test_zero_permissions_use_defaults(self):
        cfg = LocalDiskConfig(path="/x", dir_permissions=0, file_permissions=0)
        assert cfg.effective_dir_permissions() == 0o755
        assert cfg.effective_file_permissions() == 0o644

    @pytest.mark.parametrize("mode", [-1, 0o10000])
    def test_invalid_permissions(self, mode):
        with pytest.raises(ValidationError, match="Invalid permission bits"):
            LocalDiskConfig(path="/x", file_permissions=mode)

    def test_frozen(self):
        cfg = LocalDiskConfig(path="/x")
        with pytest.raises(ValidationError):
            cfg.path = "/y"


@pytest.mark.unit
class TestS3DiskConfig:
    """Test S3DiskConfig validation."""

    def test_defaults(self):
        cfg = S3DiskConfig(bucket="b")
        assert cfg.region == "us-east-1"
        assert cfg.endpoint == ""
        assert cfg.prefix == ""
        assert cfg.use_path_style is False

    def test_bucket_required(self):
        with pytest.raises(ValidationError, match="bucket name is required"):
            S3DiskConfig(bucket=" ")

    def test_empty_region_falls_back(self):
        assert S3DiskConfig(bucket="b", region="").region == "us-east-1"

    @pytest.mark.parametrize("prefix", ["tenant", "/tenant", "tenant/", "/tenant/"])
    def test_prefix_slashes_trimmed(self, prefix):
        assert S3DiskConfig(bucket="b", prefix=prefix).prefix == "tenant"


# ------------------------------------------------------------------
# Logging
# ------------------------------------------------------------------


@pytest.mark.unit
class TestLogging:
    """Test the package logger setup."""

    def test_package_logger_has_null_handler(self):
        handlers = logging.getLogger("diskstore").handlers
        assert any(isinstance(h, logging.NullHandler) for h in handlers)

    def test_configure_logging_sets_level(self, mocker):
        basic_config = mocker.patch("diskstore.config.logging.basicConfig")
        logger = logging.getLogger("diskstore")
        previous = logger.level
        try:
            configure_logging("debug")

            assert logger.level == logging.DEBUG
            kwargs = basic_config.call_args.kwargs
            assert kwargs["level"] == "DEBUG"
            assert kwargs["format"] == config.LOG_FORMAT
        finally:
            logger.setLevel(previous)

    def test_configure_logging_defaults_to_env_level(self, mocker, monkeypatch):
        basic_config = mocker.patch("diskstore.config.logging.basicConfig")
        monkeypatch.setattr(config, "LOG_LEVEL", "ERROR")
        logger = logging.getLogger("diskstore")
        previous = logger.level
        try:
            configure_logging()
            assert basic_config.call_args.kwargs["level"] == "ERROR"
        finally:
            logger.setLevel(previous)


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------


@pytest.mark.unit
class TestCreateDisk:
    """Test building disks from config models."""

    def test_local(self, tmp_path):
        disk = create_disk(LocalDiskConfig(path=str(tmp_path / "d")))
        assert isinstance(disk, LocalDisk)

    def test_s3(self, mocker):
        mocker.patch("diskstore.storage.s3.boto3.client")
        disk = create_disk(S3DiskConfig(bucket="b"))
        assert isinstance(disk, S3Disk)

    def test_unsupported(self):
        with pytest.raises(DiskConfigError, match="Unsupported disk config"):
            create_disk(object())


@pytest.mark.unit
class TestDiskConfigFromEnv:
    """Test reading one disk's config from environment variables."""

    def test_local_defaults_driver(self):
        cfg = disk_config_from_env("files", {"DISKSTORE_FILES_PATH": "/srv/files"})
        assert cfg == LocalDiskConfig(path="/srv/files")

    def test_local_full(self):
        env = {
            "DISKSTORE_FILES_DRIVER": "local",
            "DISKSTORE_FILES_PATH": "/srv/files",
            "DISKSTORE_FILES_CREATE": "false",
            "DISKSTORE_FILES_DIR_PERMISSIONS": "750",
            "DISKSTORE_FILES_FILE_PERMISSIONS": "0640",
        }
        cfg = disk_config_from_env("files", env)
        assert cfg.create_if_not_exist is False
        assert cfg.dir_permissions == 0o750
        assert cfg.file_permissions == 0o640

    def test_s3_full(self):
        env = {
            "DISKSTORE_MY_ARCHIVE_DRIVER": "S3",
            "DISKSTORE_MY_ARCHIVE_BUCKET": "archive",
            "DISKSTORE_MY_ARCHIVE_REGION": "eu-central-1",
            "DISKSTORE_MY_ARCHIVE_ENDPOINT": "http://minio:9000",
            "DISKSTORE_MY_ARCHIVE_ACCESS_KEY": "ak",
            "DISKSTORE_MY_ARCHIVE_SECRET_KEY": "sk",
            "DISKSTORE_MY_ARCHIVE_PREFIX": "/tenant/",
            "DISKSTORE_MY_ARCHIVE_PATH_STYLE": "yes",
        }
        cfg = disk_config_from_env("my-archive", env)
        assert cfg == S3DiskConfig(
            bucket="archive",
            region="eu-central-1",
            endpoint="http://minio:9000",
            access_key="ak",
            secret_key="sk",
            prefix="tenant",
            use_path_style=True,
        )

    def test_missing_required_variable_is_named(self):
        with pytest.raises(DiskConfigError, match="DISKSTORE_ARCHIVE_BUCKET"):
            disk_config_from_env("archive", {"DISKSTORE_ARCHIVE_DRIVER": "s3"})

    def test_unknown_driver(self):
        with pytest.raises(DiskConfigError, match="unknown driver 'ftp'"):
            disk_config_from_env("x", {"DISKSTORE_X_DRIVER": "ftp"})

    def test_bad_octal(self):
        env = {"DISKSTORE_X_PATH": "/x", "DISKSTORE_X_FILE_PERMISSIONS": "rw-r--r--"}
        with pytest.raises(DiskConfigError, match="expected octal permission bits"):
            disk_config_from_env("x", env)

    def test_bad_boolean(self):
        env = {"DISKSTORE_X_PATH": "/x", "DISKSTORE_X_CREATE": "maybe"}
        with pytest.raises(DiskConfigError, match="expected a boolean"):
            disk_config_from_env("x", env)

    def test_out_of_range_mode_is_config_error(self):
        env = {"DISKSTORE_X_PATH": "/x", "DISKSTORE_X_DIR_PERMISSIONS": "17777"}
        with pytest.raises(DiskConfigError, match="Invalid configuration for disk 'x'"):
            disk_config_from_env("x", env)

    def test_reads_os_environ_by_default(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DISKSTORE_ENVDISK_PATH", str(tmp_path))
        assert disk_config_from_env("envdisk").path == str(tmp_path)


@pytest.mark.unit
class TestStorageFromEnv:
    """Test building a full router from environment variables."""

    def test_builds_every_listed_disk(self, tmp_path, mocker):
        mocker.patch("diskstore.storage.s3.boto3.client")
        env = {
            "DISKSTORE_DISKS": "local, archive",
            "DISKSTORE_LOCAL_PATH": str(tmp_path / "local"),
            "DISKSTORE_ARCHIVE_DRIVER": "s3",
            "DISKSTORE_ARCHIVE_BUCKET": "archive",
        }

        storage = storage_from_env(env)

        assert isinstance(storage, Storage)
        assert sorted(storage.disk_names()) == ["archive", "local"]
        assert isinstance(storage.disk("local"), LocalDisk)
        assert isinstance(storage.disk("archive"), S3Disk)

    def test_each_call_returns_a_new_router(self, tmp_path):
        env = {"DISKSTORE_DISKS": "a", "DISKSTORE_A_PATH": str(tmp_path)}
        assert storage_from_env(env) is not storage_from_env(env)

    def test_empty_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="diskstore"):
            storage = storage_from_env({})
        assert storage.disk_names() == []
        assert "DISKSTORE_DISKS is empty" in caplog.text

    def test_bad_disk_aborts(self, tmp_path):
        env = {"DISKSTORE_DISKS": "good,bad", "DISKSTORE_GOOD_PATH": str(tmp_path)}
        with pytest.raises(DiskConfigError, match="DISKSTORE_BAD_PATH"):
            storage_from_env(env)
