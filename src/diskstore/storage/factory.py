# SPDX-License-Identifier: MIT
"""Disk factory.

Builds disks from config models, and a fully populated :class:`Storage` from
environment variables.

Configuration
-------------
``DISKSTORE_DISKS``
    Comma-separated disk names, e.g. ``"local,archive"``.
``DISKSTORE_<NAME>_DRIVER``
    ``"local"`` – uses ``DISKSTORE_<NAME>_PATH`` (required),
    ``_CREATE``, ``_DIR_PERMISSIONS`` and ``_FILE_PERMISSIONS`` (octal).
    ``"s3"`` – uses ``DISKSTORE_<NAME>_BUCKET`` (required), ``_REGION``,
    ``_ENDPOINT``, ``_ACCESS_KEY``, ``_SECRET_KEY``, ``_SESSION_TOKEN``,
    ``_PREFIX`` and ``_PATH_STYLE``.

``<NAME>`` is the disk name upper-cased with ``-`` replaced by ``_``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from pydantic import ValidationError

from ..config import LocalDiskConfig, S3DiskConfig
from ..exceptions import DiskConfigError
from ..router import Storage
from .local import LocalDisk
from .protocol import Disk

logger = logging.getLogger("diskstore")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def create_disk(config: LocalDiskConfig | S3DiskConfig) -> Disk:
    """Instantiate the backend matching *config*'s type."""
    if isinstance(config, LocalDiskConfig):
        return LocalDisk(config)
    if isinstance(config, S3DiskConfig):
        try:
            from .s3 import S3Disk
        except ImportError as exc:
            raise DiskConfigError(
                "S3 disks require extra dependencies. Install with: pip install 'diskstore[s3]'"
            ) from exc
        return S3Disk(config)
    raise DiskConfigError(f"Unsupported disk config: {type(config).__name__}")


def _env_name(disk_name: str) -> str:
    return "DISKSTORE_" + disk_name.upper().replace("-", "_")


def _parse_bool(var: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise DiskConfigError(f"{var}: expected a boolean, got {raw!r}")


def _parse_mode(var: str, raw: str) -> int:
    try:
        return int(raw.strip(), 8)
    except ValueError as e:
        raise DiskConfigError(f"{var}: expected octal permission bits, got {raw!r}") from e


def disk_config_from_env(name: str, environ: Mapping[str, str] | None = None) -> LocalDiskConfig | S3DiskConfig:
    """Read the configuration for disk *name* from environment variables.

    Raises:
        DiskConfigError: If the driver is unknown, required variables are
            missing (all of them are listed), or a value is malformed.
    """
    env = os.environ if environ is None else environ
    base = _env_name(name)

    def get(suffix: str, default: str = "") -> str:
        return env.get(f"{base}_{suffix}", default).strip()

    driver = get("DRIVER", "local").lower()
    required = {"local": ["PATH"], "s3": ["BUCKET"]}.get(driver)
    if required is None:
        raise DiskConfigError(f"{base}_DRIVER: unknown driver {driver!r}. Use 'local' or 's3'.")

    missing = [f"{base}_{suffix}" for suffix in required if not get(suffix)]
    if missing:
        details = "\n".join(f"  - {var}" for var in missing)
        raise DiskConfigError(f"Missing required environment variable(s) for disk {name!r}:\n{details}")

    try:
        if driver == "local":
            kwargs: dict[str, object] = {"path": get("PATH")}
            if get("CREATE"):
                kwargs["create_if_not_exist"] = _parse_bool(f"{base}_CREATE", get("CREATE"))
            if get("DIR_PERMISSIONS"):
                kwargs["dir_permissions"] = _parse_mode(f"{base}_DIR_PERMISSIONS", get("DIR_PERMISSIONS"))
            if get("FILE_PERMISSIONS"):
                kwargs["file_permissions"] = _parse_mode(f"{base}_FILE_PERMISSIONS", get("FILE_PERMISSIONS"))
            return LocalDiskConfig(**kwargs)

        return S3DiskConfig(
            bucket=get("BUCKET"),
            region=get("REGION"),
            endpoint=get("ENDPOINT"),
            access_key=get("ACCESS_KEY"),
            secret_key=get("SECRET_KEY"),
            session_token=get("SESSION_TOKEN"),
            prefix=get("PREFIX"),
            use_path_style=_parse_bool(f"{base}_PATH_STYLE", get("PATH_STYLE", "false")),
        )
    except ValidationError as e:
        raise DiskConfigError(f"Invalid configuration for disk {name!r}: {e}") from e


def storage_from_env(environ: Mapping[str, str] | None = None) -> Storage:
    """Return a new :class:`Storage` with every disk listed in ``DISKSTORE_DISKS``.

    Each call builds fresh disks; callers own the returned router and should
    close it (``await storage.aclose()`` or ``async with``).
    """
    env = os.environ if environ is None else environ
    names = [n.strip() for n in env.get("DISKSTORE_DISKS", "").split(",") if n.strip()]

    storage = Storage()
    for name in names:
        storage.add_disk(name, create_disk(disk_config_from_env(name, env)))
    if not names:
        logger.warning("DISKSTORE_DISKS is empty; no disks configured")
    return storage
