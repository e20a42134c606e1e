"""Durable key-value storage backends for the account store.

The store only needs a single key; backends replace the whole value on
every write (never append).
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from cryptography.exceptions import InvalidTag

from otpkeep import crypto
from otpkeep.config import settings
from otpkeep.errors import StorageError

logger = logging.getLogger(__name__)


class SecureStorage(Protocol):
    """Opaque secure key-value store collaborator."""

    async def read(self, key: str) -> str | None: ...

    async def write(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryStorage:
    """In-process storage, used by tests and embedders with their own persistence."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    async def read(self, key: str) -> str | None:
        return self.values.get(key)

    async def write(self, key: str, value: str) -> None:
        self.values[key] = value

    async def delete(self, key: str) -> None:
        self.values.pop(key, None)


class FileStorage:
    """JSON file storage with atomic replace and optional AES-GCM values.

    File layout: ``{"encrypted": bool, "values": {key: value}}``.
    """

    def __init__(self, path: Path | str, key: bytes | None = None) -> None:
        self.path = Path(path)
        self._key = key
        self._lock = threading.Lock()

    # -- sync helpers (run in a worker thread) --

    def _load_file(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"encrypted": self._key is not None, "values": {}}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise StorageError(f"cannot read {self.path}: {e}") from e
        except json.JSONDecodeError as e:
            raise StorageError(f"corrupt storage file {self.path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("values"), dict):
            raise StorageError(f"corrupt storage file {self.path}: unexpected layout")
        return data

    def _read_sync(self, key: str) -> str | None:
        with self._lock:
            data = self._load_file()
        value = data["values"].get(key)
        if value is not None and not isinstance(value, str):
            raise StorageError(f"corrupt storage file {self.path}: value for {key!r} is not text")
        if value is None or not data.get("encrypted"):
            return value
        if self._key is None:
            raise StorageError("storage is encrypted but OTPKEEP_MASTER_KEY is not set")
        try:
            return crypto.decrypt(value, self._key)
        except (InvalidTag, ValueError) as e:
            raise StorageError("cannot decrypt stored value (wrong master key?)") from e

    def _write_file(self, values: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({"encrypted": self._key is not None, "values": values})
        fd, tmp_name = tempfile.mkstemp(prefix=".otpkeep-", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except OSError:
            _unlink_quietly(tmp_name)
            raise

    def _existing_values(self) -> dict[str, str]:
        try:
            data = self._load_file()
        except StorageError:
            logger.warning("Discarding unreadable storage file %s", self.path)
            return {}
        if bool(data.get("encrypted")) != (self._key is not None):
            # Mixed modes cannot share a file; only our own values survive.
            logger.warning("Storage encryption mode changed, rewriting %s", self.path)
            return {}
        return dict(data["values"])

    def _write_sync(self, key: str, value: str | None) -> None:
        with self._lock:
            values = self._existing_values()
            if value is None:
                values.pop(key, None)
            else:
                values[key] = crypto.encrypt(value, self._key) if self._key else value
            try:
                self._write_file(values)
            except OSError as e:
                raise StorageError(f"cannot write {self.path}: {e}") from e

    # -- SecureStorage --

    async def read(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read_sync, key)

    async def write(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write_sync, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._write_sync, key, None)


def _unlink_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def open_storage() -> FileStorage:
    """FileStorage at the configured path, encrypted when a master key is set."""
    try:
        key = crypto.master_key()
    except ValueError as e:
        raise StorageError(str(e)) from e
    return FileStorage(settings.storage_path, key=key)
