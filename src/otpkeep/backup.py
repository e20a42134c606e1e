"""Portable backup envelope for the whole account collection.

Version 1.0 is Base64 of the UTF-8 JSON ``{version, accounts, timestamp}``;
it is an encoding, not encryption, and the password is ignored.
Version 2.0 wraps the accounts in AES-256-GCM under a PBKDF2 key derived
from the password. Decoding is all-or-nothing: one bad entry fails the
whole restore and nothing reaches the store.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from cryptography.exceptions import InvalidTag
from pydantic import ValidationError as PydanticValidationError

from otpkeep import crypto
from otpkeep.config import settings
from otpkeep.errors import BackupError, ValidationError
from otpkeep.models import Account, BackupEnvelope
from otpkeep.store import AccountStore, Snapshot

logger = logging.getLogger(__name__)

PLAIN_VERSION = "1.0"
ENCRYPTED_VERSION = "2.0"
KDF_NAME = "pbkdf2-sha256"
MAX_KDF_FACTOR = 10


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def encode_backup(
    accounts: Iterable[Account],
    password: str,
    *,
    encrypt: bool | None = None,
    now: datetime | None = None,
) -> str:
    """Serialize ``accounts`` into a backup string.

    ``encrypt`` defaults to ``settings.backup_encryption``.
    """
    if encrypt is None:
        encrypt = settings.backup_encryption
    timestamp = (now or datetime.now(UTC)).isoformat()
    entries = [a.to_dict() for a in accounts]

    try:
        if encrypt:
            salt = crypto.new_salt()
            iterations = settings.backup_kdf_iterations
            key = crypto.derive_key(password, salt, iterations)
            envelope: dict[str, Any] = {
                "version": ENCRYPTED_VERSION,
                "timestamp": timestamp,
                "kdf": {"name": KDF_NAME, "iterations": iterations, "salt": _b64(salt)},
                "payload": crypto.encrypt(json.dumps({"accounts": entries}), key),
            }
        else:
            envelope = {"version": PLAIN_VERSION, "accounts": entries, "timestamp": timestamp}
        encoded = _b64(json.dumps(envelope).encode("utf-8"))
    except (TypeError, AttributeError, ValueError) as e:
        raise BackupError("encode", str(e)) from e

    logger.info("Created backup v%s with %d accounts", envelope["version"], len(entries))
    return encoded


def _decrypt_entries(envelope: dict[str, Any], password: str) -> Any:
    kdf = envelope.get("kdf")
    payload = envelope.get("payload")
    if not isinstance(kdf, dict) or kdf.get("name") != KDF_NAME or not isinstance(payload, str):
        raise BackupError("envelope", "missing or unsupported encryption parameters")
    iterations = kdf.get("iterations")
    if not isinstance(iterations, int) or isinstance(iterations, bool) or iterations <= 0:
        raise BackupError("envelope", "invalid kdf iterations")
    if iterations > settings.backup_kdf_iterations * MAX_KDF_FACTOR:
        raise BackupError("envelope", f"kdf iterations {iterations} exceed the allowed maximum")
    try:
        salt = base64.b64decode(kdf.get("salt") or "", validate=True)
    except (binascii.Error, TypeError) as e:
        raise BackupError("envelope", "invalid kdf salt") from e

    key = crypto.derive_key(password, salt, iterations)
    try:
        inner = crypto.decrypt(payload, key)
    except (InvalidTag, binascii.Error, ValueError) as e:
        raise BackupError("decrypt", "wrong password or damaged backup") from e

    try:
        data = json.loads(inner)
    except json.JSONDecodeError as e:
        raise BackupError("json", str(e)) from e
    if not isinstance(data, dict) or not isinstance(data.get("accounts"), list):
        raise BackupError("envelope", "encrypted payload has no accounts list")
    return data["accounts"]


def decode_backup(data: str, password: str) -> list[Account]:
    """Decode a backup string produced by ``encode_backup``.

    Raises BackupError naming the failing stage.
    """
    if not isinstance(data, str):
        raise BackupError("base64", "backup must be text")
    try:
        raw = base64.b64decode("".join(data.split()), validate=True)
    except binascii.Error as e:
        raise BackupError("base64", str(e)) from e
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise BackupError("utf-8", str(e)) from e
    try:
        envelope = json.loads(text)
    except json.JSONDecodeError as e:
        raise BackupError("json", str(e)) from e
    if not isinstance(envelope, dict):
        raise BackupError("envelope", "backup is not a JSON object")

    version = envelope.get("version")
    if version == PLAIN_VERSION:
        try:
            entries: Any = BackupEnvelope.model_validate(envelope).accounts
        except PydanticValidationError as e:
            raise BackupError("envelope", str(e)) from e
    elif version == ENCRYPTED_VERSION:
        entries = _decrypt_entries(envelope, password)
    else:
        raise BackupError("envelope", f"unsupported backup version {version!r}")

    try:
        accounts = [Account.from_dict(entry) for entry in entries]
    except ValidationError as e:
        raise BackupError("accounts", str(e)) from e

    logger.info("Decoded backup v%s with %d accounts", version, len(accounts))
    return accounts


def create_backup(store: AccountStore, password: str, *, encrypt: bool | None = None) -> str:
    """Backup string for the store's current snapshot."""
    return encode_backup(store.accounts, password, encrypt=encrypt)


async def restore_backup(store: AccountStore, data: str, password: str) -> Snapshot:
    """Append a backup's accounts to ``store`` (additive, no deduplication).

    Returns the accounts as added; colliding ids get fresh ones.
    """
    accounts = decode_backup(data, password)
    return await store.extend(accounts)
