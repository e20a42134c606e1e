"""AES-256-GCM encryption for stored vault values and password-protected backups."""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from otpkeep.config import settings

_NONCE_SIZE = 12  # 96-bit nonce for AES-GCM
_KEY_SIZE = 32
SALT_SIZE = 16


def master_key() -> bytes | None:
    """Decode OTPKEEP_MASTER_KEY, or None when encryption at rest is off."""
    raw = settings.master_key
    if not raw:
        return None
    try:
        key = base64.b64decode(raw, validate=True)
    except binascii.Error as e:
        raise ValueError("OTPKEEP_MASTER_KEY is not valid base64") from e
    if len(key) != _KEY_SIZE:
        raise ValueError("OTPKEEP_MASTER_KEY must be 32 bytes (base64-encoded)")
    return key


def new_salt() -> bytes:
    return os.urandom(SALT_SIZE)


def derive_key(password: str, salt: bytes, iterations: int | None = None) -> bytes:
    """PBKDF2-HMAC-SHA256 key for a backup password."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=_KEY_SIZE,
        salt=salt,
        iterations=iterations or settings.backup_kdf_iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt(plaintext: str, key: bytes) -> str:
    """Encrypt a string. Returns base64(nonce + ciphertext)."""
    nonce = os.urandom(_NONCE_SIZE)
    ct = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(nonce + ct).decode("ascii")


def decrypt(token: str, key: bytes) -> str:
    """Decrypt a base64(nonce + ciphertext) token back to plaintext.

    Raises cryptography.exceptions.InvalidTag for a wrong key or tampered data.
    """
    raw = base64.b64decode(token, validate=True)
    nonce, ct = raw[:_NONCE_SIZE], raw[_NONCE_SIZE:]
    return AESGCM(key).decrypt(nonce, ct, None).decode("utf-8")
