"""TOTP code generation (RFC 4226 HOTP keyed by an RFC 6238 time counter).

Uses pyotp for the HMAC + dynamic truncation step. The time counter is
computed here with integer floor division so the result never depends on
local timezone or float rounding.
"""

from __future__ import annotations

import binascii
import hashlib
import time
from collections.abc import Callable

import pyotp

from otpkeep.config import Algorithm
from otpkeep.errors import DecodeError, ValidationError
from otpkeep.models import SUPPORTED_DIGITS, Account

_DIGESTS: dict[str, Callable] = {
    Algorithm.SHA1: hashlib.sha1,
    Algorithm.SHA256: hashlib.sha256,
    Algorithm.SHA512: hashlib.sha512,
}


def resolve_digest(algorithm: str) -> Callable:
    """Map an algorithm name to a hashlib constructor; unknown names fall back to SHA1."""
    return _DIGESTS.get(str(algorithm).upper(), hashlib.sha1)


def random_secret() -> str:
    """Generate a new TOTP secret (base32-encoded, 32 chars)."""
    return pyotp.random_base32()


def time_counter(now_millis: int, period: int) -> int:
    """Number of whole ``period``-second windows since the Unix epoch."""
    if period <= 0:
        raise ValidationError(f"period must be positive, got {period}")
    if now_millis < 0:
        raise ValidationError("time before the Unix epoch is not supported")
    return int(now_millis) // 1000 // period


def seconds_remaining(period: int, now_seconds: float | None = None) -> int:
    """Seconds until the next window boundary for the given period (1..period)."""
    if period <= 0:
        raise ValidationError(f"period must be positive, got {period}")
    if now_seconds is None:
        now_seconds = time.time()
    return period - (int(now_seconds) % period)


def hotp(secret: str, counter: int, digits: int = 6, algorithm: str = Algorithm.SHA1) -> str:
    """RFC 4226 HOTP value for ``counter``, zero-padded to ``digits``.

    Raises DecodeError for an empty or malformed Base32 secret.
    """
    if digits not in SUPPORTED_DIGITS:
        raise ValidationError(f"digits must be one of {SUPPORTED_DIGITS}, got {digits}")
    if counter < 0:
        raise ValidationError(f"counter must be non-negative, got {counter}")
    if not secret:
        raise DecodeError("invalid secret: empty")

    generator = pyotp.HOTP(secret, digits=digits, digest=resolve_digest(algorithm))
    try:
        # byte_secret() restores stripped "=" padding before decoding
        generator.byte_secret()
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid secret: {e}") from e
    return generator.at(counter)


def generate_code(account: Account, now_millis: int | None = None) -> str:
    """Current code for ``account`` at ``now_millis`` (wall clock when omitted)."""
    if now_millis is None:
        now_millis = time.time_ns() // 1_000_000
    counter = time_counter(now_millis, account.period)
    return hotp(account.secret, counter, account.digits, account.algorithm)
