"""Error kinds raised by the otpkeep core.

Every error carries a message fit for showing to a user
("invalid secret", "missing secret in QR code").
"""

from __future__ import annotations


class OtpKeepError(Exception):
    """Base class for all otpkeep errors."""


class DecodeError(OtpKeepError):
    """A Base32 secret or backup payload could not be decoded."""


class ParseError(OtpKeepError):
    """An otpauth URI is malformed or lacks a mandatory field."""


class ValidationError(OtpKeepError, ValueError):
    """A field value is out of range (digits, period, duplicate id...)."""


class StorageError(OtpKeepError):
    """Durable storage could not be read or written."""


class BackupError(OtpKeepError):
    """A backup could not be produced or restored.

    ``stage`` names the step that failed: ``base64``, ``utf-8``, ``json``,
    ``envelope``, ``decrypt``, ``accounts``, ``encode`` or ``read``.
    """

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"backup {stage} failed: {message}")
        self.stage = stage
