"""Pydantic models for accounts and backup envelopes."""

from __future__ import annotations

import re
import threading
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from otpkeep.config import Algorithm
from otpkeep.errors import ValidationError

DEFAULT_DIGITS = 6
DEFAULT_PERIOD = 30
SUPPORTED_DIGITS = (6, 7, 8)

_SEPARATORS = re.compile(r"[\s_-]+")

_id_lock = threading.Lock()
_last_id = 0


def normalize_secret(text: str) -> str:
    """Strip spaces, hyphens and underscores from a typed-in secret and upper-case it."""
    return _SEPARATORS.sub("", text).upper()


def new_account_id() -> str:
    """Millisecond timestamp id, strictly increasing within this process."""
    global _last_id
    with _id_lock:
        candidate = time.time_ns() // 1_000_000
        if candidate <= _last_id:
            candidate = _last_id + 1
        _last_id = candidate
    return str(candidate)


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "account"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


class Account(BaseModel):
    """One stored TOTP account. Immutable once constructed."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: StrictStr
    issuer: StrictStr
    account_name: StrictStr = Field(alias="accountName")
    secret: StrictStr
    digits: StrictInt = DEFAULT_DIGITS
    period: StrictInt = Field(default=DEFAULT_PERIOD, gt=0)
    algorithm: StrictStr = Algorithm.SHA1.value

    @field_validator("secret", mode="before")
    @classmethod
    def _normalize_secret(cls, value: Any) -> Any:
        if isinstance(value, str):
            return normalize_secret(value)
        return value

    @field_validator("secret")
    @classmethod
    def _check_secret(cls, value: str) -> str:
        if not value:
            raise ValueError("secret must not be empty")
        return value

    @field_validator("algorithm", mode="before")
    @classmethod
    def _plain_algorithm(cls, value: Any) -> Any:
        if isinstance(value, Algorithm):
            return value.value
        return value

    @field_validator("digits")
    @classmethod
    def _check_digits(cls, value: int) -> int:
        if value not in SUPPORTED_DIGITS:
            raise ValueError(f"digits must be one of {SUPPORTED_DIGITS}, got {value}")
        return value

    @property
    def label(self) -> str:
        return f"{self.issuer}:{self.account_name}" if self.issuer else self.account_name

    def to_dict(self) -> dict[str, Any]:
        """JSON shape used by durable storage and backups."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_dict(cls, data: Any) -> Account:
        """Strictly validate a stored/backed-up account.

        Raises ValidationError instead of filling in required fields.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"account entry must be an object, got {type(data).__name__}")
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"invalid account: {_describe(e)}") from e

    def with_changes(self, **changes: Any) -> Account:
        """Return a validated copy with some fields replaced; the id is kept."""
        data = self.model_dump()
        data.update(changes)
        data["id"] = self.id
        return Account.from_dict(data)


def new_account(
    account_name: str,
    secret: str,
    issuer: str = "",
    digits: int = DEFAULT_DIGITS,
    period: int = DEFAULT_PERIOD,
    algorithm: str = Algorithm.SHA1.value,
) -> Account:
    """Build an account from manual entry, assigning a fresh id."""
    return Account.from_dict({
        "id": new_account_id(),
        "issuer": issuer,
        "accountName": account_name,
        "secret": secret,
        "digits": digits,
        "period": period,
        "algorithm": algorithm,
    })


class BackupEnvelope(BaseModel):
    """Plain (version 1.0) backup envelope."""

    model_config = ConfigDict(extra="ignore")

    version: StrictStr
    timestamp: StrictStr
    accounts: list[dict[str, Any]]
