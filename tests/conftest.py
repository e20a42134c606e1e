"""Shared fixtures."""

from __future__ import annotations

import base64

import pytest

from otpkeep.models import Account, new_account

# RFC 6238 reference seeds (Appendix B / reference code)
SEED_SHA1 = b"12345678901234567890"
SEED_SHA256 = b"12345678901234567890123456789012"
SEED_SHA512 = b"1234567890123456789012345678901234567890123456789012345678901234"


def b32(seed: bytes) -> str:
    return base64.b32encode(seed).decode().rstrip("=")


@pytest.fixture
def google() -> Account:
    return new_account(account_name="alice@example.com", secret="JBSWY3DPEHPK3PXP", issuer="Google")


@pytest.fixture
def accounts() -> list[Account]:
    return [
        new_account(account_name="alice@example.com", secret="JBSWY3DPEHPK3PXP", issuer="Google"),
        new_account(account_name="bob", secret=b32(SEED_SHA256), issuer="GitHub", digits=8, algorithm="SHA256"),
        new_account(account_name="carol", secret=b32(SEED_SHA512), period=60, digits=7, algorithm="SHA512"),
    ]
