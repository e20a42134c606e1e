"""Tests for AES-256-GCM encryption and key handling."""

from __future__ import annotations

import base64
import os

import pytest
from cryptography.exceptions import InvalidTag

from otpkeep.config import Settings
from otpkeep.crypto import decrypt, derive_key, encrypt, master_key


def test_encrypt_decrypt():
    key = os.urandom(32)
    plaintext = '[{"secret": "JBSWY3DPEHPK3PXP"}]'
    token = encrypt(plaintext, key)
    assert token != plaintext
    assert decrypt(token, key) == plaintext


def test_encrypt_produces_different_ciphertexts():
    key = os.urandom(32)
    # Same plaintext should produce different ciphertexts (random nonce)
    assert encrypt("test", key) != encrypt("test", key)


def test_wrong_key_raises():
    token = encrypt("test", os.urandom(32))
    with pytest.raises(InvalidTag):
        decrypt(token, os.urandom(32))


def test_derive_key_is_deterministic():
    salt = b"0123456789abcdef"
    k1 = derive_key("pw", salt, 1000)
    assert k1 == derive_key("pw", salt, 1000)
    assert len(k1) == 32
    assert k1 != derive_key("pw2", salt, 1000)
    assert k1 != derive_key("pw", b"fedcba9876543210", 1000)


def test_master_key_unset(monkeypatch):
    monkeypatch.setattr("otpkeep.crypto.settings", Settings(_env_file=None, master_key=""))
    assert master_key() is None


def test_master_key_from_env(monkeypatch):
    raw = os.urandom(32)
    monkeypatch.setenv("OTPKEEP_MASTER_KEY", base64.b64encode(raw).decode())
    monkeypatch.setattr("otpkeep.crypto.settings", Settings(_env_file=None))
    assert master_key() == raw


def test_master_key_wrong_length(monkeypatch):
    short = base64.b64encode(os.urandom(16)).decode()
    monkeypatch.setattr("otpkeep.crypto.settings", Settings(_env_file=None, master_key=short))
    with pytest.raises(ValueError, match="must be 32 bytes"):
        master_key()
