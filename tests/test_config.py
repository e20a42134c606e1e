"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pydantic
import pytest

from otpkeep.config import Algorithm, Settings


def test_settings_defaults():
    s = Settings(_env_file=None)
    assert s.storage_key == "totp_accounts"
    assert s.refresh_window == 30
    assert s.tick_interval == 1.0
    assert s.backup_encryption is False
    assert s.master_key == ""
    assert s.storage_path.name == "vault.json"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("OTPKEEP_STORAGE_PATH", "/tmp/otpkeep-test/vault.json")
    monkeypatch.setenv("OTPKEEP_BACKUP_ENCRYPTION", "true")
    monkeypatch.setenv("OTPKEEP_REFRESH_WINDOW", "60")
    s = Settings(_env_file=None)
    assert s.storage_path == Path("/tmp/otpkeep-test/vault.json")
    assert s.backup_encryption is True
    assert s.refresh_window == 60


def test_refresh_window_must_be_positive():
    with pytest.raises(pydantic.ValidationError):
        Settings(_env_file=None, refresh_window=0)


def test_algorithm_enum():
    assert Algorithm.SHA1 == "SHA1"
    assert Algorithm.SHA512 == "SHA512"
    assert len(Algorithm) == 3
