"""otpkeep — local two-factor code manager (TOTP accounts, otpauth URIs, backups)."""

__version__ = "0.1.0"
