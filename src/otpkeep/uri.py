"""otpauth:// URI codec (the payload carried by provisioning QR codes).

Only the ``totp`` type is handled; HOTP URIs are rejected rather than
misread as time-based accounts.
"""

from __future__ import annotations

from urllib.parse import parse_qs, quote, unquote, urlencode

from otpkeep.config import Algorithm
from otpkeep.errors import ParseError, ValidationError
from otpkeep.models import DEFAULT_DIGITS, DEFAULT_PERIOD, Account, new_account_id, normalize_secret

PREFIX = "otpauth://totp/"


def _int_or_default(raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def parse_uri(uri: str) -> Account:
    """Parse an ``otpauth://totp/<label>?secret=...`` URI into a new Account.

    A fresh id is always assigned. Raises ParseError on a wrong prefix, a
    missing secret, or digits/period values outside the supported range.
    """
    if not isinstance(uri, str):
        raise ParseError("invalid QR code format")
    uri = uri.strip()
    if not uri.startswith(PREFIX):
        raise ParseError("invalid QR code format: expected otpauth://totp/")

    rest = uri[len(PREFIX):]
    path, _, query = rest.partition("?")
    query = query.split("#", 1)[0]
    params = {k: v[0] for k, v in parse_qs(query, keep_blank_values=True).items()}

    secret = normalize_secret(params.get("secret", ""))
    if not secret:
        raise ParseError("missing secret in QR code")

    label = unquote(path)
    issuer = params.get("issuer", "")
    account_name = label
    if issuer and label.startswith(f"{issuer}:"):
        account_name = label[len(issuer) + 1:]

    try:
        return Account.from_dict({
            "id": new_account_id(),
            "issuer": issuer,
            "accountName": account_name,
            "secret": secret,
            "digits": _int_or_default(params.get("digits"), DEFAULT_DIGITS),
            "period": _int_or_default(params.get("period"), DEFAULT_PERIOD),
            "algorithm": params.get("algorithm") or Algorithm.SHA1.value,
        })
    except ValidationError as e:
        raise ParseError(f"invalid QR code: {e}") from e


def build_uri(account: Account) -> str:
    """Render an account as an otpauth URI, emitting every parameter."""
    name = quote(account.account_name, safe="@")
    if account.issuer:
        label = f"{quote(account.issuer, safe='@')}:{name}"
    else:
        label = name
    query = urlencode(
        {
            "secret": account.secret,
            "issuer": account.issuer,
            "digits": account.digits,
            "period": account.period,
            "algorithm": account.algorithm,
        },
        quote_via=quote,
    )
    return f"{PREFIX}{label}?{query}"
