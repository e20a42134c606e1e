"""Ordered account collection with write-through persistence.

The store owns the canonical list of accounts for a session. Readers get
immutable tuple snapshots; every mutation rewrites the full collection in
durable storage before the in-memory state changes and observers are told.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Iterable, Iterator

from otpkeep.config import settings
from otpkeep.errors import StorageError, ValidationError
from otpkeep.events import Channel
from otpkeep.models import Account, new_account_id
from otpkeep.storage import SecureStorage

logger = logging.getLogger(__name__)

Snapshot = tuple[Account, ...]


def _rekey(accounts: Iterable[Account], taken: set[str]) -> list[Account]:
    """Give a fresh id to every account whose id is already in ``taken``."""
    out: list[Account] = []
    for account in accounts:
        if account.id in taken:
            account = account.model_copy(update={"id": new_account_id()})
        taken.add(account.id)
        out.append(account)
    return out


def decode_accounts(raw: str) -> list[Account]:
    """Strictly decode the persisted JSON array. Raises ValueError subclasses."""
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValidationError(f"expected a JSON array, got {type(data).__name__}")
    return [Account.from_dict(item) for item in data]


def encode_accounts(accounts: Iterable[Account]) -> str:
    return json.dumps([a.to_dict() for a in accounts])


class AccountStore:
    """Single-writer, insertion-ordered account collection."""

    def __init__(self, storage: SecureStorage, key: str | None = None) -> None:
        self._storage = storage
        self.key = key or settings.storage_key
        self._accounts: Snapshot = ()
        self._lock = asyncio.Lock()
        self.changes: Channel[Snapshot] = Channel("accounts")

    # -- read side --

    @property
    def accounts(self) -> Snapshot:
        return self._accounts

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self) -> Iterator[Account]:
        return iter(self._accounts)

    def get(self, account_id: str) -> Account | None:
        for account in self._accounts:
            if account.id == account_id:
                return account
        return None

    def periods(self) -> set[int]:
        """Distinct periods in use, for per-period countdowns."""
        return {a.period for a in self._accounts}

    def subscribe(self, callback: Callable[[Snapshot], None]) -> Callable[[], None]:
        """Be told the full snapshot after every successful change."""
        return self.changes.subscribe(callback)

    # -- lifecycle --

    async def load(self) -> Snapshot:
        """Load from storage. Missing, unreadable or corrupt data yields an empty store."""
        async with self._lock:
            accounts: list[Account] = []
            try:
                raw = await self._storage.read(self.key)
                if raw is not None:
                    accounts = decode_accounts(raw)
            except StorageError:
                logger.error("Error loading accounts, starting empty", exc_info=True)
                accounts = []
            except ValueError as e:
                logger.error("Stored accounts are corrupt, starting empty: %s", e)
                accounts = []

            fixed = _rekey(accounts, set())
            if any(a.id != b.id for a, b in zip(accounts, fixed)):
                logger.warning("Duplicate account ids in storage were reassigned")

            self._accounts = tuple(fixed)
            logger.info("Loaded %d accounts", len(self._accounts))
            self.changes.publish(self._accounts)
            return self._accounts

    async def persist(self) -> None:
        """Write the current snapshot to storage (full replace)."""
        async with self._lock:
            await self._write(self._accounts)

    # -- mutations --

    async def add(self, account: Account) -> None:
        """Append an account. Duplicate secrets/labels are allowed; duplicate ids are not."""
        async with self._lock:
            if self.get(account.id) is not None:
                raise ValidationError(f"account id {account.id} already exists")
            await self._commit(self._accounts + (account,))
            logger.info("Added account %s", account.label)

    async def remove(self, account_id: str) -> bool:
        """Remove an account by id. Unknown ids are a no-op (returns False)."""
        async with self._lock:
            remaining = tuple(a for a in self._accounts if a.id != account_id)
            if len(remaining) == len(self._accounts):
                return False
            await self._commit(remaining)
            logger.info("Removed account %s", account_id)
            return True

    async def replace(self, account_id: str, account: Account) -> None:
        """Edit = remove the old entry and insert ``account`` at the same position."""
        async with self._lock:
            index = next((i for i, a in enumerate(self._accounts) if a.id == account_id), None)
            if index is None:
                raise ValidationError(f"no account with id {account_id}")
            if account.id != account_id and self.get(account.id) is not None:
                raise ValidationError(f"account id {account.id} already exists")
            updated = self._accounts[:index] + (account,) + self._accounts[index + 1:]
            await self._commit(updated)
            logger.info("Replaced account %s", account_id)

    async def extend(self, accounts: Iterable[Account]) -> Snapshot:
        """Append many accounts in one write. Colliding ids are reassigned.

        Returns the accounts as stored.
        """
        async with self._lock:
            added = tuple(_rekey(accounts, {a.id for a in self._accounts}))
            if added:
                await self._commit(self._accounts + added)
                logger.info("Appended %d accounts", len(added))
            return added

    # -- internals --

    async def _write(self, accounts: Snapshot) -> None:
        try:
            await self._storage.write(self.key, encode_accounts(accounts))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"failed to save accounts: {e}") from e

    async def _commit(self, accounts: Snapshot) -> None:
        # State only changes once the write has succeeded.
        await self._write(accounts)
        self._accounts = accounts
        self.changes.publish(self._accounts)
