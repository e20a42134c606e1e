"""Tests for the account store."""

from __future__ import annotations

import asyncio
import json

import pytest

from otpkeep.errors import ParseError, StorageError, ValidationError
from otpkeep.models import new_account
from otpkeep.storage import MemoryStorage
from otpkeep.store import AccountStore
from otpkeep.uri import parse_uri

KEY = "totp_accounts"


class FailingStorage(MemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False
        self.fail_reads = False

    async def read(self, key):
        if self.fail_reads:
            raise StorageError("disk unavailable")
        return await super().read(key)

    async def write(self, key, value):
        if self.fail_writes:
            raise OSError("disk full")
        await super().write(key, value)


def run(coro):
    return asyncio.run(coro)


def test_load_missing_key_is_empty():
    store = AccountStore(MemoryStorage())
    assert run(store.load()) == ()
    assert len(store) == 0


def test_default_key_name():
    assert AccountStore(MemoryStorage()).key == KEY


def test_add_appends_in_order_and_persists(accounts):
    storage = MemoryStorage()
    store = AccountStore(storage)

    async def scenario():
        for a in accounts:
            await store.add(a)

    run(scenario())
    assert store.accounts == tuple(accounts)
    stored = json.loads(storage.values[KEY])
    assert [e["id"] for e in stored] == [a.id for a in accounts]
    assert stored[0]["accountName"] == "alice@example.com"


def test_persist_then_load_is_identity(accounts):
    storage = MemoryStorage()
    store = AccountStore(storage)

    async def scenario():
        await store.extend(accounts)
        await store.persist()
        return await AccountStore(storage).load()

    assert run(scenario()) == store.accounts


def test_duplicates_allowed_except_id(google):
    store = AccountStore(MemoryStorage())
    twin = new_account(account_name=google.account_name, secret=google.secret, issuer=google.issuer)

    async def scenario():
        await store.add(google)
        await store.add(twin)
        with pytest.raises(ValidationError, match="already exists"):
            await store.add(google)

    run(scenario())
    assert len(store) == 2


def test_remove(accounts):
    storage = MemoryStorage()
    store = AccountStore(storage)

    async def scenario():
        await store.extend(accounts)
        assert await store.remove(accounts[1].id) is True
        assert await store.remove("nope") is False

    run(scenario())
    assert [a.id for a in store] == [accounts[0].id, accounts[2].id]
    assert len(json.loads(storage.values[KEY])) == 2


def test_replace_keeps_position(accounts):
    store = AccountStore(MemoryStorage())

    async def scenario():
        await store.extend(accounts)
        edited = accounts[1].with_changes(issuer="GitHub Enterprise")
        await store.replace(accounts[1].id, edited)
        with pytest.raises(ValidationError):
            await store.replace("missing", edited)

    run(scenario())
    assert store.accounts[1].issuer == "GitHub Enterprise"
    assert store.accounts[1].id == accounts[1].id
    assert len(store) == 3


def test_observers_get_whole_snapshots(accounts):
    store = AccountStore(MemoryStorage())
    seen = []
    unsubscribe = store.subscribe(seen.append)

    async def scenario():
        await store.add(accounts[0])
        await store.add(accounts[1])
        await store.remove("missing")
        unsubscribe()
        await store.add(accounts[2])

    run(scenario())
    assert seen == [(accounts[0],), (accounts[0], accounts[1])]


def test_failing_observer_does_not_break_mutation(google):
    store = AccountStore(MemoryStorage())

    def boom(snapshot):
        raise RuntimeError("ui gone")

    store.subscribe(boom)
    run(store.add(google))
    assert store.accounts == (google,)


def test_corrupt_json_resets_to_empty(caplog):
    store = AccountStore(MemoryStorage({KEY: "{not json"}))
    assert run(store.load()) == ()
    assert "corrupt" in caplog.text


def test_invalid_entry_resets_to_empty(google):
    bad = [google.to_dict(), {"id": "2", "issuer": "X", "secret": "S"}]
    store = AccountStore(MemoryStorage({KEY: json.dumps(bad)}))
    assert run(store.load()) == ()


def test_unreadable_storage_resets_to_empty():
    storage = FailingStorage()
    storage.fail_reads = True
    assert run(AccountStore(storage).load()) == ()


def test_duplicate_stored_ids_are_reassigned(google):
    storage = MemoryStorage({KEY: json.dumps([google.to_dict(), google.to_dict()])})
    loaded = run(AccountStore(storage).load())
    assert len(loaded) == 2
    assert loaded[0].id == google.id
    assert loaded[1].id != google.id


def test_failed_write_rolls_back(google, accounts):
    storage = FailingStorage()
    store = AccountStore(storage)
    seen = []
    store.subscribe(seen.append)

    async def scenario():
        await store.add(google)
        storage.fail_writes = True
        with pytest.raises(StorageError, match="disk full"):
            await store.add(accounts[1])
        with pytest.raises(StorageError):
            await store.remove(google.id)

    run(scenario())
    assert store.accounts == (google,)
    assert len(seen) == 1
    assert json.loads(storage.values[KEY])[0]["id"] == google.id


def test_bad_uri_leaves_store_unchanged(google):
    store = AccountStore(MemoryStorage())
    run(store.add(google))
    with pytest.raises(ParseError):
        run(store.add(parse_uri("otpauth://totp/Google:alice?issuer=Google")))
    assert store.accounts == (google,)


def test_periods(accounts):
    store = AccountStore(MemoryStorage())
    run(store.extend(accounts))
    assert store.periods() == {30, 60}
    assert store.get(accounts[2].id) == accounts[2]
    assert store.get("missing") is None
