"""otpkeep CLI — manage TOTP accounts from the terminal.

Usage:
    python -m otpkeep list                       # List accounts
    python -m otpkeep codes                      # Current codes
    python -m otpkeep add --issuer X --name Y --secret S
    python -m otpkeep import 'otpauth://totp/...' # Add from a QR payload
    python -m otpkeep remove ID                  # Delete an account
    python -m otpkeep uri ID                     # Print otpauth URI
    python -m otpkeep backup export [-o FILE] [--encrypt]
    python -m otpkeep backup restore FILE        # Append accounts from a backup
    python -m otpkeep watch                      # Live codes with countdown
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path

from otpkeep.auth import NoBiometrics, SessionLock
from otpkeep.backup import create_backup, restore_backup
from otpkeep.config import Algorithm, settings
from otpkeep.errors import BackupError, OtpKeepError
from otpkeep.models import SUPPORTED_DIGITS, Account, new_account
from otpkeep.otp import generate_code, random_secret, seconds_remaining
from otpkeep.scheduler import RefreshScheduler, RefreshTick
from otpkeep.storage import open_storage
from otpkeep.store import AccountStore
from otpkeep.uri import build_uri, parse_uri

logger = logging.getLogger(__name__)


async def _open_store() -> AccountStore:
    lock = SessionLock(NoBiometrics())
    if not await lock.unlock():
        print("Error: authentication failed")
        sys.exit(1)
    store = AccountStore(open_storage())
    await store.load()
    return store


def _code_or_error(account: Account) -> str:
    try:
        return generate_code(account)
    except OtpKeepError as e:
        return f"<{e}>"


async def cmd_list(args: argparse.Namespace) -> None:
    """List accounts."""
    store = await _open_store()
    print(f"\n{'ID':<15} {'Issuer':<20} {'Account':<30} {'Digits':>6} {'Period':>6} {'Alg':<7}")
    print("-" * 90)
    for a in store:
        print(f"  {a.id:<13} {a.issuer:<20} {a.account_name:<30} {a.digits:>6} {a.period:>6} {a.algorithm:<7}")
    print(f"\n  Total: {len(store)} accounts\n")


async def cmd_codes(args: argparse.Namespace) -> None:
    """Print current codes."""
    store = await _open_store()
    for a in store:
        left = seconds_remaining(a.period)
        print(f"  {_code_or_error(a):>10}  {left:>2}s  {a.label}")


async def cmd_add(args: argparse.Namespace) -> None:
    """Add an account from manual fields."""
    secret = args.secret
    if args.generate:
        secret = random_secret()
    if not args.name or not secret:
        print("Error: --name and --secret (or --generate) are required")
        sys.exit(1)
    account = new_account(
        account_name=args.name,
        secret=secret,
        issuer=args.issuer or "",
        digits=args.digits,
        period=args.period,
        algorithm=args.algorithm,
    )
    store = await _open_store()
    await store.add(account)
    print(f"Added {account.label} (id {account.id})")
    if args.generate:
        print(f"  Secret: {account.secret}")
        print(f"  URI:    {build_uri(account)}")


async def cmd_import(args: argparse.Namespace) -> None:
    """Add an account from an otpauth URI."""
    account = parse_uri(args.uri)
    store = await _open_store()
    await store.add(account)
    print(f"Added {account.label} (id {account.id})")


async def cmd_remove(args: argparse.Namespace) -> None:
    """Delete an account."""
    store = await _open_store()
    if await store.remove(args.id):
        print(f"Removed {args.id}")
    else:
        print(f"No account with id {args.id}")


async def cmd_uri(args: argparse.Namespace) -> None:
    """Print the otpauth URI for an account."""
    store = await _open_store()
    account = store.get(args.id)
    if account is None:
        print(f"Error: no account with id {args.id}")
        sys.exit(1)
    print(build_uri(account))


def _password(args: argparse.Namespace, confirm: bool = False) -> str:
    if args.password is not None:
        return args.password
    password = getpass.getpass("Backup password: ")
    if confirm and getpass.getpass("Repeat password: ") != password:
        print("Error: passwords do not match")
        sys.exit(1)
    return password


async def cmd_backup(args: argparse.Namespace) -> None:
    """Export or restore a backup."""
    store = await _open_store()

    if args.action == "export":
        if not len(store):
            print("No accounts to backup")
            return
        encrypt = args.encrypt or settings.backup_encryption
        password = _password(args, confirm=True) if encrypt else (args.password or "")
        data = create_backup(store, password, encrypt=encrypt)
        if args.output:
            Path(args.output).write_text(data + "\n", encoding="utf-8")
            print(f"Backup of {len(store)} accounts written to {args.output}")
        else:
            print(data)

    elif args.action == "restore":
        if not args.file:
            print("Error: a backup file (or - for stdin) is required")
            sys.exit(1)
        try:
            data = sys.stdin.read() if args.file == "-" else Path(args.file).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise BackupError("read", f"cannot read {args.file}: {e}") from e
        password = args.password if args.password is not None else ""
        added = await restore_backup(store, data, password)
        print(f"Restored {len(added)} accounts ({len(store)} total)")


async def cmd_watch(args: argparse.Namespace) -> None:
    """Print codes on every window change until interrupted."""
    store = await _open_store()
    last_codes: dict[str, str] = {}

    def show(tick: RefreshTick) -> None:
        codes = {a.id: _code_or_error(a) for a in store}
        if codes != last_codes:
            last_codes.clear()
            last_codes.update(codes)
            print()
            for a in store:
                print(f"  {codes[a.id]:>10}  {tick.by_period.get(a.period, 0):>2}s  {a.label}")
        print(f"\r  next refresh in {tick.remaining:>2}s ", end="", flush=True)

    scheduler = RefreshScheduler(periods=store.periods)
    unsubscribe = scheduler.subscribe(show)
    try:
        while scheduler.is_running:
            await asyncio.sleep(0.5)
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        unsubscribe()
        print()


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="otpkeep",
        description="otpkeep — local two-factor code manager",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", help="Command to run")

    sub.add_parser("list", help="List accounts")
    sub.add_parser("codes", help="Show current codes")

    p_add = sub.add_parser("add", help="Add account manually")
    p_add.add_argument("--issuer", default="", help="Service name")
    p_add.add_argument("--name", help="Account name")
    p_add.add_argument("--secret", help="Base32 secret (spaces/dashes allowed)")
    p_add.add_argument("--generate", action="store_true", help="Generate a new secret")
    p_add.add_argument("--digits", type=int, choices=SUPPORTED_DIGITS, default=6)
    p_add.add_argument("--period", type=int, default=30)
    p_add.add_argument("--algorithm", choices=[a.value for a in Algorithm], default=Algorithm.SHA1.value)

    p_import = sub.add_parser("import", help="Add account from otpauth URI")
    p_import.add_argument("uri")

    p_remove = sub.add_parser("remove", help="Remove account")
    p_remove.add_argument("id")

    p_uri = sub.add_parser("uri", help="Print otpauth URI")
    p_uri.add_argument("id")

    p_backup = sub.add_parser("backup", help="Export or restore backups")
    p_backup.add_argument("action", choices=["export", "restore"])
    p_backup.add_argument("file", nargs="?", help="Backup file to restore (- for stdin)")
    p_backup.add_argument("-o", "--output", help="Write export to file")
    p_backup.add_argument("--password", help="Backup password (prompted if omitted)")
    p_backup.add_argument("--encrypt", action="store_true", help="Password-encrypt the export")

    sub.add_parser("watch", help="Live codes with countdown")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    if not args.command:
        parser.print_help()
        sys.exit(0)

    dispatch = {
        "list": cmd_list,
        "codes": cmd_codes,
        "add": cmd_add,
        "import": cmd_import,
        "remove": cmd_remove,
        "uri": cmd_uri,
        "backup": cmd_backup,
        "watch": cmd_watch,
    }
    try:
        asyncio.run(dispatch[args.command](args))
    except OtpKeepError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
