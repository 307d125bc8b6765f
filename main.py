#!/usr/bin/env python3
"""
HealthTrack -- operator command line.

Works directly against the database configured by DATABASE_URL (or --db-url),
without going through the HTTP API. Passwords are always prompted for, never
taken from the command line.

Usage:
  python main.py create-account alice@example.com
  python main.py set-password alice@example.com      # also clears a lockout
  python main.py purge-sessions
  python main.py show-record alice@example.com
  python main.py delete-record alice@example.com

Environment variables:
  DATABASE_URL   SQLAlchemy URL. Defaults to healthtrack.db beside the package.
  SECRET_KEY     Required unless DEBUG=true (session tokens are HMAC'd with it).
"""

import argparse
import getpass
import json
import sys

from auth.credentials import CredentialVerifier
from auth.sessions import SessionIssuer
from auth.store import AccountStore, SessionStore
from auth.tokens import PASSWORD_MAX_BYTES, password_too_long
from core.errors import DuplicateAccountError, HealthTrackError
from records.store import HealthRecordStore


def _prompt_password() -> str:
    password = getpass.getpass("New password: ")
    if len(password) < 8:
        raise SystemExit("  [!] Password must be at least 8 characters.")
    if password_too_long(password):
        raise SystemExit(f"  [!] Password must be at most {PASSWORD_MAX_BYTES} bytes (UTF-8).")
    if getpass.getpass("Repeat password: ") != password:
        raise SystemExit("  [!] Passwords do not match.")
    return password


def _require_account(accounts: AccountStore, email: str):
    account = accounts.get_by_email(email)
    if account is None:
        raise SystemExit(f"  [!] No account for '{email}'.")
    return account


def cmd_create_account(args, accounts: AccountStore, sessions: SessionIssuer) -> int:
    verifier = CredentialVerifier(accounts, sessions)
    try:
        account_id = verifier.create_account(args.email, _prompt_password())
    except DuplicateAccountError:
        print(f"  [!] An account for '{args.email}' already exists.")
        return 1
    print(f"  Created account {account_id} for {args.email.strip().lower()}")
    return 0


def cmd_set_password(args, accounts: AccountStore, sessions: SessionIssuer) -> int:
    account = _require_account(accounts, args.email)
    verifier = CredentialVerifier(accounts, sessions)
    verifier.set_password(account.id, _prompt_password())
    print(f"  Password updated for account {account.id}; lockout cleared and sessions revoked.")
    return 0


def cmd_purge_sessions(args, accounts: AccountStore, sessions: SessionIssuer) -> int:
    removed = sessions.purge_expired()
    print(f"  Removed {removed} expired session(s).")
    return 0


def cmd_show_record(args, accounts: AccountStore, sessions: SessionIssuer) -> int:
    account = _require_account(accounts, args.email)
    records = HealthRecordStore(args.db_url)
    try:
        record = records.get(account.id)
    finally:
        records.close()
    if record is None:
        print(f"  No health record for account {account.id}.")
        return 1
    print(json.dumps({"updated_at": record.updated_at.isoformat(), "payload": record.payload}, indent=2))
    return 0


def cmd_delete_record(args, accounts: AccountStore, sessions: SessionIssuer) -> int:
    account = _require_account(accounts, args.email)
    records = HealthRecordStore(args.db_url)
    try:
        deleted = records.delete(account.id)
    finally:
        records.close()
    print(f"  {'Deleted' if deleted else 'No'} health record for account {account.id}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="healthtrack",
        description="HealthTrack operator commands (accounts, sessions, records).",
    )
    parser.add_argument("--db-url", default=None, help="SQLAlchemy database URL (default: DATABASE_URL)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-account", help="Register a new account")
    p.add_argument("email")
    p.set_defaults(func=cmd_create_account)

    p = sub.add_parser("set-password", help="Reset an account's password and clear its lockout")
    p.add_argument("email")
    p.set_defaults(func=cmd_set_password)

    p = sub.add_parser("purge-sessions", help="Delete expired sessions")
    p.set_defaults(func=cmd_purge_sessions)

    p = sub.add_parser("show-record", help="Print an account's health record as JSON")
    p.add_argument("email")
    p.set_defaults(func=cmd_show_record)

    p = sub.add_parser("delete-record", help="Erase an account's health record")
    p.add_argument("email")
    p.set_defaults(func=cmd_delete_record)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    accounts = AccountStore(args.db_url)
    session_store = SessionStore(args.db_url)
    try:
        return args.func(args, accounts, SessionIssuer(session_store))
    except HealthTrackError as e:
        print(f"  [!] {e}")
        return 1
    finally:
        session_store.close()
        accounts.close()


if __name__ == "__main__":
    sys.exit(main())
