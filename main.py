#!/usr/bin/env python3
"""
TeamDesk operator commands.

Self-service signup only ever creates MEMBER accounts, so the first admin on
a fresh database is created here, against the same DATABASE_URL the API uses.

Usage:
  python main.py create-admin --email ops@example.com --name "Ops"
  python main.py audit
  python main.py audit --limit 100

Environment variables:
  DATABASE_URL   SQLAlchemy URL (default: teamdesk.db beside the code)
  SECRET_KEY     Required unless DEBUG=true
"""

import argparse
import getpass
import sys

from sqlalchemy.exc import IntegrityError

from audit.store import AuditStore
from auth.models import User
from auth.roles import Role
from auth.store import UserStore
from auth.tokens import hash_password

MIN_PASSWORD_LENGTH = 6


def _read_password() -> str:
    """Prompt twice without echo. Exits on mismatch or a short password."""
    password = getpass.getpass("  Password: ")
    if len(password) < MIN_PASSWORD_LENGTH:
        print(f"  [!] Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        sys.exit(1)
    if getpass.getpass("  Confirm:  ") != password:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return password


def create_admin(store: UserStore, email: str, name: str, password: str) -> str:
    """Insert an active ADMIN account and return its id. Raises IntegrityError on a taken email."""
    return store.create_user(
        User(
            email=email.strip().lower(),
            name=name.strip(),
            role=Role.ADMIN,
            hashed_password=hash_password(password),
        )
    )


def print_audit_trail(audit: AuditStore, limit: int) -> int:
    """Print the newest `limit` audit records, one per line. Returns the count printed."""
    records = audit.get_admin_audit_trail(limit)
    if not records:
        print("  No admin actions recorded.")
        return 0
    for r in records:
        print(f"  {r.created_at}  {r.action:<24} {r.target_type}:{r.target_id}  by {r.admin_id}  {r.details}")
    return len(records)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="teamdesk",
        description="TeamDesk operator commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --email ops@example.com --name "Ops"
  python main.py audit --limit 100
        """,
    )
    sub = parser.add_subparsers(dest="command")

    admin_cmd = sub.add_parser("create-admin", help="Create an ADMIN account (prompts for the password)")
    admin_cmd.add_argument("--email", required=True, help="Login email for the new admin")
    admin_cmd.add_argument("--name", required=True, help="Display name")

    audit_cmd = sub.add_parser("audit", help="Print the admin audit trail, newest first")
    audit_cmd.add_argument("--limit", type=int, default=50, metavar="N", help="Records to show (default: 50)")

    args = parser.parse_args()

    if args.command == "create-admin":
        password = _read_password()
        store = UserStore()
        try:
            user_id = create_admin(store, args.email, args.name, password)
        except IntegrityError:
            print(f"  [!] An account with email '{args.email}' already exists.")
            sys.exit(1)
        finally:
            store.close()
        print(f"  Admin created: {args.email} ({user_id})")
    elif args.command == "audit":
        audit = AuditStore()
        try:
            print_audit_trail(audit, args.limit)
        finally:
            audit.close()
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
