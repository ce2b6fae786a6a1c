#!/usr/bin/env python3
"""
SessionGuard -- administrative command line.

Usage:
  python main.py create-identity --email ada@example.com --name "Ada Lovelace"
  python main.py hash-password
  python main.py purge-sessions
  python main.py unlock ada@example.com
  python main.py show-config

Configuration is read from the environment and .env (see core/config.py).
Passwords are always read with getpass, never from argv, so they do not end
up in shell history or the process list.
"""

import argparse
import getpass
import sys

from auth.hashing import HashService
from auth.service import AuthService
from auth.validation import normalize_email
from core.config import get_settings
from core.result import Failure


def _read_password(confirm: bool = True) -> str:
    password = getpass.getpass("  Password: ")
    if confirm and getpass.getpass("  Confirm:  ") != password:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return password


def _cmd_create_identity(args: argparse.Namespace) -> int:
    service = AuthService.from_settings(get_settings())
    try:
        result = service.create_identity(args.email, args.name, _read_password())
    finally:
        service.close()
    if isinstance(result, Failure):
        print(f"  [!] {result.message} ({result.code})")
        return 1
    print(f"  Created identity {result.data.id} for {result.data.email}")
    return 0


def _cmd_hash_password(args: argparse.Namespace) -> int:
    cost = args.cost if args.cost is not None else get_settings().hash_cost_factor
    print(HashService(cost).hash(_read_password()))
    return 0


def _cmd_purge_sessions(args: argparse.Namespace) -> int:
    service = AuthService.from_settings(get_settings())
    try:
        removed = service.purge_expired_sessions()
    finally:
        service.close()
    print(f"  Removed {removed} expired session(s).")
    return 0


def _cmd_unlock(args: argparse.Namespace) -> int:
    service = AuthService.from_settings(get_settings())
    try:
        service.attempts.reset(normalize_email(args.email))
    finally:
        service.close()
    print(f"  Cleared failed sign-in attempts for {args.email}.")
    return 0


def _cmd_show_config(args: argparse.Namespace) -> int:
    settings = get_settings()
    for name, value in sorted(settings.model_dump().items()):
        if name == "secret_key":
            value = "********"
        print(f"  {name.upper():<28} {value}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="sessionguard",
        description="Administer SessionGuard identities and sessions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-identity --email ada@example.com --name "Ada Lovelace"
  python main.py hash-password --cost 12
  python main.py purge-sessions
  DATABASE_URL=sqlite:///prod.db python main.py show-config
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-identity", help="Create an identity (password prompted)")
    create.add_argument("--email", required=True, help="Sign-in email address")
    create.add_argument("--name", required=True, help="Display name")
    create.set_defaults(func=_cmd_create_identity)

    hash_pw = sub.add_parser("hash-password", help="Print a bcrypt digest of a prompted password")
    hash_pw.add_argument(
        "--cost",
        type=int,
        default=None,
        metavar="N",
        help="bcrypt cost factor (default: HASH_COST_FACTOR)",
    )
    hash_pw.set_defaults(func=_cmd_hash_password)

    purge = sub.add_parser("purge-sessions", help="Delete sessions whose reset token has expired")
    purge.set_defaults(func=_cmd_purge_sessions)

    unlock = sub.add_parser("unlock", help="Clear the lockout state of an account")
    unlock.add_argument("email", help="Email address of the locked account")
    unlock.set_defaults(func=_cmd_unlock)

    show = sub.add_parser("show-config", help="Print the effective settings (secret masked)")
    show.set_defaults(func=_cmd_show_config)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        return
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
