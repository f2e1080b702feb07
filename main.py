#!/usr/bin/env python3
"""
AuthKeeper -- command-line client for the credential and session core.

The CLI is one persisted client context ("cli"): a successful login stores the
session token in the database's client_state table, and later invocations
resume from it until logout or expiry.

Usage:
  python main.py register --full-name "Test User" --email t@x.com --username tuser
  python main.py login --email t@x.com
  python main.py whoami
  python main.py profile --bio "Backend dev" --skill Python --skill SQL
  python main.py passwd
  python main.py stats
  python main.py logout
  python main.py seed-demo

Passwords are prompted for when --password / --new-password are omitted.

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the auth database (default: ./authkeeper.db)
  SECRET_KEY     Required unless DEBUG=true. See core/config.py.
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.errors import AuthResult
from auth.models import Anonymous, AuthContext, RegistrationInput
from auth.schema import make_engine
from auth.service import AuthService, seed_demo_account
from auth.sessions import ClientStateStore, SessionStore
from auth.store import AccountStore
from core.config import get_settings

CLIENT_ID = "cli"

logger = logging.getLogger("authkeeper.cli")


def _print_state(context: AuthContext) -> None:
    """Presentation adapter: render auth state changes on the terminal."""
    if isinstance(context, Anonymous):
        print("  Signed out.")
    else:
        print(f"  Signed in as {context.account.username} <{context.account.email}>")


def _fail(result: AuthResult) -> int:
    error = result.error
    print(f"  [!] {error.message}", file=sys.stderr)
    for detail in error.details:
        print(f"      - {detail}", file=sys.stderr)
    return 1


def _secret(value: Optional[str], prompt: str) -> str:
    return value if value is not None else getpass.getpass(prompt)


def build_service(db_url: str) -> AuthService:
    engine = make_engine(db_url)
    accounts = AccountStore(engine)
    sessions = SessionStore(engine, accounts)
    return AuthService(accounts, sessions, ClientStateStore(engine), client_id=CLIENT_ID)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authkeeper",
        description="Register, log in and manage your session from the terminal.",
    )
    parser.add_argument("--db", metavar="URL", help="SQLAlchemy database URL (overrides DATABASE_URL)")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    reg = sub.add_parser("register", help="Create an account and sign in")
    reg.add_argument("--full-name", required=True)
    reg.add_argument("--email", required=True)
    reg.add_argument("--username", required=True)
    reg.add_argument("--password")
    reg.add_argument("--confirm-password")

    login = sub.add_parser("login", help="Sign in with email and password")
    login.add_argument("--email", required=True)
    login.add_argument("--password")

    sub.add_parser("logout", help="End the current session")
    sub.add_parser("whoami", help="Show the signed-in account, if any")

    profile = sub.add_parser("profile", help="Update profile fields (only the ones given)")
    profile.add_argument("--avatar")
    profile.add_argument("--bio")
    profile.add_argument("--location")
    profile.add_argument("--skill", action="append", dest="skills", metavar="SKILL", help="Repeat for several skills")

    passwd = sub.add_parser("passwd", help="Change your password")
    passwd.add_argument("--current-password")
    passwd.add_argument("--new-password")

    sub.add_parser("stats", help="Show account statistics")
    sub.add_parser("seed-demo", help="Create the demo account if it does not exist")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    settings = get_settings()
    service = build_service(args.db or settings.database_url)
    try:
        if args.command == "whoami":
            service.subscribe(_print_state)
            service.resume()
            return 0

        if args.command == "seed-demo":
            created = seed_demo_account(service.accounts, settings.demo_password)
            print("  Demo account created." if created else "  Demo account already exists.")
            return 0

        service.resume()
        service.subscribe(_print_state)
        return _run(service, args)
    finally:
        service.close()
        service.accounts.engine.dispose()


def _run(service: AuthService, args: argparse.Namespace) -> int:
    if args.command == "register":
        password = _secret(args.password, "Password: ")
        confirm = args.confirm_password if args.confirm_password is not None else (
            password if args.password is not None else getpass.getpass("Confirm password: ")
        )
        result = service.register(
            RegistrationInput(
                full_name=args.full_name,
                email=args.email,
                username=args.username,
                password=password,
                confirm_password=confirm,
            )
        )
        return 0 if result.ok else _fail(result)

    if args.command == "login":
        result = service.login(args.email, _secret(args.password, "Password: "))
        return 0 if result.ok else _fail(result)

    if args.command == "logout":
        service.logout()
        return 0

    if args.command == "profile":
        changes = {
            key: value
            for key, value in (
                ("avatar", args.avatar),
                ("bio", args.bio),
                ("location", args.location),
                ("skills", args.skills),
            )
            if value is not None
        }
        result = service.update_profile(changes)
        if not result.ok:
            return _fail(result)
        profile = result.value
        print(f"  Bio:      {profile.bio}")
        print(f"  Location: {profile.location}")
        print(f"  Skills:   {', '.join(profile.skills)}")
        print(f"  Avatar:   {profile.avatar or '-'}")
        return 0

    if args.command == "passwd":
        result = service.change_password(
            _secret(args.current_password, "Current password: "),
            _secret(args.new_password, "New password: "),
        )
        if not result.ok:
            return _fail(result)
        print("  Password changed.")
        return 0

    if args.command == "stats":
        result = service.account_stats()
        if not result.ok:
            return _fail(result)
        stats = result.value
        print(f"  Accounts registered:     {stats.total_accounts}")
        print(f"  Days since registration: {stats.days_since_registration}")
        last = "never" if stats.last_login_days is None else f"{stats.last_login_days} day(s) ago"
        print(f"  Last login:              {last}")
        return 0

    logger.error("Unknown command %r", args.command)
    return 2


def cli() -> None:
    """Console-script entry point (``authkeeper`` after pip install)."""
    sys.exit(main())


if __name__ == "__main__":
    cli()
