#!/usr/bin/env python3
"""
Tokengate -- credential-based authentication with rotating refresh tokens.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --reload
  python main.py create-user --email alice@example.com --full-name "Alice"

Environment variables (see core/config.py):
  PORT, DATABASE_URL, CORS_ORIGIN             Required outside DEBUG mode.
  ACCESS_TOKEN_SECRET, ACCESS_TOKEN_EXPIRY    Required outside DEBUG mode.
  REFRESH_TOKEN_SECRET, REFRESH_TOKEN_EXPIRY  Required outside DEBUG mode.
  DEBUG=true                                  Fill missing values with dev defaults.
"""

import argparse
import getpass
import sys

import uvicorn

from auth.errors import Err
from auth.passwords import PasswordHasher
from auth.session import SessionManager
from auth.store import UserStore
from auth.tokens import TokenSigner
from core.config import get_settings


def _serve(args: argparse.Namespace) -> int:
    settings = get_settings()
    uvicorn.run("asgi:app", host=args.host, port=settings.port, reload=args.reload)
    return 0


def _create_user(args: argparse.Namespace) -> int:
    """Register an account from the terminal. The password is prompted, never passed as an argument."""
    settings = get_settings()
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Confirm password: "):
        print("  [!] Passwords do not match.")
        return 1

    store = UserStore(settings.database_url)
    try:
        manager = SessionManager(store, PasswordHasher(settings.bcrypt_rounds), TokenSigner.from_settings(settings))
        result = manager.register(args.full_name, args.email, password)
    finally:
        store.close()

    if isinstance(result, Err):
        print(f"  [!] {result.error.message}")
        return 1
    print(f"  Created user {result.value.email} (id {result.value.id})")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Tokengate -- credential-based authentication service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API on PORT.")
    serve.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1).")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only).")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Register a user account.")
    create.add_argument("--email", required=True)
    create.add_argument("--full-name", required=True)
    create.set_defaults(func=_create_user)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
