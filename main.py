#!/usr/bin/env python3
"""
KeyShelf -- operator command line.

Usage:
  python main.py generate-master-key
  python main.py create-user alice@example.com
  python main.py create-user alice@example.com --inactive

Environment variables:
  VAULT_MASTER_KEY   Fernet key the secret store encrypts with. Required
                     unless DEBUG=true. Create one with generate-master-key.
  AUTH_DB_URL        Where create-user writes (default: auth/keyshelf_auth.db).

The HTTP API is served separately:  uvicorn asgi:app
"""

import argparse
import getpass
import sys

from cryptography.fernet import Fernet


def _generate_master_key(args: argparse.Namespace) -> int:
    print(Fernet.generate_key().decode("ascii"))
    return 0


def _create_user(args: argparse.Namespace) -> int:
    # Imported here: loading settings fails without SECRET_KEY, and
    # generate-master-key must work before any configuration exists.
    from sqlalchemy.exc import IntegrityError

    from auth.models import User
    from auth.store import UserStore
    from auth.tokens import hash_password
    from core.config import get_settings

    email = args.email.strip().lower()
    if "@" not in email:
        print(f"  [!] '{args.email}' doesn't look like an email address.")
        return 2

    min_length = get_settings().min_password_length
    password = getpass.getpass("Password: ")
    if len(password) < min_length:
        print(f"  [!] Password must be at least {min_length} characters.")
        return 2
    if getpass.getpass("Repeat password: ") != password:
        print("  [!] Passwords do not match.")
        return 2

    store = UserStore()
    try:
        user_id = store.create_user(
            User(email=email, hashed_password=hash_password(password), is_active=not args.inactive)
        )
    except IntegrityError:
        print(f"  [!] A user with email {email} already exists.")
        return 1
    finally:
        store.close()
    print(f"Created user {email} (id={user_id}). Assign a role through the API.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="keyshelf",
        description="KeyShelf operator tools.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py generate-master-key >> .env.key
  python main.py create-user admin@example.com
        """,
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    gen = subparsers.add_parser("generate-master-key", help="Print a new Fernet key for VAULT_MASTER_KEY")
    gen.set_defaults(handler=_generate_master_key)

    create = subparsers.add_parser("create-user", help="Create a principal (password prompted)")
    create.add_argument("email", metavar="EMAIL", help="Login email of the new principal")
    create.add_argument("--inactive", action="store_true", help="Create the account deactivated")
    create.set_defaults(handler=_create_user)

    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 1
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
