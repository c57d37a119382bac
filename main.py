#!/usr/bin/env python3
"""
iCafe auth -- registration, login, and user management backend.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080 --reload
  python main.py create-user admin --phone 0900000000 --full-name "Site Admin" --role admin
  python main.py create-user bob --phone 0900000001 --full-name "Bob" --email bob@example.com

Environment variables:
  SECRET_KEY    Token signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL  SQLAlchemy URL for the user store (default: sqlite:///icafe_auth.db).
"""

import argparse
import getpass
import sys

from auth.errors import AuthError
from auth.permissions import Role
from auth.store import UserStore
from auth.users import UserService
from core.config import get_settings


def _read_password() -> str:
    """Prompt twice without echo. Returns "" if the entries do not match."""
    password = getpass.getpass("  Password: ")
    confirm = getpass.getpass("  Confirm password: ")
    if password != confirm:
        print("  [!] Passwords do not match.")
        return ""
    if len(password) < 6:
        print("  [!] Password must be at least 6 characters.")
        return ""
    return password


def _create_user(args: argparse.Namespace) -> int:
    password = _read_password()
    if not password:
        return 1

    store = UserStore(get_settings().database_url)
    try:
        user = UserService(store).create_user(
            username=args.username,
            password=password,
            phone=args.phone,
            full_name=args.full_name or args.username,
            role=Role(args.role),
            email=args.email,
        )
    except AuthError as e:
        print(f"  [!] Could not create '{args.username}': {e.message}")
        return 1
    finally:
        store.close()

    print(f"  Created {user.role.value} '{user.username}' (id={user.id}).")
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="icafe-auth",
        description="Registration backend: authentication and user management.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py create-user admin --phone 0900000000 --role admin
  DEBUG=true python main.py serve
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on source changes (development only)")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Create an account with an explicit role")
    create.add_argument("username")
    create.add_argument("--phone", required=True, help="Unique phone number, 10-15 digits")
    create.add_argument("--full-name", dest="full_name", default="", help="Display name (default: username)")
    create.add_argument("--email", default=None, help="Optional unique email address")
    create.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.CUSTOMER.value,
        help="Role to assign (default: customer)",
    )
    create.set_defaults(func=_create_user)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
