"""Command-line interface for the event booking service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

from booking.accounts import AccountService
from booking.config import Settings, load_settings
from booking.database import Database
from booking.errors import PasswordHashingError, StoreError
from booking.passwords import PasswordHasher
from booking.tokens import TokenService

logger = logging.getLogger("booking.main")

_MIN_PASSWORD_LENGTH = 8


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Event booking service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: BOOKING_CONFIG_PATH or config/booking.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve", host="0.0.0.0", port=8080)

    subparsers.add_parser("init-db", help="Create the booking database schema")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for the HTTP API (default: 8080)",
    )

    create_parser = subparsers.add_parser("create-user", help="Create a user account")
    create_parser.add_argument("email", help="Unique email address for login")

    subparsers.add_parser("list-users", help="List registered users")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "create-user", "list-users"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands and first != "--config":
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_settings(config: str | None) -> Settings:
    try:
        return load_settings(Path(config) if config else None)
    except ValueError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc


def _initialise_database(settings: Settings) -> Database:
    database = Database(
        settings.database_path,
        max_connections=settings.pool_max_connections,
        max_idle=settings.pool_max_idle,
        timeout=settings.pool_timeout,
    )
    try:
        database.initialize(allow_duplicate_registrations=settings.allow_duplicate_registrations)
    except StoreError as exc:
        raise SystemExit(f"Could not initialise the database at {settings.database_path}: {exc}") from exc
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, database: Database, host: str, port: int) -> None:
    from booking.api import create_app
    import uvicorn

    logger.info("Starting booking API on http://%s:%s", host, port)

    app = create_app(settings=settings, database=database)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {_MIN_PASSWORD_LENGTH} characters): ")
        if len(password) < _MIN_PASSWORD_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(settings: Settings, database: Database, email: str) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.", file=sys.stderr)
        return 1

    accounts = AccountService(
        database,
        PasswordHasher(settings.bcrypt_rounds),
        TokenService.from_settings(settings),
    )
    try:
        user = accounts.signup(email, password)
    except (ValueError, PasswordHashingError, StoreError) as exc:
        print(f"Failed to create user: {exc}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.email}")
    return 0


def _list_users(database: Database) -> int:
    try:
        users = database.list_users()
    except StoreError as exc:
        print(f"Failed to list users: {exc}", file=sys.stderr)
        return 1
    if not users:
        print("No users are currently registered.")
        return 0

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Email':<40}  Created")
    print("-" * 72)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:>4}  {user.email:<40}  {created}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = _load_settings(args.config)
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings=settings, database=database, host=args.host, port=args.port)
    elif args.command == "create-user":
        return _create_user(settings, database, args.email)
    elif args.command == "list-users":
        return _list_users(database)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
