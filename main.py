"""Command-line interface for the RTO status board service."""

from __future__ import annotations
import argparse
import json
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Any, Dict, Sequence

import yaml

from rtoboard.config import Settings, load_settings
from rtoboard.database import Database, DuplicateUserError
from rtoboard.models import Role
from rtoboard.reports import compose_status, grand_total
from rtoboard.validation import StatusValidationError, validate_status_payload

logger = logging.getLogger("rtoboard.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="RTO status board utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML settings file (default: RTOBOARD_CONFIG or config/settings.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the JSON store and seed the admin account")
    subparsers.add_parser("list-users", help="Print the user directory")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port for the HTTP API (default: 3000)",
    )

    user_parser = subparsers.add_parser("create-user", help="Create a user account")
    user_parser.add_argument("username", help="Employee ID used as the username")
    user_parser.add_argument("name", help="Display name")
    user_parser.add_argument("email", help="Unique email address used to sign in")
    user_parser.add_argument(
        "--role",
        default=Role.ENGINEER.value,
        choices=[role.value for role in Role],
        help="Role for the new account (default: engineer)",
    )

    upload_parser = subparsers.add_parser(
        "upload-status", help="Record an RTO status snapshot from a YAML or JSON file"
    )
    upload_parser.add_argument("path", help="File holding summary and matrix counts")
    upload_parser.add_argument(
        "--uploaded-by",
        default=None,
        help="Email recorded as the uploader (default: first configured uploader email)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "list-users", "create-user", "upload-status"}

    prefix: list[str] = []
    if args_list[:1] == ["--config"] and len(args_list) >= 2:
        prefix, args_list = args_list[:2], args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*prefix, *args_list])
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args([*prefix, *args_list])
            args_list = ["serve", *args_list]

    return parser.parse_args([*prefix, *args_list])


def _load_settings(config: str | None) -> Settings:
    return load_settings(Path(config).expanduser() if config else None)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.store_path)
    database.initialize(settings.admin)
    logger.info("Store initialised at %s", settings.store_path)
    return database


def _serve(*, settings: Settings, database: Database, host: str, port: int) -> None:
    from rtoboard.api import create_app
    import uvicorn

    logger.info("Starting RTO status board API on http://%s:%s", host, port)

    app = create_app(database=database, settings=settings, initialize_database=False)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _list_users(database: Database) -> None:
    users = database.list_users()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Username':<16}  {'Name':<24}  {'Email':<32}  Role")
    print("-" * 90)
    for user in users:
        print(f"{user.id:>4}  {user.username:<16}  {user.name:<24}  {user.email:<32}  {user.role}")


def _prompt_for_password(min_length: int) -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {min_length} characters): ")
        if len(password) < min_length:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(database: Database, settings: Settings, args: argparse.Namespace) -> int:
    password = _prompt_for_password(settings.password_min_length)
    if password is None:
        print("Aborted creating user.")
        return 1

    try:
        user = database.create_user(args.username, args.name, args.email, password, args.role)
    except DuplicateUserError as exc:
        print(f"Failed to create user: {exc}")
        return 1

    print(f"Created user #{user.id}: {user.name} <{user.email}> as {user.role}")
    return 0


def _read_counts_file(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        if path.suffix.lower() == ".json":
            raw = json.load(handle)
        else:
            raw = yaml.safe_load(handle)
    if not isinstance(raw, dict):
        raise StatusValidationError(f"{path} must contain a mapping")
    return raw


def _upload_status(database: Database, settings: Settings, args: argparse.Namespace) -> int:
    uploader = args.uploaded_by or (settings.uploader_emails[0] if settings.uploader_emails else None)
    if not uploader:
        print("No uploader email configured; pass --uploaded-by.")
        return 1

    try:
        raw = _read_counts_file(Path(args.path).expanduser())
        if "aging_matrix" in raw:
            counts = validate_status_payload(raw)
        else:
            counts = validate_status_payload(compose_status(raw.get("summary") or {}, raw.get("matrix") or {}))
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        print(f"Failed to read {args.path}: {exc}")
        return 1
    except StatusValidationError as exc:
        print(f"Invalid status file: {exc}")
        return 1

    entry = database.add_status(counts, uploaded_by=uploader)
    print(
        f"Recorded RTO status #{entry.id} at {entry.uploaded_at} "
        f"(grand total {grand_total(entry.summary_counts)})"
    )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = _load_settings(args.config)
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings=settings, database=database, host=args.host, port=args.port)
    elif args.command == "init-db":
        print("Store initialisation complete.")
    elif args.command == "list-users":
        _list_users(database)
    elif args.command == "create-user":
        return _create_user(database, settings, args)
    elif args.command == "upload-status":
        return _upload_status(database, settings, args)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
