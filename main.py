"""Command-line interface for the MentorLink service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from typing import Sequence

from dotenv import load_dotenv

from mentorlink.config import Settings, load_settings
from mentorlink.database import Database
from mentorlink.errors import DuplicateUserError
from mentorlink.models import Role
from mentorlink.security import PASSWORD_MIN_LENGTH

logger = logging.getLogger("mentorlink.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="MentorLink mentor matching portal")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the data directory and JSON collections")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the portal")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the portal (default: PORT or 3000)",
    )

    subparsers.add_parser("admin", help="Launch the interactive administration console")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-db"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.data_dir)
    database.initialize()
    logger.info("Data directory initialised at %s", settings.data_dir)
    return database


def _serve(*, settings: Settings, database: Database, host: str, port: int | None) -> None:
    from mentorlink.application import create_application
    import uvicorn

    bind_port = port if port is not None else settings.port
    logger.info("Starting MentorLink on http://%s:%s", host, bind_port)

    app = create_application(settings=settings, database=database)
    uvicorn.run(app, host=host, port=bind_port, log_level="info")


def _run_admin_cli(database: Database, settings: Settings) -> None:
    """Provide an interactive management console for administrators."""

    print("MentorLink Administration Console")
    print("Press Ctrl+C at any time to exit.\n")

    try:
        while True:
            print("Select an option:")
            print("  1) List all users")
            print("  2) Add a new user")
            print("  3) Exit")

            choice = input("Enter choice [1-3]: ").strip()

            if choice == "1":
                _list_users(database)
            elif choice == "2":
                _add_user(database, settings)
            elif choice == "3":
                print("Goodbye!")
                return
            else:
                print("Invalid selection. Please choose a number from the menu.\n")

            print()
    except KeyboardInterrupt:
        print("\nExiting administration console.")


def _list_users(database: Database) -> None:
    users = database.list_users()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'Role':<7}  {'Name':<24}  {'Email':<32}  Links")
    print("-" * 80)
    for user in users:
        links = user.assigned_mentors if user.is_junior else user.assigned_juniors
        print(f"{user.role.value:<7}  {user.name:<24}  {user.email:<32}  {', '.join(links) or '-'}")


def _add_user(database: Database, settings: Settings) -> None:
    print("\nCreate a new user (leave the name blank to cancel).")
    name = input("Name: ").strip()
    if not name:
        print("User creation cancelled.")
        return

    email = input("Email address: ").strip()
    if not settings.is_institutional_email(email):
        print(f"Please use an institutional email address ({', '.join(settings.allowed_email_domains)}).")
        return

    raw_role = input("Role [junior/senior]: ").strip().lower() or "junior"
    try:
        role = Role(raw_role)
    except ValueError:
        print(f"Unknown role '{raw_role}'.")
        return

    interests: list[str] = []
    if role is Role.SENIOR:
        interests = input("Interests (comma-separated): ").split(",")

    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.")
        return

    try:
        user = database.create_user(name, email, password, role, interests)
    except (DuplicateUserError, ValueError) as exc:
        print(f"Failed to create user: {exc}")
        return

    print(f"Created {user.role.value} {user.name} <{user.email}>")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {PASSWORD_MIN_LENGTH} characters): ")
        if len(password) < PASSWORD_MIN_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    load_dotenv()

    args = _parse_args(argv)
    settings = load_settings()
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings=settings, database=database, host=args.host, port=args.port)
    elif args.command == "admin":
        _run_admin_cli(database, settings)
    elif args.command == "init-db":
        print("Data directory initialisation complete.")


if __name__ == "__main__":
    main()
