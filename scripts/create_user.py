import argparse
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mentorlink.config import load_settings
from mentorlink.database import Database, resolve_data_dir
from mentorlink.errors import DuplicateUserError
from mentorlink.models import Role
from mentorlink.security import PASSWORD_MIN_LENGTH


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a MentorLink user")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--role",
        choices=[role.value for role in Role],
        default=Role.JUNIOR.value,
        help="Account role (default: junior)",
    )
    parser.add_argument(
        "--interests",
        default="",
        help="Comma-separated interests for seniors, e.g. 'ml,ai'",
    )
    parser.add_argument(
        "--data-dir",
        dest="data_dir",
        default=None,
        help="Directory holding the JSON collections (defaults to MENTORLINK_DATA_DIR or data/)",
    )
    return parser.parse_args(argv)


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < PASSWORD_MIN_LENGTH:
            print(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    settings = load_settings()
    if not settings.is_institutional_email(args.email):
        domains = ", ".join(settings.allowed_email_domains)
        print(f"Error: {args.email!r} is not an institutional address ({domains})", file=sys.stderr)
        return 1

    password = prompt_for_password()

    data_dir = resolve_data_dir(args.data_dir) if args.data_dir else settings.data_dir
    database = Database(data_dir)
    database.initialize()

    try:
        user = database.create_user(
            args.name.strip(),
            args.email,
            password,
            Role(args.role),
            args.interests.split(","),
        )
    except (DuplicateUserError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created {user.role.value} {user.name} <{user.email}>")
    if user.interests:
        print(f"Interests: {', '.join(user.interests)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
