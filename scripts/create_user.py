"""Create a Skye account without starting the interactive CLI."""

import argparse
import sys
from dataclasses import replace
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from main import _initialise_database, _prompt_for_password
from skye.config import load_settings
from skye.database import resolve_database_path


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a Skye user account")
    parser.add_argument("name", help="Display name shown in the directory")
    parser.add_argument("email", help="Login email, stored lower-case")
    parser.add_argument("--db", dest="db_path", help="SQLite file to write to (overrides SKYE_DB_PATH)")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = load_settings()
    if args.db_path:
        settings = replace(settings, database_path=resolve_database_path(args.db_path))

    password = _prompt_for_password()
    if password is None:
        print("Password was not confirmed; no account created.", file=sys.stderr)
        return 1

    database = _initialise_database(settings)
    try:
        user = database.create_user(args.name, args.email, password)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
