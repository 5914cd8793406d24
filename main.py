"""Command-line interface for the Skye user directory."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from typing import Callable, Dict, List, Sequence

from skye.config import Settings, load_settings
from skye.database import Database

logger = logging.getLogger("skye.main")

_COLUMNS = (
    ("name", "Name", 24),
    ("email", "Email", 32),
    ("created_at", "Created", 12),
)
_INDICATOR_SYMBOLS = {
    "inactive": "-",
    "ascending": "^",
    "descending": "v",
}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Skye user directory utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the database")
    subparsers.add_parser("seed", help="Create the demo accounts")
    subparsers.add_parser("create-user", help="Interactively create a user")

    serve_parser = subparsers.add_parser("serve", help="Start the REST API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the API (default: 8000)",
    )

    console_parser = subparsers.add_parser(
        "console", help="Browse the directory from the terminal"
    )
    console_parser.add_argument(
        "--api-url",
        default=None,
        help="Base URL of a running API (default: SKYE_API_URL or http://127.0.0.1:8000)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "seed", "create-user", "console"}

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
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, database: Database, settings: Settings, host: str, port: int) -> None:
    from skye.api import create_app
    import uvicorn

    logger.info("Starting Skye API on http://%s:%s", host, port)
    app = create_app(database=database, settings=settings, initialize_database=False)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _seed(database: Database) -> None:
    created = database.seed_demo_users()
    if not created:
        print("Demo accounts already present.")
        return
    for user in created:
        print(f"Created user #{user.id}: {user.name} <{user.email}>")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password (min 6 characters): ")
        if len(password) < 6:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(database: Database) -> None:
    print("\nCreate a new user (leave the name blank to cancel).")
    name = input("Name: ").strip()
    if not name:
        print("User creation cancelled.")
        return

    email = input("Email address: ").strip()
    if not email:
        print("An email address is required.")
        return

    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.")
        return

    try:
        user = database.create_user(name, email, password)
    except ValueError as exc:
        print(f"Failed to create user: {exc}")
        return

    print(f"Created user #{user.id}: {user.name} <{user.email}>")


# ----------------------------------------------------------------------
# Terminal front-end
# ----------------------------------------------------------------------
def _render_users(page) -> List[str]:
    from skye.listing import SortField
    from skye.pages import ListingStatus

    if page.status is ListingStatus.LOADING:
        return ["Loading users..."]
    if page.status is ListingStatus.ERROR:
        return [f"Could not load users: {page.error}"]
    lines = [f"Registered users: {page.total}"]
    if page.status is ListingStatus.EMPTY:
        lines.append("No users registered.")
        return lines

    header = []
    for index, (field, label, width) in enumerate(_COLUMNS, start=1):
        marker = _INDICATOR_SYMBOLS[page.indicator(SortField(field)).value]
        header.append(f"[{index}] {label} {marker}".ljust(width + 6))
    lines.append("".join(header).rstrip())
    lines.append("-" * 90)
    for record in page.records:
        created = record.created_at.strftime("%d %b %Y") if record.created_at else "-"
        lines.append(
            f"{(record.name or '-'):<30}{(record.email or '-'):<38}{created}"
        )
    return lines


def _console_login(pages) -> None:
    from skye.pages import Route

    email = input("Email: ").strip()
    password = getpass("Password: ")
    outcome = pages[Route.LOGIN].submit(email, password)
    if not outcome.ok:
        for field, message in outcome.field_errors.items():
            print(f"  {field}: {message}")
        if outcome.error:
            print(outcome.error)


def _console_register(pages) -> None:
    from skye.pages import Route

    name = input("Name: ").strip()
    email = input("Email: ").strip()
    password = getpass("Password: ")
    confirmation = getpass("Confirm password: ")
    page = pages[Route.REGISTER]
    outcome = page.submit(name, email, password, confirmation)
    if not outcome.ok:
        for field, message in outcome.field_errors.items():
            print(f"  {field}: {message}")
        if outcome.error:
            print(outcome.error)
        return
    created = page.created
    print(f"Account created for {created.name} <{created.email}>. Sign in to continue.")


def _console_users(pages, navigator) -> None:
    from skye.listing import SortField
    from skye.pages import Route

    page = pages[Route.USERS]
    if not page.open():
        print("Please sign in first.")
        return

    fields = [SortField(field) for field, _, _ in _COLUMNS]
    while navigator.route is Route.USERS:
        print()
        print("\n".join(_render_users(page)))
        choice = input("Sort by column [1-3], (r)eload, (o)ut to log out, (b)ack: ").strip().lower()
        if choice in {"1", "2", "3"}:
            page.sort_by(fields[int(choice) - 1])
        elif choice == "r":
            page.load()
        elif choice == "o":
            page.logout()
            print("Signed out.")
        elif choice == "b":
            return
        else:
            print("Invalid selection.")


def _run_console(settings: Settings, *, api_url: str | None = None) -> None:
    """Interactive front-end talking to a running API."""

    from skye.client import SkyeClient
    from skye.pages import Navigator, Route, build_pages
    from skye.session import FileStore, SessionManager

    session = SessionManager(FileStore(settings.session_file))
    navigator = Navigator(Route.USERS if session.current() else Route.LOGIN)

    with SkyeClient(
        api_url or settings.api_base_url,
        session,
        timeout=settings.request_timeout,
    ) as client:
        pages = build_pages(client, navigator)
        actions: Dict[str, Callable[[], None]] = {
            "1": lambda: _console_login(pages),
            "2": lambda: _console_register(pages),
            "3": lambda: _console_users(pages, navigator),
        }

        print("Skye User Directory")
        print("Press Ctrl+C at any time to exit.\n")
        try:
            while True:
                credential = session.current()
                if credential is not None:
                    print(f"Signed in as {credential.owner.name} <{credential.owner.email}>")
                print("Select an option:")
                print("  1) Sign in")
                print("  2) Register")
                print("  3) Users")
                print("  4) Exit")
                choice = input("Enter choice [1-4]: ").strip()
                if choice == "4":
                    print("Goodbye!")
                    return
                action = actions.get(choice)
                if action is None:
                    print("Invalid selection. Please choose a number from the menu.\n")
                    continue
                action()
                if choice == "1" and navigator.route is Route.USERS:
                    _console_users(pages, navigator)
                print()
        except KeyboardInterrupt:
            print("\nExiting.")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = load_settings()

    if args.command == "console":
        _run_console(settings, api_url=args.api_url)
        return

    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(database=database, settings=settings, host=args.host, port=args.port)
    elif args.command == "seed":
        _seed(database)
    elif args.command == "create-user":
        _create_user(database)
    elif args.command == "init-db":
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
