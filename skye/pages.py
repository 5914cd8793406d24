"""Page-level controllers driving the login, registration and user views."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .client import RegisteredUser, SkyeClient
from .errors import AuthenticationError, SkyeError, ValidationError
from .listing import SortController, SortField, SortIndicator
from .models import Credential, UserRecord
from .session import SessionManager

logger = logging.getLogger("skye.pages")

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_MIN_LENGTH = 6
NAME_MIN_LENGTH = 2


class Route(str, Enum):
    LOGIN = "/login"
    REGISTER = "/register"
    USER_CREATED = "/user-created"
    USERS = "/users"


class Navigator:
    """Tracks which page is shown; anything unknown lands on the login page."""

    def __init__(self, initial: Route = Route.LOGIN) -> None:
        self.route: Route = initial
        self.state: Dict[str, Any] = {}
        self.history: List[Route] = [initial]

    def go(self, target: object, **state: Any) -> Route:
        try:
            route = Route(target)
        except ValueError:
            route = Route.LOGIN
        self.route = route
        self.state = dict(state)
        self.history.append(route)
        return route

    def redirect_to_login(self) -> None:
        self.go(Route.LOGIN)


@dataclass
class FormOutcome:
    ok: bool
    error: Optional[str] = None
    field_errors: Dict[str, str] = field(default_factory=dict)


def _first_errors(exc: ValidationError) -> Dict[str, str]:
    return {name: messages[0] for name, messages in exc.field_errors.items() if messages}


class LoginPage:
    def __init__(self, client: SkyeClient, navigator: Navigator) -> None:
        self._client = client
        self._navigator = navigator

    @staticmethod
    def validate(email: str, password: str) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not email.strip():
            errors["email"] = "Email is required"
        elif not _EMAIL_PATTERN.match(email.strip()):
            errors["email"] = "Enter a valid email address"
        if not password:
            errors["password"] = "Password is required"
        return errors

    def submit(self, email: str, password: str) -> FormOutcome:
        field_errors = self.validate(email, password)
        if field_errors:
            return FormOutcome(ok=False, field_errors=field_errors)

        try:
            result = self._client.login(email.strip(), password)
        except AuthenticationError as exc:
            logger.info("Login rejected for %s", email.strip())
            return FormOutcome(ok=False, error=exc.user_message)
        except ValidationError as exc:
            return FormOutcome(ok=False, error=exc.user_message, field_errors=_first_errors(exc))
        except SkyeError as exc:
            return FormOutcome(ok=False, error=exc.user_message)

        self._client.session.establish(Credential(token=result.token, owner=result.user))
        self._navigator.go(Route.USERS)
        return FormOutcome(ok=True)


class RegisterPage:
    def __init__(self, client: SkyeClient, navigator: Navigator) -> None:
        self._client = client
        self._navigator = navigator
        self.created: Optional[RegisteredUser] = None

    @staticmethod
    def validate(name: str, email: str, password: str, confirmation: str) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not name.strip():
            errors["name"] = "Name is required"
        elif len(name.strip()) < NAME_MIN_LENGTH:
            errors["name"] = f"Name must be at least {NAME_MIN_LENGTH} characters"
        if not email.strip():
            errors["email"] = "Email is required"
        elif not _EMAIL_PATTERN.match(email.strip()):
            errors["email"] = "Enter a valid email address"
        if not password:
            errors["password"] = "Password is required"
        elif len(password) < PASSWORD_MIN_LENGTH:
            errors["password"] = f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
        if not confirmation:
            errors["confirmation"] = "Confirm your password"
        elif password != confirmation:
            errors["confirmation"] = "Passwords do not match"
        return errors

    def submit(self, name: str, email: str, password: str, confirmation: str) -> FormOutcome:
        field_errors = self.validate(name, email, password, confirmation)
        if field_errors:
            return FormOutcome(ok=False, field_errors=field_errors)

        try:
            created = self._client.register(name.strip(), email.strip(), password, confirmation)
        except ValidationError as exc:
            return FormOutcome(ok=False, error=exc.user_message, field_errors=_first_errors(exc))
        except SkyeError as exc:
            return FormOutcome(ok=False, error=exc.user_message)

        # The account is created but the user still signs in explicitly.
        self.created = created
        self._navigator.go(Route.USER_CREATED, user=created)
        return FormOutcome(ok=True)


class ListingStatus(str, Enum):
    LOADING = "loading"
    EMPTY = "empty"
    READY = "ready"
    ERROR = "error"


class UsersPage:
    """Fetches the directory and exposes it in the active sort order.

    Each fetch is ticketed; only the response to the most recent ticket is
    applied, so a slow earlier response cannot overwrite a newer one.
    """

    def __init__(
        self,
        client: SkyeClient,
        session: SessionManager,
        navigator: Navigator,
        *,
        sort: SortController | None = None,
    ) -> None:
        self._client = client
        self._session = session
        self._navigator = navigator
        self.sort = sort or SortController()
        self.status = ListingStatus.LOADING
        self.error: Optional[str] = None
        self._records: List[UserRecord] = []
        self._latest_ticket = 0

    @property
    def records(self) -> List[UserRecord]:
        return self.sort.ordered(self._records)

    @property
    def total(self) -> int:
        return len(self._records)

    def open(self) -> bool:
        """Show the page, or send the visitor to the login page if signed out."""

        if self._session.current() is None:
            self._navigator.redirect_to_login()
            return False
        self._navigator.go(Route.USERS)
        self.load()
        return True

    def begin_fetch(self) -> int:
        self._latest_ticket += 1
        self.status = ListingStatus.LOADING
        self.error = None
        return self._latest_ticket

    def complete_fetch(
        self,
        ticket: int,
        records: Optional[List[UserRecord]] = None,
        *,
        error: Optional[SkyeError] = None,
    ) -> bool:
        """Apply a fetch result; returns ``False`` when it was superseded."""

        if ticket != self._latest_ticket:
            logger.debug("Discarding stale user listing (ticket %s, latest %s)", ticket, self._latest_ticket)
            return False
        if error is not None:
            self._records = []
            self.status = ListingStatus.ERROR
            self.error = error.user_message
            return True
        self._records = list(records or [])
        self.status = ListingStatus.READY if self._records else ListingStatus.EMPTY
        self.error = None
        return True

    def load(self) -> ListingStatus:
        ticket = self.begin_fetch()
        state = self.sort.state
        try:
            listing = self._client.fetch_users(state.field, state.direction)
        except SkyeError as exc:
            logger.warning("Loading users failed: %s", exc)
            self.complete_fetch(ticket, error=exc)
        else:
            self.complete_fetch(ticket, listing.users)
        return self.status

    def sort_by(self, field: SortField) -> None:
        self.sort.set_sort_key(field)

    def indicator(self, field: SortField) -> SortIndicator:
        return self.sort.indicator(field)

    def logout(self) -> None:
        self._client.logout()
        self._navigator.redirect_to_login()


def build_pages(client: SkyeClient, navigator: Navigator) -> Dict[Route, object]:
    """Wire the page controllers and route authorization failures to login."""

    client.set_unauthorized_handler(navigator.redirect_to_login)
    return {
        Route.LOGIN: LoginPage(client, navigator),
        Route.REGISTER: RegisterPage(client, navigator),
        Route.USERS: UsersPage(client, client.session, navigator),
    }


__all__ = [
    "FormOutcome",
    "ListingStatus",
    "LoginPage",
    "Navigator",
    "RegisterPage",
    "Route",
    "UsersPage",
    "build_pages",
]
