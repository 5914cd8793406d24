"""HTTP client for the Skye REST API.

The client owns an :class:`httpx.Client` whose event hooks attach the current
credential to every request and end the session whenever an authenticated
call is answered with 401.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx

from .errors import (
    AuthenticationError,
    AuthorizationExpiredError,
    NetworkError,
    SkyeError,
    UnknownServerError,
    ValidationError,
)
from .listing import SortDirection, SortField
from .models import OwnerIdentity, UserRecord, parse_timestamp
from .session import SessionManager

logger = logging.getLogger("skye.client")

LOGIN_PATH = "/auth/login"
REGISTER_PATH = "/auth/register"
LOGOUT_PATH = "/auth/logout"
USERS_PATH = "/users"
CURRENT_USER_PATH = "/user"

# 401 from these endpoints means rejected credentials, not an ended session.
_CREDENTIAL_EXCHANGE_PATHS = frozenset({LOGIN_PATH, REGISTER_PATH})


@dataclass(frozen=True)
class AuthResult:
    user: OwnerIdentity
    token: str
    message: str = ""


@dataclass(frozen=True)
class RegisteredUser:
    id: int
    name: str
    email: str
    created_at: Optional[datetime]
    token: str


@dataclass(frozen=True)
class UserListing:
    users: List[UserRecord]
    total: int
    sort_field: SortField
    sort_direction: SortDirection


def _normalize_base_url(base_url: str) -> str:
    cleaned = (base_url or "").strip()
    if not cleaned:
        raise ValueError("API base URL must not be empty")
    return cleaned.rstrip("/")


def _extract_error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


def _endpoint_path(request: httpx.Request, base_path: str) -> str:
    path = request.url.path
    if base_path and path.startswith(base_path):
        path = path[len(base_path):]
    return path or "/"


class SkyeClient:
    """Typed wrapper around the REST API."""

    def __init__(
        self,
        base_url: str,
        session: SessionManager,
        *,
        timeout: float = 10.0,
        on_unauthorized: Optional[Callable[[], None]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._session = session
        self._on_unauthorized = on_unauthorized
        if http_client is None:
            http_client = httpx.Client(
                base_url=_normalize_base_url(base_url),
                timeout=timeout,
                transport=transport,
                headers={"Accept": "application/json"},
            )
        self._http = http_client
        self._base_path = self._http.base_url.path.rstrip("/")
        hooks = self._http.event_hooks
        hooks.setdefault("request", []).append(self._attach_credential)
        hooks.setdefault("response", []).append(self._react_to_unauthorized)
        self._http.event_hooks = hooks

    @property
    def session(self) -> SessionManager:
        return self._session

    def set_unauthorized_handler(self, handler: Optional[Callable[[], None]]) -> None:
        self._on_unauthorized = handler

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "SkyeClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Event hooks
    # ------------------------------------------------------------------
    def _attach_credential(self, request: httpx.Request) -> None:
        self._session.attach(request)

    def _react_to_unauthorized(self, response: httpx.Response) -> None:
        if response.status_code != 401:
            return
        if _endpoint_path(response.request, self._base_path) in _CREDENTIAL_EXCHANGE_PATHS:
            return
        logger.warning(
            "Authorization rejected for %s %s; ending session",
            response.request.method,
            response.request.url.path,
        )
        self._session.invalidate()
        if self._on_unauthorized is not None:
            self._on_unauthorized()

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------
    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("Request %s %s failed: %s", method, path, exc)
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code == 401:
            if path == LOGIN_PATH:
                raise AuthenticationError(_extract_error_message(payload, AuthenticationError.default_message))
            raise AuthorizationExpiredError()

        if response.status_code == 422:
            errors = payload.get("errors") if isinstance(payload, dict) else None
            raise ValidationError(
                _extract_error_message(payload, ValidationError.default_message),
                field_errors=errors if isinstance(errors, dict) else None,
            )

        if response.status_code >= 400:
            detail = _extract_error_message(payload, response.text.strip() or "no detail")
            logger.error("%s %s answered %s: %s", method, path, response.status_code, detail)
            raise UnknownServerError(f"{method} {path} answered {response.status_code}: {detail}")

        if not isinstance(payload, dict):
            raise UnknownServerError(f"{method} {path} returned an unexpected response payload")
        return payload

    @staticmethod
    def _parse_auth(payload: Dict[str, Any], path: str) -> AuthResult:
        try:
            user = OwnerIdentity.from_dict(payload["user"])
            token = str(payload["token"])
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise UnknownServerError(f"{path} response was missing required fields") from exc
        return AuthResult(user=user, token=token, message=str(payload.get("message", "")))

    # ------------------------------------------------------------------
    # API operations
    # ------------------------------------------------------------------
    def login(self, email: str, password: str) -> AuthResult:
        payload = self._request("POST", LOGIN_PATH, json={"email": email, "password": password})
        return self._parse_auth(payload, LOGIN_PATH)

    def register(
        self,
        name: str,
        email: str,
        password: str,
        password_confirmation: str,
    ) -> RegisteredUser:
        payload = self._request(
            "POST",
            REGISTER_PATH,
            json={
                "name": name,
                "email": email,
                "password": password,
                "password_confirmation": password_confirmation,
            },
        )
        auth = self._parse_auth(payload, REGISTER_PATH)
        raw_user = payload.get("user") or {}
        return RegisteredUser(
            id=auth.user.id,
            name=auth.user.name,
            email=auth.user.email,
            created_at=parse_timestamp(raw_user.get("created_at")) if isinstance(raw_user, dict) else None,
            token=auth.token,
        )

    def fetch_users(
        self,
        sort_field: SortField = SortField.NAME,
        sort_direction: SortDirection = SortDirection.ASC,
    ) -> UserListing:
        field = SortField(sort_field)
        direction = SortDirection(sort_direction)
        payload = self._request(
            "GET",
            USERS_PATH,
            params={"sort_by": field.value, "sort_direction": direction.value},
        )
        raw_users = payload.get("users")
        if not isinstance(raw_users, list):
            raise UnknownServerError("User listing response did not include a user list")
        try:
            users = [UserRecord.from_payload(item) for item in raw_users]
        except (TypeError, ValueError, AttributeError) as exc:
            raise UnknownServerError("User listing contained a malformed record") from exc
        total = payload.get("total")
        return UserListing(
            users=users,
            total=int(total) if isinstance(total, int) else len(users),
            sort_field=field,
            sort_direction=direction,
        )

    def me(self) -> UserRecord:
        payload = self._request("GET", CURRENT_USER_PATH)
        try:
            return UserRecord.from_payload(payload)
        except (TypeError, ValueError, AttributeError) as exc:
            raise UnknownServerError("Current user response was malformed") from exc

    def logout(self) -> None:
        """End the session server-side if possible; always end it locally."""

        try:
            self._request("POST", LOGOUT_PATH)
        except SkyeError as exc:
            logger.warning("Server-side logout failed: %s", exc)
        finally:
            self._session.invalidate()


__all__ = ["AuthResult", "RegisteredUser", "SkyeClient", "UserListing"]
