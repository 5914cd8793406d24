"""Errors surfaced by the client-side network layer."""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence


class SkyeError(RuntimeError):
    """Base class for failures reported by :class:`skye.client.SkyeClient`.

    ``user_message`` is always safe to display; ``str(exc)`` may carry more
    detail and is meant for logs.
    """

    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None, *, user_message: str | None = None) -> None:
        super().__init__(message or user_message or self.default_message)
        self.user_message = user_message or message or self.default_message


class AuthenticationError(SkyeError):
    """The supplied email/password pair was rejected."""

    default_message = "Invalid credentials"


class ValidationError(SkyeError):
    """The server rejected the submitted fields."""

    default_message = "The submitted data is invalid."

    def __init__(
        self,
        message: str | None = None,
        *,
        field_errors: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> None:
        super().__init__(message)
        self.field_errors: Dict[str, List[str]] = {
            field: [str(item) for item in messages] for field, messages in (field_errors or {}).items()
        }

    def first_error(self, field: str) -> Optional[str]:
        messages = self.field_errors.get(field)
        return messages[0] if messages else None


class AuthorizationExpiredError(SkyeError):
    """A request was rejected because the session is no longer valid."""

    default_message = "Your session has expired. Please sign in again."


class NetworkError(SkyeError):
    """The API could not be reached or did not answer in time."""

    default_message = "Connection error. Check your network connection and try again."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail, user_message=self.default_message)


class UnknownServerError(SkyeError):
    """The API failed in a way the client cannot interpret."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail, user_message=self.default_message)


__all__ = [
    "AuthenticationError",
    "AuthorizationExpiredError",
    "NetworkError",
    "SkyeError",
    "UnknownServerError",
    "ValidationError",
]
