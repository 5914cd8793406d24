"""Domain models shared by the API and the client."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional


def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware :class:`datetime`.

    Naive values are assumed to be UTC. ``None`` and unparseable values yield
    ``None``.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        if cleaned.endswith("Z"):
            cleaned = cleaned[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(cleaned)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the database."""

    id: int
    name: str
    email: str
    created_at: datetime


@dataclass(frozen=True)
class OwnerIdentity:
    """Identity cached alongside a bearer token."""

    id: int
    name: str
    email: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "OwnerIdentity":
        missing = {"id", "name", "email"} - data.keys()
        if missing:
            raise ValueError(f"Owner identity is missing fields: {', '.join(sorted(missing))}")
        return OwnerIdentity(id=int(data["id"]), name=str(data["name"]), email=str(data["email"]))


@dataclass(frozen=True)
class Credential:
    """An authenticated session: opaque token plus the identity it belongs to."""

    token: str
    owner: OwnerIdentity


@dataclass(frozen=True)
class UserRecord:
    """One row of the user listing as returned by ``GET /users``."""

    id: int
    name: Optional[str]
    email: Optional[str]
    created_at: Optional[datetime]

    @staticmethod
    def from_payload(data: Mapping[str, Any]) -> "UserRecord":
        if "id" not in data:
            raise ValueError("User record is missing its id")
        name = data.get("name")
        email = data.get("email")
        return UserRecord(
            id=int(data["id"]),
            name=str(name) if name is not None else None,
            email=str(email) if email is not None else None,
            created_at=parse_timestamp(data.get("created_at")),
        )


__all__ = ["Credential", "OwnerIdentity", "User", "UserRecord", "parse_timestamp"]
