"""SQLite-backed persistence for users and their access tokens."""
from __future__ import annotations

import hashlib
import hmac
import secrets
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from passlib.context import CryptContext

from .listing import SortDirection, SortField
from .models import User


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "skye.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_TOKEN_SECRET_BYTES = 30


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


def _hash_token_secret(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def _normalize_email(email: str) -> str:
    return email.strip().lower()


# Only these expressions are ever interpolated into ORDER BY.
_ORDER_COLUMNS = {
    SortField.NAME: "name COLLATE NOCASE",
    SortField.EMAIL: "email COLLATE NOCASE",
    SortField.CREATED_AT: "created_at",
}

_DEMO_ADMIN = ("Administrator", "admin@test.com", "123456")
_DEMO_PASSWORD = "password123"
_DEMO_USERS = (
    ("Juan Pérez", "juan.perez@example.com", "2024-01-15T08:30:00+00:00"),
    ("María García", "maria.garcia@example.com", "2024-02-20T14:22:00+00:00"),
    ("Carlos López", "carlos.lopez@example.com", "2024-03-10T09:15:00+00:00"),
    ("Ana Martínez", "ana.martinez@example.com", "2024-03-25T16:45:00+00:00"),
    ("Luis Rodríguez", "luis.rodriguez@example.com", "2024-04-02T11:30:00+00:00"),
    ("Elena Fernández", "elena.fernandez@example.com", "2024-04-18T13:20:00+00:00"),
)


class Database:
    """Simple wrapper around SQLite for persisting users and access tokens."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS access_tokens (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    token_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    last_used_at TEXT,
                    expires_at TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_access_tokens_user_id ON access_tokens(user_id);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        name: str,
        email: str,
        password: str,
        *,
        created_at: Optional[datetime] = None,
    ) -> User:
        """Create a new user account."""

        if not password:
            raise ValueError("Password must not be empty")
        normalized_name = name.strip()
        if not normalized_name:
            raise ValueError("Name must not be empty")
        normalized_email = _normalize_email(email)
        if not normalized_email:
            raise ValueError("Email must not be empty")

        created = created_at or _current_timestamp()
        password_hash = _hash_password(password)

        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (name, email, password_hash, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (normalized_name, normalized_email, password_hash, _serialize_datetime(created)),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError("A user with that email already exists") from exc
            user_id = cursor.lastrowid

        return User(
            id=int(user_id),
            name=normalized_name,
            email=normalized_email,
            created_at=_parse_datetime(_serialize_datetime(created)),
        )

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (_normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (_normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        stored_hash = row["password_hash"]
        if not stored_hash or not _verify_password(password, stored_hash):
            return None
        return self._row_to_user(row)

    def list_users(
        self,
        sort_field: SortField = SortField.NAME,
        direction: SortDirection = SortDirection.ASC,
    ) -> List[User]:
        order_column = _ORDER_COLUMNS[SortField(sort_field)]
        order_direction = "DESC" if SortDirection(direction) is SortDirection.DESC else "ASC"
        query = (
            "SELECT id, name, email, created_at FROM users "
            f"ORDER BY {order_column} {order_direction}, id ASC"
        )
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
        return [self._row_to_user(row) for row in rows]

    def count_users(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM users").fetchone()
        return int(row["total"])

    def seed_demo_users(self) -> List[User]:
        """Insert the demo accounts that are not present yet."""

        created: List[User] = []
        admin_name, admin_email, admin_password = _DEMO_ADMIN
        if self.get_user_by_email(admin_email) is None:
            created.append(
                self.create_user(
                    admin_name,
                    admin_email,
                    admin_password,
                    created_at=_current_timestamp() - timedelta(days=30),
                )
            )
        for name, email, created_at in _DEMO_USERS:
            if self.get_user_by_email(email) is not None:
                continue
            created.append(
                self.create_user(name, email, _DEMO_PASSWORD, created_at=_parse_datetime(created_at))
            )
        return created

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------
    def create_token(
        self,
        user_id: int,
        name: str = "auth-token",
        *,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """Issue a new access token and return its plain-text form.

        The plain-text token is ``"<id>|<secret>"``; only a digest of the
        secret is stored.
        """

        secret = secrets.token_urlsafe(_TOKEN_SECRET_BYTES)
        created_at = _current_timestamp()
        expires_at = created_at + ttl if ttl is not None else None

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO access_tokens (user_id, name, token_hash, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    name,
                    _hash_token_secret(secret),
                    _serialize_datetime(created_at),
                    _serialize_datetime(expires_at) if expires_at is not None else None,
                ),
            )
            token_id = cursor.lastrowid

        return f"{token_id}|{secret}"

    def authenticate_token(self, token: str) -> Optional[User]:
        """Return the owner of ``token`` if it is known and not expired."""

        token_id, secret = self._split_token(token)
        if token_id is None or not secret:
            return None

        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM access_tokens WHERE id = ?",
                (token_id,),
            ).fetchone()
            if row is None:
                return None
            if not hmac.compare_digest(str(row["token_hash"]), _hash_token_secret(secret)):
                return None

            now = _current_timestamp()
            expires_at = row["expires_at"]
            if expires_at and _parse_datetime(str(expires_at)) <= now:
                conn.execute("DELETE FROM access_tokens WHERE id = ?", (token_id,))
                return None

            conn.execute(
                "UPDATE access_tokens SET last_used_at = ? WHERE id = ?",
                (_serialize_datetime(now), token_id),
            )
            user_id = int(row["user_id"])

        return self.get_user(user_id)

    def revoke_tokens(self, user_id: int) -> int:
        """Delete every token issued to ``user_id``; returns how many."""

        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM access_tokens WHERE user_id = ?", (user_id,))
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _split_token(token: str) -> Tuple[Optional[int], str]:
        raw_id, separator, secret = token.strip().partition("|")
        if not separator:
            return None, ""
        try:
            return int(raw_id), secret
        except ValueError:
            return None, ""

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = ["Database", "resolve_database_path"]
