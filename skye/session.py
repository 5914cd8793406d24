"""Client-side session handling: the credential store and its request hooks."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

import httpx

from .models import Credential, OwnerIdentity

logger = logging.getLogger("skye.session")

TOKEN_KEY = "authToken"
USER_KEY = "user"


class KeyValueStore(Protocol):
    """Minimal string key/value storage the session is persisted in."""

    def get(self, key: str) -> Optional[str]: ...

    def set_many(self, values: Dict[str, str]) -> None: ...

    def delete_many(self, keys: tuple[str, ...]) -> None: ...


class MemoryStore:
    """Process-local store; contents vanish with the process."""

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set_many(self, values: Dict[str, str]) -> None:
        self._values.update(values)

    def delete_many(self, keys: tuple[str, ...]) -> None:
        for key in keys:
            self._values.pop(key, None)


class FileStore:
    """JSON file store so a terminal session survives between runs."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, str]:
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable session file %s", self._path)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(key): str(value) for key, value in raw.items() if isinstance(value, str)}

    def _write(self, values: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".session-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(values, handle)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_many(self, values: Dict[str, str]) -> None:
        current = self._load()
        current.update(values)
        self._write(current)

    def delete_many(self, keys: tuple[str, ...]) -> None:
        current = self._load()
        if not any(key in current for key in keys):
            return
        for key in keys:
            current.pop(key, None)
        self._write(current)


class SessionManager:
    """Owns the single credential the client authenticates with.

    The token and the serialized owner identity are always written and
    removed together. A store holding only one of them reads as signed out.
    """

    def __init__(self, store: KeyValueStore | None = None) -> None:
        self._store: KeyValueStore = store if store is not None else MemoryStore()
        self._lock = threading.Lock()

    def establish(self, credential: Credential) -> None:
        payload = {
            TOKEN_KEY: credential.token,
            USER_KEY: json.dumps(credential.owner.to_dict()),
        }
        with self._lock:
            self._store.set_many(payload)
        logger.info("Session established for user %s", credential.owner.id)

    def current(self) -> Optional[Credential]:
        with self._lock:
            token = self._store.get(TOKEN_KEY)
            raw_owner = self._store.get(USER_KEY)
        if not token or not raw_owner:
            return None
        try:
            owner = OwnerIdentity.from_dict(json.loads(raw_owner))
        except (TypeError, ValueError, AttributeError):
            return None
        return Credential(token=token, owner=owner)

    @property
    def is_authenticated(self) -> bool:
        return self.current() is not None

    def attach(self, request: httpx.Request) -> None:
        credential = self.current()
        if credential is None:
            return
        request.headers["Authorization"] = f"Bearer {credential.token}"

    def invalidate(self) -> None:
        with self._lock:
            self._store.delete_many((TOKEN_KEY, USER_KEY))
        logger.info("Session invalidated")


__all__ = ["FileStore", "KeyValueStore", "MemoryStore", "SessionManager", "TOKEN_KEY", "USER_KEY"]
