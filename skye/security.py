"""Bearer token authentication for the REST API."""
from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .database import Database
from .models import User

logger = logging.getLogger("skye.api")


def _unauthenticated() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthenticated.",
        headers={"WWW-Authenticate": "Bearer"},
    )


class TokenAuth:
    """Resolve the request's bearer token to a :class:`User`.

    Missing, unknown, revoked and expired tokens are all answered with 401 so
    clients treat them uniformly as an ended session.
    """

    def __init__(self, database: Database):
        self._database = database
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> User:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise _unauthenticated()

        user = self._database.authenticate_token(credentials.credentials)
        if user is None:
            logger.info("Rejected bearer token for %s %s", request.method, request.url.path)
            raise _unauthenticated()
        request.state.token = credentials.credentials
        return user


__all__ = ["TokenAuth"]
