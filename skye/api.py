"""FastAPI application exposing authentication and the user listing."""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator

from .config import Settings, load_settings
from .database import Database
from .listing import SortDirection, SortField
from .models import User
from .security import TokenAuth

logger = logging.getLogger("skye.api")

PASSWORD_MIN_LENGTH = 6
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 255
EMAIL_MAX_LENGTH = 255

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _require_email(value: str) -> str:
    cleaned = value.strip().lower()
    if not cleaned:
        raise ValueError("The email field is required.")
    if len(cleaned) > EMAIL_MAX_LENGTH:
        raise ValueError(f"The email may not be greater than {EMAIL_MAX_LENGTH} characters.")
    if not _EMAIL_PATTERN.match(cleaned):
        raise ValueError("The email must be a valid email address.")
    return cleaned


def _require_password(value: str) -> str:
    if not value:
        raise ValueError("The password field is required.")
    if len(value) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"The password must be at least {PASSWORD_MIN_LENGTH} characters.")
    return value


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return _require_email(value)

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        return _require_password(value)


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    password_confirmation: str

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("The name field is required.")
        if len(cleaned) < NAME_MIN_LENGTH:
            raise ValueError(f"The name must be at least {NAME_MIN_LENGTH} characters.")
        if len(cleaned) > NAME_MAX_LENGTH:
            raise ValueError(f"The name may not be greater than {NAME_MAX_LENGTH} characters.")
        return cleaned

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return _require_email(value)

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        return _require_password(value)


class UserSummary(BaseModel):
    id: int
    name: str
    email: str


class RegisteredUser(UserSummary):
    created_at: datetime


class LoginResponse(BaseModel):
    success: bool = True
    message: str
    user: UserSummary
    token: str


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    user: RegisteredUser
    token: str


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class UserListItem(BaseModel):
    id: int
    name: str
    email: str
    created_at: datetime


class UserListResponse(BaseModel):
    success: bool = True
    users: List[UserListItem]
    total: int
    sort_by: SortField
    sort_direction: SortDirection


def user_to_summary(user: User) -> UserSummary:
    return UserSummary(id=user.id, name=user.name, email=user.email)


def user_to_list_item(user: User) -> UserListItem:
    return UserListItem(id=user.id, name=user.name, email=user.email, created_at=user.created_at)


def validation_failure(errors: Dict[str, List[str]]) -> JSONResponse:
    """Build the 422 payload shared by schema and business-rule failures."""

    first = next((messages[0] for messages in errors.values() if messages), "The given data was invalid.")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"success": False, "message": first, "errors": errors},
    )


def _error_field(loc: Sequence[object]) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path", "header")]
    return ".".join(parts) if parts else "request"


def _error_message(field: str, error: Dict[str, object]) -> str:
    if error.get("type") == "missing":
        return f"The {field} field is required."
    message = str(error.get("msg", "Invalid value."))
    prefix = "Value error, "
    if message.startswith(prefix):
        message = message[len(prefix):]
    return message


def create_app(
    *,
    database: Optional[Database] = None,
    settings: Optional[Settings] = None,
    initialize_database: bool = True,
) -> FastAPI:
    """Create the REST API application."""

    settings = settings or load_settings()
    db = database or Database(settings.database_path)
    if initialize_database:
        db.initialize()

    app = FastAPI(
        title="Skye User Directory API",
        version="0.1.0",
        description="Token authentication and a sortable user directory.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.database = db
    app.state.settings = settings

    current_user = TokenAuth(db)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        errors: Dict[str, List[str]] = {}
        for error in exc.errors():
            field = _error_field(error.get("loc", ()))
            errors.setdefault(field, []).append(_error_message(field, error))
        return validation_failure(errors)

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/auth/login", response_model=LoginResponse)
    async def login(payload: LoginRequest):
        user = db.authenticate_user(payload.email, payload.password)
        if user is None:
            logger.info("Failed login attempt for %s", payload.email)
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"success": False, "message": "Invalid credentials"},
            )

        token = db.create_token(user.id, ttl=settings.token_ttl)
        logger.info("User %s logged in", user.id)
        return LoginResponse(message="Login successful", user=user_to_summary(user), token=token)

    @app.post(
        "/auth/register",
        status_code=status.HTTP_201_CREATED,
        response_model=RegisterResponse,
    )
    async def register(payload: RegisterRequest):
        errors: Dict[str, List[str]] = {}
        if payload.password != payload.password_confirmation:
            errors.setdefault("password", []).append("The password confirmation does not match.")
        if db.get_user_by_email(payload.email) is not None:
            errors.setdefault("email", []).append("The email has already been taken.")
        if errors:
            return validation_failure(errors)

        try:
            user = db.create_user(payload.name, payload.email, payload.password)
        except ValueError:
            return validation_failure({"email": ["The email has already been taken."]})

        token = db.create_token(user.id, ttl=settings.token_ttl)
        logger.info("Registered user %s <%s>", user.id, user.email)
        return RegisterResponse(
            message="User registered successfully",
            user=RegisteredUser(id=user.id, name=user.name, email=user.email, created_at=user.created_at),
            token=token,
        )

    @app.post("/auth/logout", response_model=MessageResponse)
    async def logout(user: User = Depends(current_user)) -> MessageResponse:
        revoked = db.revoke_tokens(user.id)
        logger.info("User %s logged out (%s token(s) revoked)", user.id, revoked)
        return MessageResponse(message="Logout successful")

    @app.get("/users", response_model=UserListResponse)
    async def list_users(
        sort_by: SortField = Query(SortField.NAME),
        sort_direction: SortDirection = Query(SortDirection.ASC),
        _: User = Depends(current_user),
    ) -> UserListResponse:
        users = db.list_users(sort_by, sort_direction)
        return UserListResponse(
            users=[user_to_list_item(user) for user in users],
            total=len(users),
            sort_by=sort_by,
            sort_direction=sort_direction,
        )

    @app.get("/user", response_model=UserListItem)
    async def read_current_user(user: User = Depends(current_user)) -> UserListItem:
        return user_to_list_item(user)

    return app


__all__ = ["create_app", "validation_failure"]
