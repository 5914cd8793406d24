"""Configuration loading for the API server and the terminal client."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

DEFAULT_CORS_ORIGINS: Tuple[str, ...] = (
    "http://localhost:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:5174",
    "http://localhost:3000",
)
DEFAULT_API_URL = "http://127.0.0.1:8000"
DEFAULT_REQUEST_TIMEOUT = 10.0


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (_project_root() / "config" / "skye.yaml").resolve(strict=False)


def _resolve_path(raw: object, base_path: Path | None) -> Path:
    candidate = Path(str(raw)).expanduser()
    if candidate.is_absolute() or base_path is None:
        return candidate.resolve(strict=False)
    return (base_path / candidate).resolve(strict=False)


def _parse_origins(value: object) -> Tuple[str, ...]:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise ValueError("cors_origins must be a list or a comma separated string")
    return tuple(item.strip() for item in items if item.strip())


def _parse_ttl(value: object) -> Optional[timedelta]:
    try:
        hours = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"token_ttl_hours must be a number, got {value!r}") from exc
    if hours < 0:
        raise ValueError("token_ttl_hours must not be negative")
    if hours == 0:
        return None
    return timedelta(hours=hours)


def _parse_timeout(value: object) -> float:
    try:
        timeout = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"request_timeout must be a number, got {value!r}") from exc
    if timeout <= 0:
        raise ValueError("request_timeout must be positive")
    return timeout


@dataclass(frozen=True)
class Settings:
    """Runtime settings shared by the server and the client."""

    database_path: Path
    session_file: Path
    cors_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS
    token_ttl: Optional[timedelta] = None
    api_base_url: str = DEFAULT_API_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @staticmethod
    def defaults() -> "Settings":
        return Settings(
            database_path=(_project_root() / "data" / "skye.sqlite3").resolve(strict=False),
            session_file=Path("~/.config/skye/session.json").expanduser(),
        )

    def merged(self, data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Return a copy with the values present in ``data`` applied."""
        updates: Dict[str, object] = {}
        if data.get("database_path"):
            updates["database_path"] = _resolve_path(data["database_path"], base_path)
        if data.get("session_file"):
            updates["session_file"] = _resolve_path(data["session_file"], base_path)
        if data.get("cors_origins") is not None:
            updates["cors_origins"] = _parse_origins(data["cors_origins"])
        if data.get("token_ttl_hours") is not None:
            updates["token_ttl"] = _parse_ttl(data["token_ttl_hours"])
        if data.get("api_base_url"):
            cleaned = str(data["api_base_url"]).strip().rstrip("/")
            if cleaned:
                updates["api_base_url"] = cleaned
        if data.get("request_timeout") is not None:
            updates["request_timeout"] = _parse_timeout(data["request_timeout"])
        return replace(self, **updates)


_ENV_KEYS = {
    "SKYE_DB_PATH": "database_path",
    "SKYE_SESSION_FILE": "session_file",
    "SKYE_CORS_ORIGINS": "cors_origins",
    "SKYE_TOKEN_TTL_HOURS": "token_ttl_hours",
    "SKYE_API_URL": "api_base_url",
    "SKYE_REQUEST_TIMEOUT": "request_timeout",
}


def load_settings(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from the YAML file (if any) and the environment."""
    env = os.environ if environ is None else environ
    settings = Settings.defaults()

    path = config_path or resolve_config_path(env.get("SKYE_CONFIG"))
    if path.is_file():
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        settings = settings.merged(raw, base_path=path.parent)

    overrides = {
        field: env[name]
        for name, field in _ENV_KEYS.items()
        if env.get(name, "").strip()
    }
    return settings.merged(overrides)


__all__ = ["DEFAULT_CORS_ORIGINS", "Settings", "load_settings", "resolve_config_path"]
