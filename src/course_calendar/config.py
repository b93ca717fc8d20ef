from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from .calendar_client import OAuthSettings
from .exceptions import ConfigurationError

DEFAULT_REDIRECT_URI = "http://localhost:3000/auth/google/callback"
DEFAULT_TIMEZONE = "America/Chicago"
DEFAULT_CREATE_TIMEOUT_SECONDS = 300
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got '{value}'") from exc


def _env_list(key: str, default: str) -> Sequence[str]:
    return tuple(item.strip() for item in os.getenv(key, default).split(",") if item.strip())


@dataclass
class Settings:
    """Runtime settings, read from the environment when the instance is created."""

    google_client_id: Optional[str] = field(default_factory=lambda: os.getenv("GOOGLE_CLIENT_ID"))
    google_client_secret: Optional[str] = field(default_factory=lambda: os.getenv("GOOGLE_CLIENT_SECRET"))
    google_redirect_uri: str = field(
        default_factory=lambda: os.getenv("GOOGLE_REDIRECT_URI", DEFAULT_REDIRECT_URI)
    )
    timezone: str = field(default_factory=lambda: os.getenv("CALENDAR_TIMEZONE", DEFAULT_TIMEZONE))
    token_dir: Path = field(default_factory=lambda: Path(os.getenv("TOKEN_DIR", "tokens")))
    create_timeout_seconds: int = field(
        default_factory=lambda: _env_int("CREATE_TIMEOUT_SECONDS", DEFAULT_CREATE_TIMEOUT_SECONDS)
    )
    max_upload_bytes: int = field(default_factory=lambda: _env_int("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES))
    frontend_origins: Sequence[str] = field(
        default_factory=lambda: _env_list("FRONTEND_ORIGINS", "http://localhost:3000")
    )
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    console_oauth: bool = field(default_factory=lambda: _env_bool("CONSOLE_OAUTH", False))

    @property
    def oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    def oauth_settings(self) -> OAuthSettings:
        if not self.oauth_configured:
            raise ConfigurationError("Google OAuth credentials not configured")
        assert self.google_client_id is not None and self.google_client_secret is not None
        return OAuthSettings(
            client_id=self.google_client_id,
            client_secret=self.google_client_secret,
            redirect_uri=self.google_redirect_uri,
        )


def configure_logging(level: str | int = "INFO") -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
