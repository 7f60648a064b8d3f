"""Configuration management for RankDeck.

Settings come from (highest priority first) ``~/.rankdeck/config.json``,
``RANKDECK_*`` environment variables, and a local ``.env`` file.
``Settings.load()`` passes the config file values as constructor arguments,
so a key saved there wins over the same key in the environment.

Changes:
  - 2026-10-02: Google OAuth client settings moved out of the frontend bundle.
  - 2026-10-09: Added state TTL, opener timeout and popup close delay.
"""

from __future__ import annotations

import json
import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

SEARCH_CONSOLE_READONLY = "https://www.googleapis.com/auth/webmasters.readonly"


def get_config_dir() -> Path:
    """Get the config directory, creating if needed."""
    config_dir = Path.home() / ".rankdeck"
    config_dir.mkdir(exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    """Get the config file path."""
    return get_config_dir() / "config.json"


def get_data_dir() -> Path:
    """Get/create the directory holding the JSON tables."""
    d = get_config_dir() / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


class Settings(BaseSettings):
    """RankDeck settings with env and file support."""

    model_config = SettingsConfigDict(env_prefix="RANKDECK_", env_file=".env", extra="ignore")

    # Google OAuth (confidential values stay server-side)
    google_oauth_client_id: str | None = Field(default=None, description="Google OAuth client ID")
    google_oauth_client_secret: str | None = Field(
        default=None, description="Google OAuth client secret (backend only)"
    )
    google_oauth_scope: str = Field(default=SEARCH_CONSOLE_READONLY)
    google_auth_url: str = Field(default="https://accounts.google.com/o/oauth2/v2/auth")
    google_token_url: str = Field(default="https://oauth2.googleapis.com/token")
    search_console_base_url: str = Field(default="https://www.googleapis.com/webmasters/v3")

    # Application URLs
    app_origin: str = Field(default="http://localhost:5173", description="Dashboard origin")
    oauth_redirect_path: str = Field(default="/callback")
    integration_screen_path: str = Field(default="/integrations/google-search-console")
    backend_url: str = Field(default="http://127.0.0.1:8888", description="Backend base URL")

    # Flow timing
    state_ttl_seconds: int = Field(default=600, description="Server-side state token lifetime")
    opener_state_timeout: float = Field(default=5.0, description="Wait for opener state (s)")
    popup_close_delay: float = Field(default=1.0, description="Delay before closing the popup")
    http_timeout: float = Field(default=15.0)

    # Sessions
    session_secret: str | None = Field(default=None, description="HMAC key for session tokens")
    session_ttl_hours: int = Field(default=24)

    # Web server
    web_host: str = Field(default="127.0.0.1")
    web_port: int = Field(default=8888)
    log_level: str = Field(default="INFO")

    @property
    def redirect_uri(self) -> str:
        return self.app_origin.rstrip("/") + self.oauth_redirect_path

    @property
    def integration_screen_url(self) -> str:
        return self.app_origin.rstrip("/") + self.integration_screen_path

    def save(self) -> None:
        """Save non-secret settings to the config file.

        The client secret is only written if it was already stored there.
        """
        config_path = get_config_path()

        existing = {}
        if config_path.exists():
            try:
                existing = json.loads(config_path.read_text())
            except (json.JSONDecodeError, OSError):
                pass

        data = self.model_dump(exclude={"google_oauth_client_secret", "session_secret"})
        if existing.get("google_oauth_client_secret"):
            data["google_oauth_client_secret"] = existing["google_oauth_client_secret"]
        if existing.get("session_secret"):
            data["session_secret"] = existing["session_secret"]
        config_path.write_text(json.dumps(data, indent=2))

    @classmethod
    def load(cls) -> Settings:
        """Load settings from config file, falling back to env/defaults."""
        config_path = get_config_path()
        if config_path.exists():
            try:
                data = json.loads(config_path.read_text())
                return cls(**data)
            except (json.JSONDecodeError, ValueError) as exc:
                logger.warning("Ignoring unreadable config %s: %s", config_path, exc)
        return cls()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.load()


def get_session_secret(settings: Settings | None = None) -> str:
    """Return the session signing key, generating and persisting one if unset."""
    settings = settings or get_settings()
    if settings.session_secret:
        return settings.session_secret

    path = get_config_dir() / "session_secret"
    if path.exists():
        secret = path.read_text().strip()
        if secret:
            return secret

    secret = secrets.token_urlsafe(32)
    path.write_text(secret)
    try:
        path.chmod(0o600)
    except OSError:
        pass
    logger.info("Generated new session secret at %s", path)
    return secret
