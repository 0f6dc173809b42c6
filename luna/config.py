"""
Application configuration.

Loads settings from environment variables (and `.env`) with sensible
defaults. The presence of provider credentials decides the auth mode for
the whole process; see `Settings.auth_mode`.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from luna.core.errors import ConfigurationError


DEFAULT_SESSION_SECRET = "luna-secret-key-change-in-production"


# =============================================================================
# Auth mode
# =============================================================================


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and callback for the Google OAuth client."""
    client_id: str
    client_secret: str
    callback_url: str
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class AuthDisabled:
    """No provider configured: every request runs as the anonymous principal."""


@dataclass(frozen=True)
class AuthEnabled:
    """Provider configured: sessions and OAuth login are active."""
    provider: ProviderConfig


AuthMode = AuthDisabled | AuthEnabled


# =============================================================================
# Settings
# =============================================================================


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    port: int = 3000
    base_url: str = ""
    cors_origins: str = "http://localhost:3000"
    log_level: str = "INFO"

    # ==========================================================================
    # Identity provider (optional - absent means anonymous mode)
    # ==========================================================================

    google_client_id: str = ""
    google_client_secret: str = ""
    google_callback_url: str = ""
    oauth_timeout_seconds: float = 10.0

    # ==========================================================================
    # Sessions
    # ==========================================================================

    session_secret: str = DEFAULT_SESSION_SECRET
    session_ttl_seconds: int = 30 * 24 * 60 * 60

    # ==========================================================================
    # Storage
    # ==========================================================================

    storage_backend: str = "mongo"  # mongo | memory
    mongodb_uri: str = ""
    mongodb_db_name: str = "luna"
    mongodb_timeout_ms: int = 30000

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""
    auth_debug: bool = False

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def resolved_base_url(self) -> str:
        """BASE_URL, else derived from GOOGLE_CALLBACK_URL, else localhost."""
        if self.base_url:
            return self.base_url.rstrip("/")
        if self.google_callback_url:
            return self.google_callback_url.replace("/auth/google/callback", "").rstrip("/")
        return f"http://localhost:{self.port}"

    @property
    def callback_url(self) -> str:
        return self.google_callback_url or f"{self.resolved_base_url}/auth/google/callback"

    @property
    def has_provider_credentials(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @property
    def auth_mode(self) -> AuthMode:
        if not self.has_provider_credentials:
            return AuthDisabled()
        return AuthEnabled(
            provider=ProviderConfig(
                client_id=self.google_client_id,
                client_secret=self.google_client_secret,
                callback_url=self.callback_url,
                timeout_seconds=self.oauth_timeout_seconds,
            )
        )

    def validate_for_startup(self) -> None:
        """
        Fail fast on configuration the process must not serve traffic with.

        Raises:
            ConfigurationError: describing every problem found
        """
        problems: list[str] = []

        if self.storage_backend not in ("mongo", "memory"):
            problems.append(f"Unknown STORAGE_BACKEND '{self.storage_backend}'")
        if self.storage_backend == "mongo" and not self.mongodb_uri:
            problems.append("MONGODB_URI is required when STORAGE_BACKEND=mongo")

        if bool(self.google_client_id) != bool(self.google_client_secret):
            problems.append(
                "GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be set together"
            )

        default_secret = self.session_secret == DEFAULT_SESSION_SECRET
        if default_secret and (self.has_provider_credentials or self.is_production):
            problems.append("SESSION_SECRET must be changed from the default")
        if not self.session_secret:
            problems.append("SESSION_SECRET must not be empty")

        if self.session_ttl_seconds < 60:
            problems.append("SESSION_TTL_SECONDS must be at least 60")

        if problems:
            raise ConfigurationError("; ".join(problems))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
