"""Application configuration using pydantic-settings."""
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database - SQLite file by default so the CLI and tests run without a server
    database_url: str = Field(
        default="sqlite+aiosqlite:///./bookmarks.db", validation_alias="DATABASE_URL",
    )

    # Auth0 - the identity provider that brokers Google/GitHub sign-in
    auth0_domain: str = Field(default="", validation_alias="AUTH0_DOMAIN")
    auth0_audience: str = Field(default="", validation_alias="AUTH0_AUDIENCE")
    auth0_client_id: str = Field(default="", validation_alias="AUTH0_CLIENT_ID")
    auth0_default_provider: str = Field(
        default="google", validation_alias="AUTH0_DEFAULT_PROVIDER",
    )

    # Development mode - bypasses auth for local development
    dev_mode: bool = Field(default=False, validation_alias="DEV_MODE")

    # Public base URL of the site; the OAuth callback lives under it
    site_url: str = Field(default="http://localhost:3000", validation_alias="SITE_URL")
    api_url: str = Field(default="http://localhost:8000", validation_alias="API_URL")

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )

    # Redis - carries change notifications for the bookmarks table
    redis_url: str = Field(default="redis://localhost:6379", validation_alias="REDIS_URL")
    redis_enabled: bool = Field(default=True, validation_alias="REDIS_ENABLED")
    redis_pool_size: int = Field(default=20, validation_alias="REDIS_POOL_SIZE")

    # Polling backstop for clients; also the worst-case staleness of a list view
    sync_poll_interval_seconds: float = Field(
        default=2.0, gt=0, validation_alias="SYNC_POLL_INTERVAL_SECONDS",
    )

    # Field length limits
    max_title_length: int = Field(default=500, validation_alias="MAX_TITLE_LENGTH")
    max_url_length: int = Field(default=2048, validation_alias="MAX_URL_LENGTH")

    @model_validator(mode="after")
    def validate_dev_mode_security(self) -> "Settings":
        """
        Prevent DEV_MODE from being enabled with a production database.

        DEV_MODE completely bypasses authentication, so it is only allowed with
        local development databases (localhost or SQLite files).
        """
        if not self.dev_mode:
            return self

        if self.database_url.startswith("sqlite"):
            return self

        try:
            hostname = urlparse(self.database_url).hostname or ""
        except ValueError:
            # If we can't parse the URL, block DEV_MODE (fail-safe)
            hostname = ""

        local_hosts = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}
        if hostname.lower() not in local_hosts:
            raise ValueError(
                f"DEV_MODE cannot be enabled with a non-local database. "
                f"Database host '{hostname}' appears to be a production database. "
                f"DEV_MODE bypasses all authentication and must only be used locally.",
            )

        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def auth_callback_url(self) -> str:
        """Where the identity provider sends the browser after sign-in."""
        return f"{self.site_url.rstrip('/')}/auth/callback"

    @property
    def auth0_issuer(self) -> str:
        """Get the Auth0 issuer URL."""
        return f"https://{self.auth0_domain}/"

    @property
    def auth0_jwks_url(self) -> str:
        """Get the Auth0 JWKS URL for fetching public keys."""
        return f"https://{self.auth0_domain}/.well-known/jwks.json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
