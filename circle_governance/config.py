"""Application Configuration: environment-driven settings via pydantic-settings.

Invariants:
    - All secrets and connection strings come from environment variables
    - get_settings() is cached (lru_cache): single instance per process
    - Vote and invite bounds are enforced by the services, defaults come from here

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for every setting: works out-of-the-box with docker-compose
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://circles:circles@db:5432/circles"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres URLs use postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Governance
    vote_default_expiry_days: int = 7
    vote_max_expiry_days: int = 30
    invite_default_max_uses: int = 1
    invite_default_expiry_days: int = 7
    invite_max_expiry_days: int = 365

    # Identity: set by the upstream gateway after authentication
    identity_header: str = "X-User-Id"

    # API
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
