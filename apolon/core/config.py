"""Engine configuration loaded from environment variables."""

from functools import lru_cache
from urllib.parse import quote_plus

from pydantic import ConfigDict, computed_field
from pydantic_settings import BaseSettings

from apolon import __version__


class Settings(BaseSettings):
    """Settings for the migration engine, read from the environment or `.env`."""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    DEBUG: bool = False

    # Database connection components
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "postgres"

    # Full URL, takes priority over the components when set
    DATABASE_URL: str | None = None

    # Migrations
    MIGRATIONS_PATH: str = "migrations"
    HISTORY_SCHEMA: str = "apolon"
    HISTORY_TABLE: str = "__apolon_migrations"
    PRODUCT_VERSION: str = __version__

    # Logging
    LOG_LEVEL: str = "INFO"

    @computed_field  # type: ignore[misc]
    @property
    def database_url(self) -> str:
        """Get database URL, preferring DATABASE_URL over the individual components."""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        encoded_user = quote_plus(str(self.POSTGRES_USER), safe="")
        encoded_password = quote_plus(str(self.POSTGRES_PASSWORD), safe="")
        encoded_host = quote_plus(str(self.POSTGRES_HOST), safe="")
        encoded_db = quote_plus(str(self.POSTGRES_DB), safe="")
        return (
            f"postgresql+psycopg2://{encoded_user}:{encoded_password}"
            f"@{encoded_host}:{self.POSTGRES_PORT}/{encoded_db}"
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
