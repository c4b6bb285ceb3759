"""Application configuration via environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

_INSECURE_SECRET = "change-me-in-production"

# DB_DIALECT values map onto the async SQLAlchemy drivers.
_ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


class Settings(BaseSettings):
    """
    Environment-based configuration. Validated once at process entry and then
    handed to the app, middleware, store and sequencer; never re-read.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    APP_NAME: str = Field(default="apiserver", description="Service name for logs and docs")
    ENVIRONMENT: Literal["production", "development", "testing"] = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV"),
        description="Deployment mode; drives CORS, cookie and stack trace branching",
    )
    BASE_URL: str | None = Field(default=None)

    HOST: str = Field(default="0.0.0.0", description="Bind address; 0.0.0.0 for containers")
    PORT: int = Field(default=8000, ge=1, le=65535)
    API_PREFIX: str = Field(default="/api")
    DOCS_URL: str = Field(default="/api-docs")

    DB_DIALECT: str = Field(default="postgres")
    DB_HOST: str = Field(default="localhost")
    DB_PORT: int | None = Field(default=None)
    DB_USERNAME: str | None = Field(default=None)
    DB_PASSWORD: str | None = Field(default=None)
    DB_NAME: str = Field(default="app")
    DB_CONNECT_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)

    STARTUP_FAILURE_MODE: Literal["exit", "idle"] = Field(
        default="exit",
        description="exit: return status 1 when the database is unreachable; idle: stay up unbound",
    )

    JWT_ACCESS_TOKEN_SECRET: str = Field(default=_INSECURE_SECRET)
    JWT_REFRESH_TOKEN_SECRET: str = Field(default=_INSECURE_SECRET)
    CSRF_COOKIE_NAME: str = Field(default="_csrf")

    LOG_LEVEL: str = Field(default="INFO")
    LOG_JSON: bool = Field(default=False, description="JSON logs for cloud aggregators")

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        if self.is_production:
            for name in ("JWT_ACCESS_TOKEN_SECRET", "JWT_REFRESH_TOKEN_SECRET"):
                value = getattr(self, name)
                if value == _INSECURE_SECRET or len(value) < 32:
                    raise ValueError(f"{name} must be at least 32 characters in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def database_url(self) -> URL:
        dialect = self.DB_DIALECT.lower()
        drivername = _ASYNC_DRIVERS.get(dialect, dialect)
        if drivername.startswith("sqlite"):
            return URL.create(drivername, database=self.DB_NAME)
        return URL.create(
            drivername,
            username=self.DB_USERNAME,
            password=self.DB_PASSWORD,
            host=self.DB_HOST,
            port=self.DB_PORT,
            database=self.DB_NAME,
        )


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance. Call at process entry only and pass the result along."""
    return Settings()
