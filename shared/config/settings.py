"""
Settings Module
===============

Pydantic-based configuration with environment variable loading.

Version: 0.1.0
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class PostgresSettings(BaseSettings):
    """PostgreSQL database configuration."""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = "localhost"
    port: int = 5432
    user: str = "audit"
    password: SecretStr = SecretStr("audit_dev_password")
    db: str = "audit_scoring"

    # Full URL override, e.g. sqlite+aiosqlite:// for tests
    url_override: str | None = Field(default=None, alias="DATABASE_URL")

    @property
    def async_url(self) -> str:
        """Generate async SQLAlchemy connection URL."""
        if self.url_override:
            return self.url_override
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.db}"

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured URL targets SQLite."""
        return self.async_url.startswith("sqlite")


class CORSSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(env_prefix="CORS_")

    origins: str = "http://localhost:3000,http://localhost:5173"
    allow_credentials: bool = True

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into list."""
        return [o.strip() for o in self.origins.split(",") if o.strip()]


class ScoringSettings(BaseSettings):
    """Scoring engine configuration."""

    model_config = SettingsConfigDict(env_prefix="SCORING_")

    # Allowed deviation of the weight sum from 100
    weight_tolerance: float = Field(default=0.01, ge=0)

    # Evaluations scoring above this (and below compliant) are PARTIAL
    partial_threshold: float = Field(default=0.0, ge=0)
    compliant_threshold: float = Field(default=100.0, gt=0)

    # Audit total score considered a pass
    pass_threshold: float = Field(default=75.0, ge=0)

    # Max wait for the per-audit recalculation lock
    lock_timeout_seconds: float = Field(default=10.0, gt=0)


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables with sensible defaults.
    Use the global `settings` singleton or call `get_settings()`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # General
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True
    log_level: LogLevel = LogLevel.INFO

    port: int = Field(default=8010, alias="AUDIT_SCORING_PORT")

    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Ensure log level is uppercase."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.environment == Environment.TESTING


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
