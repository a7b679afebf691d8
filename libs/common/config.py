from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    ADMIN_EMAIL: str = "admin@club.local"
    # Club-local zone used to turn session wall-clock times into instants
    TIMEZONE: str = "Europe/Berlin"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Communications service (outbound email)
    COMMUNICATIONS_SERVICE_URL: str = "http://communications-service:8004"
    COMMUNICATIONS_API_KEY: str = "test-communications-key"

    # Club policy
    CANCELLATION_DEADLINE_HOURS: int = 2
    ABSENCE_ALERT_THRESHOLD: int = 3
    ABSENCE_ALERT_WINDOW_DAYS: int = 30
    ABSENCE_ALERT_COOLDOWN_DAYS: int = 14
    ABSENCE_ALERT_ENABLED: bool = True

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
