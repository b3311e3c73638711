from __future__ import annotations

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

_ASYNC_DRIVERS = ("psycopg_async", "asyncpg", "aiosqlite")


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./clinicflow.db"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "ClinicFlow Platform"
    APP_ENV: str = "development"
    APP_URL: str = "http://127.0.0.1:3000"

    JWT_SECRET: str = "change_this_in_production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 30
    PASSWORD_RESET_EXPIRE_HOURS: int = 1

    BOOTSTRAP_TOKEN: str = ""
    RATE_LIMIT_PER_MINUTE: int = 120

    DEFAULT_TRIAL_DAYS: int = 30
    DEFAULT_MAX_DOCTORS: int = 3

    LOG_LEVEL: str = "INFO"

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if v.startswith("postgresql") and "localhost" in v:
            raise ValueError(
                "DATABASE_URL must use 127.0.0.1 instead of localhost."
            )

        if not any(driver in v for driver in _ASYNC_DRIVERS):
            raise ValueError(
                "Async engine requires an async driver URL "
                "(postgresql+psycopg_async://, postgresql+asyncpg:// or sqlite+aiosqlite://)."
            )

        return v

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() in {"production", "prod"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
