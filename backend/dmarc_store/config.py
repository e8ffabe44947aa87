# backend/dmarc_store/config.py
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # environment: "dev" for local runs, "test" for pytest
    ENV: str = "dev"

    DATABASE_URL: str | None = None
    TEST_DATABASE_URL: str | None = None

    LOG_LEVEL: str = "INFO"

    # --- Ingestion ---
    # Case-insensitive regex; incoming reports for matching unknown domains
    # create the domain on the fly. Empty disables auto-provisioning except
    # for the very first domain of an empty store.
    ALLOWED_DOMAINS: str = ""

    # --- Retention ---
    REPORTS_CLEANER_DAYS_OLD: int = Field(30, ge=1)
    REPORTS_CLEANER_DELETE_MAXIMUM: int = Field(50, ge=0)
    REPORTS_CLEANER_LEAVE_MINIMUM: int = Field(100, ge=0)
    REPORTLOG_CLEANER_DAYS_OLD: int = Field(30, ge=1)

    # --- Scheduler ---
    SCHEDULER_ENABLED: bool = False
    # IANA timezone name used by APScheduler (e.g., "UTC", "Europe/Berlin").
    SCHEDULER_TZ: str = "UTC"
    # Optional dedicated job store URL. If None, jobs are kept in memory.
    SCHEDULER_DB_URL: str | None = None
    REPORTS_CLEANER_HOUR: int = Field(3, ge=0, le=23)
    REPORTLOG_CLEANER_HOUR: int = Field(4, ge=0, le=23)

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
