# kindling/config/settings.py

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MEMORY_DATABASE_URL = "memory://"


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_name: str = "kindling-portal"
    environment: Literal["dev", "test", "prod"] = "dev"
    debug: bool = False
    version: str = "0.1.0"

    # --- Database ---
    # "memory://" selects the in-process repositories (local development, tests).
    database_url: str = MEMORY_DATABASE_URL
    create_tables: bool = False

    # --- Sessions ---
    session_ttl_minutes: int = Field(60 * 24, gt=0)
    session_sweep_interval_seconds: int = Field(900, gt=0)

    # --- Accounts ---
    max_failed_login_attempts: int = Field(5, gt=0)
    lockout_minutes: int = Field(15, gt=0)
    email_verification_ttl_hours: int = Field(48, gt=0)
    password_reset_ttl_minutes: int = Field(60, gt=0)
    mfa_encryption_key: Optional[str] = None

    # --- Audit ---
    audit_queue_size: int = Field(1000, gt=0)
    audit_max_attempts: int = Field(3, gt=0)
    audit_retry_base_delay_seconds: float = Field(0.2, ge=0)

    # --- Observability ---
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @property
    def uses_memory_store(self) -> bool:
        return self.database_url == MEMORY_DATABASE_URL


@lru_cache
def get_settings() -> AppSettings:
    return AppSettings()
