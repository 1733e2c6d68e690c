"""
Configuration settings for treatment_workflow.

Reads the clinic API connection and engine tuning from the project .env
file and the environment, and provides typed settings.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


PACKAGE_DIR = Path(__file__).parent
PROJECT_ROOT = PACKAGE_DIR.parent
ENV_FILE = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Engine settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Clinic backend
    clinic_api_base_url: str = Field(
        default="http://localhost:8080/api",
        alias="CLINIC_API_BASE_URL",
        description="Base URL of the clinic REST API"
    )
    clinic_api_token: Optional[str] = Field(
        default=None,
        alias="CLINIC_API_TOKEN",
        description="Bearer token for the clinic API"
    )
    api_timeout_seconds: float = Field(
        default=10.0,
        alias="API_TIMEOUT_SECONDS",
        description="Timeout for clinic API requests"
    )
    current_step_timeout_seconds: float = Field(
        default=5.0,
        alias="CURRENT_STEP_TIMEOUT_SECONDS",
        description="Shorter timeout for the authoritative current-step read"
    )

    # API retry settings (connection errors, timeouts, 5xx on reads)
    api_retry_max_attempts: int = Field(
        default=3,
        alias="API_RETRY_MAX_ATTEMPTS",
        description="Max attempts for transient read errors"
    )
    api_retry_base_delay: float = Field(
        default=1.0,
        alias="API_RETRY_BASE_DELAY",
        description="Base delay in seconds for exponential backoff"
    )
    api_retry_max_delay: float = Field(
        default=10.0,
        alias="API_RETRY_MAX_DELAY",
        description="Maximum delay in seconds between retries"
    )
    cycle_page_size: int = Field(
        default=100,
        alias="CYCLE_PAGE_SIZE",
        description="Page size when listing treatment cycles"
    )

    # Engine behaviour
    catalog_version: str = Field(
        default="v2",
        alias="CATALOG_VERSION",
        description="Step catalog version (v1 legacy, v2 per-step, plan for plan-created treatments)"
    )
    enforce_single_active_cycle: bool = Field(
        default=True,
        alias="ENFORCE_SINGLE_ACTIVE_CYCLE",
        description="Refuse to start a cycle while another one is in progress"
    )
    resolution_cache_size: int = Field(
        default=256,
        alias="RESOLUTION_CACHE_SIZE",
        description="Max memoised current-step resolutions"
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
