"""Configuration management for the clinic scheduling client."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Clinic API
    clinic_api_base_url: str = Field(
        default="http://localhost:5000/api",
        description="Base URL of the clinic REST API",
    )
    clinic_api_token: str = Field(
        default="",
        description="Bearer token used when no session token provider is supplied",
    )
    request_timeout: float = Field(
        default=15.0,
        description="Upper bound in seconds for each gateway call",
    )
    connect_timeout: float = Field(
        default=5.0,
        description="Connect timeout in seconds",
    )
    transport_retry_wait: float = Field(
        default=0.5,
        description="Backoff in seconds before the single read retry",
    )

    # Ledger
    default_page_size: int = Field(default=5, ge=1)
    ledger_view_name: str = Field(default="appointmentManagement")
    ledger_fetch_page_size: int = Field(
        default=100,
        ge=1,
        description="Page size used when filling the in-memory ledger cache",
    )

    # UI preferences
    preferences_path: Path = Field(
        default=Path("./data/preferences.json"),
        description="JSON file backing persisted UI preferences",
    )

    # Telemetry
    telemetry_enabled: bool = Field(
        default=False,
        description="Write gateway and transition events as JSON Lines",
    )
    telemetry_dir: Path = Field(default=Path("./data/logs"))

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    @property
    def has_api_token(self) -> bool:
        """Check if a static API token is configured."""
        return bool(self.clinic_api_token)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
