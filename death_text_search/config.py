"""Configuration management for the death certificate text search"""

from datetime import date
from typing import Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings (environment variables or .env, case-insensitive)"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields in environment
    )

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    # Inputs
    terms_path: Optional[str] = Field(default=None)
    terms_sheet: str = Field(default="Sheet1")
    records_path: Optional[str] = Field(default=None)

    # Outputs
    output_dir: str = Field(default="./data/output")
    output_format: str = Field(default="parquet")
    quarantine_dir: str = Field(default="./data/quarantine")

    # Record filters
    start_date: Optional[date] = Field(default=None)
    end_date: Optional[date] = Field(default=None)
    resident_state: Optional[str] = Field(default=None)

    # Performance Configuration
    max_workers: int = Field(default=1, ge=1)
    chunk_size: int = Field(default=500, ge=1)

    # Application Configuration
    app_name: str = "Death Certificate Text Search"
    app_version: str = "0.1.0"

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    @field_validator("output_format")
    @classmethod
    def _check_output_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("parquet", "csv"):
            raise ValueError("output_format must be 'parquet' or 'csv'")
        return value

    @field_validator("resident_state")
    @classmethod
    def _blank_state_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip().upper()

    def get_date_range(self) -> Tuple[Optional[date], Optional[date]]:
        """Date-of-death window (inclusive); raises ValueError if start > end"""
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError(
                f"start_date {self.start_date} is after end_date {self.end_date}"
            )
        return self.start_date, self.end_date


# Global settings instance
settings = Settings()
