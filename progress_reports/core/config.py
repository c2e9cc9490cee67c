"""Core application configuration and settings.

Handles environment variables and report generation defaults.
"""
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings


# Load environment variables
ROOT = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=ROOT / ".env", override=False)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Report Defaults
    pass_threshold: int = Field(default=70, alias="PASS_THRESHOLD")
    product_name: str = Field(default="FreeLearning Platform", alias="PRODUCT_NAME")
    report_output_dir: Optional[str] = Field(default=None, alias="REPORT_OUTPUT_DIR")
    report_date_format: str = Field(default="%m/%d/%Y", alias="REPORT_DATE_FORMAT")
    report_timestamp_format: str = Field(
        default="%m/%d/%Y, %I:%M:%S %p",
        alias="REPORT_TIMESTAMP_FORMAT"
    )
    include_topic_breakdown: bool = Field(default=False, alias="INCLUDE_TOPIC_BREAKDOWN")

    # Application Settings
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # API Settings
    api_prefix: str = Field(default="", alias="API_PREFIX")
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000"
        ],
        alias="CORS_ORIGINS"
    )

    class Config:
        case_sensitive = False
        env_file = ".env"
        populate_by_name = True
        extra = "ignore"

    def validate_required_settings(self):
        """Validate that settings hold usable values."""
        if not 0 <= self.pass_threshold <= 100:
            raise ValueError(
                f"PASS_THRESHOLD must be between 0 and 100, got {self.pass_threshold}."
            )
        if not self.product_name.strip():
            raise ValueError("PRODUCT_NAME must not be empty.")
        if self.report_output_dir and not Path(self.report_output_dir).is_dir():
            raise ValueError(
                f"REPORT_OUTPUT_DIR '{self.report_output_dir}' is not a directory."
            )


# Global settings instance
settings = Settings()


# Validate settings on module import (only in non-test environments)
if settings.environment != "test":
    try:
        settings.validate_required_settings()
    except ValueError as e:
        print(f"Configuration Error: {e}")
        # Don't raise in development to allow partial setup
        if settings.environment == "production":
            raise
