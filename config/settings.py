"""Configuration settings for the Suno library archiver."""

from pathlib import Path
from typing import Optional, Any
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Credentials (opaque bearer token, never persisted)
    suno_token: Optional[str] = Field(None, description="Bearer token for the Suno API")

    # Storage Settings
    data_dir: Path = Field(Path("./data"), description="Root directory holding per-user archives")

    # Download Settings
    concurrent_downloads: int = Field(3, ge=1, le=20, description="Number of concurrent download workers")
    rate_limit_ms: int = Field(1000, ge=0, description="Delay before each media download in milliseconds")
    default_format: str = Field("mp3", description="Default audio format: mp3, wav or both")
    max_title_length: int = Field(100, ge=8, le=200, description="Maximum length of the title part of a filename")
    chunk_size: int = Field(8192, ge=1024, description="Download chunk size in bytes")

    # Retry Settings
    max_retries: int = Field(3, ge=1, le=50, description="Total attempts for a request on transport failures")
    initial_backoff_seconds: float = Field(1.0, ge=0.0, description="Base backoff time in seconds")
    max_backoff_seconds: float = Field(10.0, ge=0.0, description="Maximum backoff time in seconds")

    # Pagination Settings
    page_size: int = Field(20, ge=1, description="Items returned per listing page")
    page_delay_seconds: float = Field(2.0, ge=0.0, description="Pause between listing pages")
    early_stop_threshold: int = Field(
        2, ge=1,
        description="Consecutive fully-known pages after which incremental listing stops"
    )

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_file: Optional[str] = Field(None, description="Log file path")
    user_log_enabled: bool = Field(True, description="Write a structured per-user archive log")

    # API Settings
    api_base_url: str = Field(
        "https://studio-api.prod.suno.com",
        description="Suno studio API base URL"
    )
    feed_path: str = Field("/api/feed/v2", description="Library listing endpoint path")
    request_timeout: int = Field(60, ge=5, le=300, description="Listing request timeout in seconds")
    download_timeout: int = Field(120, ge=10, le=600, description="Media download timeout in seconds")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"Log level must be one of: {allowed_levels}")
        return v.upper()

    @field_validator("default_format")
    @classmethod
    def validate_default_format(cls, v: str) -> str:
        """Validate the default audio format."""
        allowed_formats = ["mp3", "wav", "both"]
        if v.lower() not in allowed_formats:
            raise ValueError(f"Format must be one of: {allowed_formats}")
        return v.lower()

    @field_validator("data_dir", mode="before")
    @classmethod
    def validate_data_dir(cls, v: Any) -> Path:
        """Convert string path to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_backoff_range(self) -> "Settings":
        """Ensure max backoff is not below the initial backoff."""
        if self.max_backoff_seconds < self.initial_backoff_seconds:
            raise ValueError("max_backoff_seconds must be greater than or equal to initial_backoff_seconds")
        return self


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance, loading it if necessary."""
    global _settings
    if _settings is None:
        # Load environment variables from .env file
        env_path = Path(__file__).parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment variables."""
    global _settings
    _settings = None
    return get_settings()
