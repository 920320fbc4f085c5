"""
Runtime configuration helpers for the FastAPI application.

Loads DATABASE_URL and the remaining settings from the environment, falling
back to the .env file located in the project root.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root
BASE_DIR = Path(__file__).resolve().parents[1]

# Absolute path to .env
ENV_PATH = BASE_DIR / ".env"

# Load .env defaults without overriding environment variables provided by the platform
load_dotenv(dotenv_path=ENV_PATH, override=False)


class Settings(BaseSettings):
    # Required; comes from the environment or .env
    database_url: str = Field(..., alias="DATABASE_URL")

    app_name: str = Field(default="SwachhMap API", alias="APP_NAME")
    api_version: str = Field(default="0.1.0", alias="API_VERSION")
    cors_origins: str | None = Field(default=None, alias="CORS_ORIGINS")

    # Sessions
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    session_ttl_days: int = Field(default=7, alias="SESSION_TTL_DAYS")
    session_cookie_name: str = Field(default="token", alias="SESSION_COOKIE_NAME")
    admin_emails: str = Field(default="", alias="ADMIN_EMAILS")

    # Image storage
    media_folder: str = Field(default="swachhmap", alias="MEDIA_FOLDER")
    media_max_width: int = Field(default=800, alias="MEDIA_MAX_WIDTH")
    media_max_height: int = Field(default=600, alias="MEDIA_MAX_HEIGHT")
    media_jpeg_quality: int = Field(default=85, alias="MEDIA_JPEG_QUALITY")

    # Geocoding
    mapbox_geocoding_url: str = Field(
        default="https://api.mapbox.com/geocoding/v5/mapbox.places",
        alias="MAPBOX_GEOCODING_URL",
    )
    geocoder_timeout: float = Field(default=10.0, alias="GEOCODER_TIMEOUT")

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def admin_email_set(self) -> set[str]:
        return {item.strip().lower() for item in self.admin_emails.split(",") if item.strip()}


@lru_cache()
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
