"""
RoadWatch - Configuration Management
Centralized configuration using pydantic-settings.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./roadwatch.db"
    db_echo: bool = False

    # Object storage
    storage_backend: str = "local"  # local, supabase
    storage_url: str = "http://localhost:8000"
    storage_service_key: Optional[str] = None
    storage_bucket: str = "pothole-images"
    local_storage_dir: str = "./storage"

    # Defect classifier
    classifier_model_path: Optional[str] = None
    classifier_threshold: float = 0.5

    # Report forms
    draft_ttl_minutes: int = 30
    max_drafts_per_user: int = 5

    # Geolocation
    geolocation_timeout_seconds: float = 10.0
    ip_geolocation_url: str = "http://ip-api.com/json"

    # Auth
    secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
