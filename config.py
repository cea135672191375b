"""Application configuration."""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./novels.db"
    database_url_sync: str = "sqlite:///./novels.db"

    # Redis
    redis_url: Optional[str] = "redis://localhost:6379/0"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = True

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100

    # Storage
    novel_storage_dir: str = "./storage/novels"
    scratch_dir: str = "./storage/cache"
    upload_dir: str = "./storage/uploads"

    # Import
    local_category_id: int = 2
    fallback_title: str = "Untitled"

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
