# config.py
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database settings
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "classroom_db"

    # JWT settings - change SECRET_KEY in production!
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 120

    # Object storage
    STORAGE_DIR: str = "storage"
    STORAGE_BUCKET: str = "assignment-files"
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    MAX_UPLOAD_SIZE: int = 10_485_760  # 10MB per file

    # "local" publishes after each write, "change_stream" tails MongoDB
    REALTIME_TRANSPORT: str = "local"

    # How often lapsed sessions are closed
    SESSION_SWEEP_SECONDS: int = 60

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


@lru_cache()
def get_settings() -> Settings:
    """
    Get settings instance with caching
    Returns:
        Settings instance
    """
    return Settings()
