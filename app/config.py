"""
Application settings.
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./data/receipts.db"
    SQL_ECHO: bool = False

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # File storage
    DATA_DIR: str = "./data"
    UPLOAD_DIR: str = "./data/uploads"
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    STORAGE_BACKEND: str = "filesystem"  # filesystem | minio | none
    UPLOAD_MAX_BYTES: int = 10 * 1024 * 1024
    ALLOWED_IMAGE_TYPES: List[str] = ["image/jpeg", "image/jpg", "image/png", "image/webp"]
    PLACEHOLDER_IMAGE_URL: str = "https://via.placeholder.com/300x400/f0f0f0/666?text=Receipt"

    # MinIO (STORAGE_BACKEND=minio)
    MINIO_ENDPOINT: str = "localhost:9000"
    MINIO_ACCESS_KEY: str = ""
    MINIO_SECRET_KEY: str = ""
    MINIO_BUCKET_NAME: str = "receipts"
    MINIO_USE_SSL: bool = False

    # AI extraction
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_MODEL: str = "claude-sonnet-4-5"
    EXTRACTION_MAX_TOKENS: int = 1000
    EXTRACTION_TIMEOUT_SECONDS: float = 30.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
