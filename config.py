"""Configuration settings for the RangerWatch API"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "postgresql://user:pass@db:5432/rangerwatch"

    # MinIO (media store)
    MINIO_ENDPOINT: str = "minio:9000"
    MINIO_EXTERNAL_ENDPOINT: str = "localhost:9000"
    MINIO_EXTERNAL_SCHEME: str = "http"  # Use "https" when behind a proxy
    MINIO_ACCESS_KEY: str = "admin"
    MINIO_SECRET_KEY: str = "supersecret"
    MINIO_BUCKET: str = "rangerwatch-media"
    MINIO_SECURE: bool = False

    # Overrides the prefix derived from the MinIO external endpoint
    MEDIA_PUBLIC_URL_PREFIX: str = ""
    MEDIA_MAX_BYTES: int = 10 * 1024 * 1024

    # Admin (HTTP Basic). Empty values lock the admin surface.
    ADMIN_USERNAME: str = ""
    ADMIN_PASSWORD: str = ""

    # Comma-separated list of allowed origins
    CORS_ORIGINS: str = "*"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
