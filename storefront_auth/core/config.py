"""Application configuration settings."""

from datetime import timedelta
from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings

MIN_SECRET_BYTES = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Storefront Auth API"
    app_env: str = "development"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 4000
    request_timeout_seconds: float = 30.0

    # Database
    database_url: str = "sqlite+aiosqlite:///./storefront.db"

    # JWT Authentication (no default: the service must not start without it)
    jwt_secret_key: str
    jwt_issuer: str = "storefront-api"
    jwt_audience: str = "storefront-app"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 30

    # Sessions
    max_sessions_per_user: int = 5
    inactive_session_days: int = 30
    session_cleanup_interval_minutes: int = 60

    # Lockout
    max_failed_logins: int = 5
    lockout_minutes: int = 15
    expose_attempts_remaining: bool = False

    # Password hashing (Argon2id)
    argon2_time_cost: int = 3
    argon2_memory_cost: int = 65536  # KiB
    argon2_parallelism: int = 1

    # Profile photos
    max_photo_size_mb: int = 2
    upload_dir: str = "./uploads"
    api_base_url: str = "http://localhost:4000"

    # S3-compatible object store (MinIO, R2, S3). Empty means local storage.
    s3_endpoint_url: str = ""
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    s3_bucket_name: str = ""
    s3_public_url: str = ""

    # CORS / hosts
    cors_origins: str = "http://localhost:5173"
    allowed_hosts: str = "*"

    @field_validator("jwt_secret_key")
    @classmethod
    def _check_secret_length(cls, value: str) -> str:
        if len(value.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ValueError(
                f"JWT_SECRET_KEY must be at least {MIN_SECRET_BYTES} bytes"
            )
        return value

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.access_token_expire_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.refresh_token_expire_days)

    @property
    def lockout_duration(self) -> timedelta:
        return timedelta(minutes=self.lockout_minutes)

    @property
    def max_photo_size_bytes(self) -> int:
        """Get max photo size in bytes."""
        return self.max_photo_size_mb * 1024 * 1024

    @property
    def allowed_hosts_list(self) -> List[str]:
        """Get allowed hosts as a list."""
        return [host.strip() for host in self.allowed_hosts.split(",")]

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance (process entry point only)."""
    return Settings()
