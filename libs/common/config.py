from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    FRONTEND_URL: str = "http://localhost:3000"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Auth (bearer JWTs issued by the identity provider)
    JWT_SECRET: str = "test-jwt-secret"
    JWT_ALGORITHMS: List[str] = ["HS256"]
    JWT_AUDIENCE: Optional[str] = None

    # Cal.com
    CAL_API_URL: str = "https://api.cal.com/v2"
    CAL_CLIENT_ID: str = ""
    CAL_CLIENT_SECRET: str = ""
    CAL_WEBHOOK_SECRET: str = ""
    CAL_HTTP_TIMEOUT: float = 30.0
    DEFAULT_MEETING_LINK: str = "https://dibs.coach/call/session"

    # Scheduling policy
    CANCELLATION_WINDOW_HOURS: int = 24
    TOKEN_EXPIRY_BUFFER_MINUTES: int = 5

    # Redis (arq worker) and rate limiting
    REDIS_URL: str = "redis://localhost:6379/0"
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    RATE_LIMIT_ENABLED: bool = True

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
            if v.startswith("postgres://"):
                return v.replace("postgres://", "postgresql+psycopg://", 1)
        return v

    @property
    def cal_platform_configured(self) -> bool:
        return bool(self.CAL_CLIENT_ID and self.CAL_CLIENT_SECRET)


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
