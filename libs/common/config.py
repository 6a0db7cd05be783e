from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    TIMEZONE: str = "Europe/Paris"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Auth (tokens are issued by the identity service, we only verify them)
    AUTH_JWT_SECRET: str = "test-jwt-secret"
    AUTH_JWT_ALGORITHM: str = "HS256"

    # Commerce
    CURRENCY: str = "EUR"
    DEFAULT_PICKUP_POINT: str = "To be arranged"
    # Producer cancellations keep stock committed unless flagged per request
    PRODUCER_CANCEL_RESTORES_STOCK: bool = False

    # Collaborators
    PAYMENTS_SERVICE_URL: str = "http://payments-service:8005"
    PAYMENT_TIMEOUT_SECONDS: float = 10.0
    NOTIFICATIONS_SERVICE_URL: Optional[str] = None
    NOTIFICATION_TIMEOUT_SECONDS: float = 5.0

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
