from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    SERVICE_NAME: str = "design-service"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./designs.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Auth
    # Placeholder keeps local/test runs working; real deployments override via env.
    AUTH_JWT_SECRET: str = "test-jwt-secret"
    AUTH_JWT_ALGORITHM: str = "HS256"

    # Design editor API
    DESIGN_API_URL: str = "https://api.loosegallery.com/graphql"
    DESIGN_API_KEYS: list[str] = []
    DESIGN_API_TIMEOUT: float = 30.0

    # Editor deep links
    DESIGN_EDITOR_BASE_URL: str = "https://editor.loosegallery.com"
    DESIGN_RETURN_URL: str = "http://localhost:8000/designs/return"
    DESIGN_EDITOR_DOMAIN_PARAM: str = "domain"
    DESIGN_EDITOR_TEMPLATE_PARAM: str = "template"
    DESIGN_EDITOR_EDIT_SERIAL_PARAM: str = "p"
    DESIGN_EDITOR_PRODUCT_PARAM: str = "productId"
    DESIGN_EDITOR_RETURN_PARAM: str = "return_url"

    # Locking behaviour
    DESIGN_REMOTE_LOCK_ENABLED: bool = True
    DESIGN_LOCK_ON_THANKYOU: bool = True
    DESIGN_LOCK_ON_COMPLETION: bool = True

    # Lifecycle tuning
    DESIGN_MIN_SERIAL_LENGTH: int = 5
    DESIGN_PENDING_EDIT_TTL_SECONDS: int = 3600
    DESIGN_MAX_AGE_DAYS: int = 30

    # Checkout
    DESIGN_REQUIRE_COPYRIGHT_AGREEMENT: bool = True
    DESIGN_COPYRIGHT_TEXT: str = (
        "I agree to the copyright ownership and understand my design "
        "will be printed as is."
    )

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

    @field_validator("DESIGN_EDITOR_BASE_URL", "DESIGN_API_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
