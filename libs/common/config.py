from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Supabase
    # Placeholder secret keeps local/test runs working without credentials.
    # Real deployments must override via env.
    SUPABASE_JWT_SECRET: str = "test-jwt-secret"

    # Identity table owned by the auth provider (auth.users on Supabase).
    IDENTITY_SCHEMA: Optional[str] = None
    IDENTITY_TABLE: str = "identities"

    # SQL expression returning the caller id inside row-level-security policies
    RLS_UID_EXPRESSION: str = "auth.uid()"

    # Schema reconciler: allow destructive key-type repairs
    RECONCILE_ACCEPT_DATA_LOSS: bool = False

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

    @field_validator("IDENTITY_SCHEMA")
    @classmethod
    def blank_schema_is_default(cls, v: Optional[str]) -> Optional[str]:
        return v or None


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
