"""
Configuration settings for recordmap.

Uses Pydantic Settings to load environment variables for the database
connection, the cache service, logging, and the maintenance switch.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("recordmap", alias="DB_NAME")
    db_dialect: str = Field("postgresql", alias="DB_DIALECT")
    db_pool_min: int = Field(1, alias="DB_POOL_MIN")
    db_pool_max: int = Field(10, alias="DB_POOL_MAX")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Cache
    cache_url: str = Field("redis://localhost:6379/0", alias="CACHE_URL")
    cache_prefix: str = Field("recordmap:", alias="CACHE_PREFIX")
    cache_compress: bool = Field(True, alias="CACHE_COMPRESS")
    cache_default_expire: int = Field(3600, alias="CACHE_DEFAULT_EXPIRE")

    # Maintenance
    maintenance_mode: bool = Field(False, alias="MAINTENANCE_MODE")
    maintenance_message: str = Field(
        "The service is under maintenance. Please try again later.",
        alias="MAINTENANCE_MESSAGE",
    )
    maintenance_retry_after: int = Field(600, alias="MAINTENANCE_RETRY_AFTER")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def dsn(self) -> str:
        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
