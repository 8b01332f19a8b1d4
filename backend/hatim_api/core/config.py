"""
Application configuration management with environment variables.

This module provides centralized configuration management using Pydantic
BaseSettings. Every field is bound to the exact environment variable name the
hosting platform sets (PORT, PASSENGER_APP_PORT, NODE_ENV, ...), and a `.env`
file in the working directory is read when present.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Gateway settings with environment variable support.

    Values are read once at startup; the resolved port and origin allow-list
    are derived from them by `hatim_api.core.environment.build_context`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    # Mode
    node_env: str = Field(
        default="development",
        validation_alias="NODE_ENV",
        description="Runtime mode; 'production' disables self-binding fallback",
    )

    # Port candidates, in precedence order
    port: Optional[int] = Field(
        default=None,
        ge=1,
        le=65535,
        validation_alias="PORT",
        description="Explicit listen port",
    )

    passenger_app_port: Optional[int] = Field(
        default=None,
        ge=1,
        le=65535,
        validation_alias="PASSENGER_APP_PORT",
        description="Port assigned by the hosting platform",
    )

    api_port: Optional[int] = Field(
        default=None,
        ge=1,
        le=65535,
        validation_alias="API_PORT",
        description="Fallback port, honoured outside production only",
    )

    # CORS
    frontend_origins: Optional[str] = Field(
        default=None,
        validation_alias="FRONTEND_ORIGINS",
        description="Allowed CORS origins (comma-separated)",
    )

    app_url: Optional[str] = Field(
        default=None,
        validation_alias="APP_URL",
        description="Alternate CORS allow-list source when FRONTEND_ORIGINS is unset",
    )

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Application logging level",
    )

    bootstrap_log_dir: Optional[Path] = Field(
        default=None,
        validation_alias="BOOTSTRAP_LOG_DIR",
        description="Directory for startup.log and env.json (default: ./tmp)",
    )

    # Request body limits
    json_body_limit: int = Field(
        default=100 * 1024,
        ge=1,
        validation_alias="JSON_BODY_LIMIT",
        description="Maximum accepted JSON body size in bytes",
    )

    # Route group modules
    auth_routes_module: str = Field(
        default="hatim_api.api.v1.auth",
        validation_alias="AUTH_ROUTES_MODULE",
    )

    users_routes_module: str = Field(
        default="hatim_api.api.v1.users",
        validation_alias="USERS_ROUTES_MODULE",
    )

    hatims_routes_module: str = Field(
        default="hatim_api.api.v1.hatims",
        validation_alias="HATIMS_ROUTES_MODULE",
    )

    # Application Configuration
    app_name: str = Field(
        default="Hatim API",
        description="Application name",
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.node_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.node_env == "development"

    @property
    def route_modules(self) -> dict[str, str]:
        """Route group name to module path, in mount order."""
        return {
            "auth": self.auth_routes_module,
            "users": self.users_routes_module,
            "hatims": self.hatims_routes_module,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    This function uses lru_cache to ensure settings are loaded only once
    and reused across the application lifecycle.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
