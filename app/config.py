"""
AuditPulse - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "AuditPulse"
    app_env: str = "development"
    debug: bool = False
    api_version: str = "v1"

    # ===========================================
    # DATABASE CONFIGURATION
    # ===========================================
    database_url_async: str  # Required - must be set in .env

    # ===========================================
    # JWT AUTHENTICATION
    # Tokens are issued by the identity platform; this service only verifies them.
    # ===========================================
    jwt_secret_key: str  # Required - must be set in .env
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # ===========================================
    # AUDIT INTELLIGENCE GATEWAY
    # OpenAI-compatible chat-completions endpoint used for risk reasoning
    # ===========================================
    audit_ai_base_url: str = "https://ai.gateway.lovable.dev/v1"
    audit_ai_api_key: str = ""
    audit_ai_model: str = "google/gemini-2.5-flash"
    audit_ai_timeout_seconds: float = 60.0

    # ===========================================
    # SNAPSHOT BOUNDS
    # ===========================================
    audit_log_window: int = 500  # Most recent audit-trail entries per snapshot
    payroll_record_limit: int = 200

    # ===========================================
    # CORS SETTINGS
    # ===========================================
    cors_origins: str = "http://localhost:3000,http://localhost:8000,http://127.0.0.1:8000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def audit_ai_completions_url(self) -> str:
        return f"{self.audit_ai_base_url.rstrip('/')}/chat/completions"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Export settings instance
settings = get_settings()
