"""
Session Linker Configuration Module

Centralized configuration management with Pydantic validation.
All environment variables are validated at startup to catch misconfigurations early.
"""

import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LinkerSettings(BaseSettings):
    """
    Linker configuration with validation.

    All settings can be overridden via environment variables
    (case-insensitive, no prefix) or a local .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    # === Runtime ===
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production"
    )
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: str = Field(default="simple", description="Log format: simple or json")

    # === Local persistence (guest session + link records) ===
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL (optional, in-memory store when unset)"
    )
    storage_namespace: str = Field(
        default="default",
        min_length=1,
        description="Key namespace for one browser profile / device"
    )

    # === MongoDB (merge service) ===
    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    mongo_db_name: str = Field(
        default="engage",
        description="MongoDB database name"
    )

    # === Link function ===
    link_function_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the profile merge service"
    )
    link_service_secret: Optional[str] = Field(
        default=None,
        min_length=16,
        description="Bearer secret shared with the merge service (min 16 chars)"
    )

    # === Link retry policy ===
    link_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Automatic link attempts per trigger (1-10)"
    )
    link_backoff_min_seconds: float = Field(
        default=0.5,
        ge=0.0,
        le=30.0,
        description="Minimum delay between link attempts"
    )
    link_backoff_max_seconds: float = Field(
        default=4.0,
        ge=0.0,
        le=60.0,
        description="Maximum delay between link attempts"
    )
    link_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=60.0,
        description="Timeout for a single merge call"
    )
    link_claim_ttl_seconds: int = Field(
        default=30,
        ge=1,
        le=600,
        description="Lifetime of the cross-tab in-flight lease"
    )
    verify_linked_profiles: bool = Field(
        default=True,
        description="Re-check server data before trusting a local success marker"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is a known value."""
        allowed = {"development", "staging", "production"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of: {', '.join(sorted(allowed))}")
        return v_lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(allowed))}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in {"simple", "json"}:
            raise ValueError("log_format must be 'simple' or 'json'")
        return v_lower

    @field_validator("link_service_secret")
    @classmethod
    def validate_secret_strength(cls, v: Optional[str]) -> Optional[str]:
        """Reject obviously weak shared secrets."""
        if v is None:
            return None
        weak_secrets = {"secret", "password", "12345678901234567", "changeme"}
        if v.lower() in weak_secrets or len(set(v)) < 4:
            raise ValueError("Link service secret is too weak - use a secure random string")
        return v

    @field_validator("link_function_url", "mongodb_uri")
    @classmethod
    def validate_url_format(cls, v: str) -> str:
        """Basic URL format validation."""
        if not v.startswith(("http://", "https://", "mongodb://", "mongodb+srv://")):
            raise ValueError(f"Invalid URL format: {v}")
        return v.rstrip("/")

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def auth_required(self) -> bool:
        """Merge service requires the bearer secret in production or when configured."""
        return self.is_production or self.link_service_secret is not None

    @property
    def uses_redis(self) -> bool:
        return bool(self.redis_url)

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration is suitable for production.

        Returns list of warning/error messages.
        """
        issues = []

        if self.is_production:
            if not self.link_service_secret:
                issues.append("CRITICAL: LINK_SERVICE_SECRET required in production")
            if not self.redis_url:
                issues.append("WARNING: REDIS_URL not configured, link records are process-local")
            if "localhost" in self.mongodb_uri:
                issues.append("WARNING: Using localhost MongoDB in production")

        if self.link_backoff_min_seconds > self.link_backoff_max_seconds:
            issues.append("WARNING: LINK_BACKOFF_MIN_SECONDS exceeds LINK_BACKOFF_MAX_SECONDS")

        return issues


@lru_cache()
def get_settings() -> LinkerSettings:
    """
    Get cached settings instance.

    Settings are loaded once and cached. Tests call get_settings.cache_clear()
    after changing the environment.
    """
    return LinkerSettings()


def validate_config_on_startup(settings: Optional[LinkerSettings] = None) -> LinkerSettings:
    """
    Validate configuration at application startup.

    Raises ValueError with details if config is invalid.
    Logs warnings for non-critical issues.
    """
    logger = logging.getLogger(__name__)

    try:
        settings = settings or get_settings()
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}") from e

    for issue in settings.validate_production_config():
        if issue.startswith("CRITICAL"):
            raise ValueError(issue)
        logger.warning(issue)

    # Log loaded configuration (redact secrets)
    logger.info(f"Configuration loaded: environment={settings.environment}")
    logger.info(f"  storage={'redis' if settings.uses_redis else 'memory'} namespace={settings.storage_namespace}")
    logger.info(f"  link_function_url={settings.link_function_url}")
    logger.info(
        f"  link_max_attempts={settings.link_max_attempts} "
        f"timeout={settings.link_timeout_seconds}s"
    )
    logger.info(f"  mongodb_uri={'*****' if 'localhost' not in settings.mongodb_uri else settings.mongodb_uri}")
    logger.info(f"  auth_required={settings.auth_required}")

    return settings
