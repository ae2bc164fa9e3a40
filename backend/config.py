"""
Reconciliation Service - Configuration Management

Centralized configuration for environment variables, CORS, and matching defaults.
This module ensures:
- No hardcoded secrets
- Environment-specific settings (dev/staging/prod)
- Matching defaults that can be tuned per deployment
- Secure defaults
"""

from decimal import Decimal
from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type coercion.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ==================== ENVIRONMENT ====================
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (auto-enabled in development)"
    )

    # ==================== AUTHENTICATION ====================
    INTERNAL_API_KEY: str = Field(
        default="",
        description="Primary API key for service-to-service calls"
    )
    INTERNAL_API_KEYS: str = Field(
        default="",
        description="Comma-separated additional API keys (for rotation)"
    )

    # ==================== CORS ====================
    CORS_ORIGINS: str = Field(
        default="",
        description="Comma-separated list of allowed origins"
    )

    # ==================== MATCHING ====================
    MATCH_MIN_CONFIDENCE: float = Field(
        default=0.5, ge=0.0, le=1.0,
        description="Candidates scoring below this are never accepted"
    )
    MATCH_DATE_WINDOW_DAYS: int = Field(
        default=3, ge=0,
        description="Maximum date difference for amount+date matches"
    )
    MATCH_AMOUNT_EPSILON: Decimal = Field(
        default=Decimal("1.00"), ge=0,
        description="Amount tolerance when fuzzy amounts are allowed"
    )
    MATCH_ALLOW_FUZZY_AMOUNTS: bool = Field(
        default=False,
        description="Allow description matches with small amount differences"
    )
    MATCH_DESCRIPTION_SIMILARITY_THRESHOLD: float = Field(
        default=0.5, ge=0.0, le=1.0,
        description="Minimum description similarity for fuzzy matches"
    )
    MATCH_SIMILARITY_METRIC: str = Field(
        default="blended",
        description="Description similarity metric: blended, token_overlap, sequence"
    )
    MATCH_CURRENCY: str = Field(
        default="USD",
        description="Default ISO currency code used for rounding and formatting"
    )
    MATCH_MAX_TRANSACTIONS_PER_SIDE: int = Field(
        default=10000, ge=1,
        description="Largest collection accepted per side in a single request"
    )

    # ==================== OBSERVABILITY ====================
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR"
    )

    # ==================== API ====================
    API_TITLE: str = Field(
        default="Reconciliation Matching API",
        description="API title for OpenAPI docs"
    )
    API_VERSION: str = Field(
        default="1.0.0",
        description="API version"
    )

    # ==================== COMPUTED PROPERTIES ====================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def is_staging(self) -> bool:
        return self.ENVIRONMENT.lower() == "staging"

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse CORS_ORIGINS into a list with environment-aware defaults.

        Production/Staging: Only specified origins
        Development: Include localhost origins
        """
        if self.CORS_ORIGINS and self.CORS_ORIGINS != "*":
            origins = [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        else:
            origins = []

        # Development origins (only outside production)
        dev_origins = [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://localhost:8000",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]

        all_origins = set(origins)
        if not self.is_production:
            all_origins.update(dev_origins)

        return sorted(all_origins)

    @property
    def debug_enabled(self) -> bool:
        """Enable debug in development or when explicitly set"""
        return self.DEBUG or self.is_development

    @property
    def internal_api_keys_configured(self) -> bool:
        return bool(self.INTERNAL_API_KEY.strip() or self.INTERNAL_API_KEYS.strip(" ,"))

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration for production deployment.
        Returns list of validation errors.
        """
        errors = []

        if self.is_production:
            if self.CORS_ORIGINS == "*":
                errors.append("CORS_ORIGINS cannot be '*' in production")

            if self.DEBUG:
                errors.append("DEBUG should be False in production")

            if not self.internal_api_keys_configured:
                errors.append("INTERNAL_API_KEY or INTERNAL_API_KEYS is required")

        return errors


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Settings are loaded once and cached for the application lifetime.
    """
    settings = Settings()

    # Log configuration status
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.debug_enabled}")
    logger.info(f"CORS Origins: {len(settings.cors_origins_list)} configured")

    # Validate in production
    if settings.is_production:
        errors = settings.validate_production_config()
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ValueError(f"Production configuration invalid: {', '.join(errors)}")

    return settings


# ==================== CORS CONFIGURATION ====================

def get_cors_config() -> dict:
    """
    Get CORS middleware configuration.

    Returns configuration dict for CORSMiddleware.
    """
    settings = get_settings()

    return {
        "allow_origins": settings.cors_origins_list,
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": [
            "Content-Type",
            "Accept",
            "Origin",
            "X-Requested-With",
            "X-Request-ID",
            "X-Internal-Api-Key",
            "X-Service-Name",
        ],
        "expose_headers": [
            "X-Request-ID",
            "X-Process-Time",
        ],
        "max_age": 600,  # Cache preflight for 10 minutes
    }


# ==================== ENVIRONMENT VALIDATION ====================

def validate_environment() -> dict:
    """
    Validate all required environment variables.

    Returns a status dict with validation results.
    """
    settings = get_settings()

    status = {
        "valid": True,
        "environment": settings.ENVIRONMENT,
        "errors": [],
        "warnings": [],
        "variables": {}
    }

    # Check optional but recommended
    optional_vars = [
        ("SENTRY_DSN", settings.SENTRY_DSN, "Error tracking disabled"),
        ("INTERNAL_API_KEY", settings.internal_api_keys_configured, "Match endpoint will reject every request"),
    ]

    for name, value, warning in optional_vars:
        if not value:
            status["warnings"].append(warning)
            status["variables"][name] = "⚠ Not set"
        else:
            status["variables"][name] = "✓ Set"

    # Production-specific validation
    errors = settings.validate_production_config()
    if errors:
        status["errors"].extend(errors)
        status["valid"] = False

    return status


# Export settings instance for convenience
settings = get_settings()
