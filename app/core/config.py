"""
Configuration settings for the Benetrip flight search service
"""

import logging
from typing import List, Optional, Dict, Any
from enum import Enum
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Supported environment types"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Supported log levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Application settings loaded from environment variables with validation"""

    # API Configuration
    API_TITLE: str = Field(default="Benetrip Flight Search API", description="API title")
    API_VERSION: str = Field(default="1.0.0", description="API version")

    # CORS Configuration (stored as string, parsed to list)
    CORS_ORIGINS_STR: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)",
        alias="CORS_ORIGINS"
    )

    # Affiliate / partner API
    AVIASALES_MARKER: str = Field(default="", description="Travelpayouts affiliate marker")
    AVIASALES_TOKEN: str = Field(default="", description="Travelpayouts API token used for request signing")
    TRAVELPAYOUTS_BASE_URL: str = Field(
        default="https://api.travelpayouts.com/v1",
        description="Base URL of the flight search API"
    )
    AUTOCOMPLETE_URL: str = Field(
        default="https://autocomplete.travelpayouts.com/places2",
        description="Places autocomplete endpoint"
    )
    SEARCH_HOST: str = Field(default="www.benetrip.com.br", description="Host reported to the search API")
    SEARCH_LOCALE: str = Field(default="pt", description="Locale reported to the search API")
    DEFAULT_CURRENCY: str = Field(default="BRL", min_length=3, max_length=3, description="Fallback currency")

    # Retry/timeout executor
    REQUEST_TIMEOUT: float = Field(
        default=45.0,
        gt=0,
        le=300,
        description="Per-attempt timeout in seconds"
    )
    MAX_RETRIES: int = Field(default=2, ge=0, le=10, description="Retries after the first attempt")
    RETRY_DELAY: float = Field(default=1.0, ge=0, le=60, description="Base backoff delay in seconds")

    # Poller
    POLL_INTERVAL: float = Field(default=2.0, ge=0, le=60, description="Delay before each poll attempt")
    POLL_MAX_ATTEMPTS: int = Field(default=10, ge=1, le=100, description="Maximum poll attempts")

    # Redirect resolution
    REDIRECT_TIMEOUT: float = Field(default=8.0, gt=0, le=60, description="Redirect request timeout")
    REDIRECT_MAX_RETRIES: int = Field(default=2, ge=0, le=2, description="Redirect request retries")
    REDIRECT_RETRY_DELAY: float = Field(default=1.0, ge=0, le=30, description="Redirect retry delay")
    REDIRECT_CACHE_MAX_SIZE: int = Field(
        default=500,
        ge=1,
        le=100000,
        description="Maximum number of cached redirect links"
    )
    CACHE_NAMESPACE: str = Field(default="benetrip", min_length=1, description="Session storage key prefix")
    REDIRECT_PAGE_TEMPLATE: str = Field(default="redirect.html", description="Page that submits POST redirects")

    # Autocomplete
    AUTOCOMPLETE_TIMEOUT: float = Field(default=5.0, gt=0, le=60, description="Autocomplete timeout")

    # Logging Configuration
    LOG_LEVEL: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )

    # Environment Configuration
    ENVIRONMENT: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Get CORS origins as a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS_STR.split(',') if origin.strip()]

    @field_validator('AVIASALES_MARKER', 'AVIASALES_TOKEN', mode='before')
    @classmethod
    def strip_credentials(cls, v):
        """Strip whitespace around credentials; markers may be given as numbers"""
        if v is None:
            return ""
        return str(v).strip()

    @field_validator('TRAVELPAYOUTS_BASE_URL', 'AUTOCOMPLETE_URL')
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require absolute http(s) URLs without a trailing slash"""
        if not v.startswith(('http://', 'https://')):
            raise ValueError(f"URL must start with http:// or https://: {v}")
        return v.rstrip('/')

    @field_validator('DEFAULT_CURRENCY')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Normalize currency codes to upper case"""
        return v.upper()

    @field_validator('LOG_LEVEL', mode='before')
    @classmethod
    def validate_log_level(cls, v) -> str:
        """Validate and normalize log level"""
        if isinstance(v, str):
            return v.upper()
        return v

    @model_validator(mode='after')
    def validate_environment_specific_settings(self) -> 'Settings':
        """Validate environment-specific configuration"""
        if self.ENVIRONMENT == Environment.PRODUCTION:
            if any('localhost' in origin for origin in self.CORS_ORIGINS):
                logging.warning(
                    "Production environment detected with localhost CORS origins. "
                    "Consider updating CORS_ORIGINS for production."
                )

            if self.LOG_LEVEL == LogLevel.DEBUG:
                logging.warning(
                    "DEBUG log level detected in production environment. "
                    "Consider using INFO or WARNING for production."
                )

            if not self.AVIASALES_MARKER or not self.AVIASALES_TOKEN:
                logging.warning(
                    "AVIASALES_MARKER/AVIASALES_TOKEN are not set; "
                    "flight searches will be rejected by the partner API."
                )

        return self

    def validate_required_settings(self) -> None:
        """Validate that the partner credentials needed for live searches are present"""
        errors = []

        if not self.AVIASALES_MARKER:
            errors.append("AVIASALES_MARKER is required")
        if not self.AVIASALES_TOKEN:
            errors.append("AVIASALES_TOKEN is required")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

    def get_executor_config(self) -> Dict[str, Any]:
        """Get retry/timeout configuration for search and polling calls"""
        return {
            'timeout': self.REQUEST_TIMEOUT,
            'max_retries': self.MAX_RETRIES,
            'retry_delay': self.RETRY_DELAY,
        }

    def get_poll_config(self) -> Dict[str, Any]:
        """Get polling configuration"""
        return {
            'interval': self.POLL_INTERVAL,
            'max_attempts': self.POLL_MAX_ATTEMPTS,
        }

    def get_redirect_config(self) -> Dict[str, Any]:
        """Get redirect resolution configuration"""
        return {
            'timeout': self.REDIRECT_TIMEOUT,
            'max_retries': self.REDIRECT_MAX_RETRIES,
            'retry_delay': self.REDIRECT_RETRY_DELAY,
        }

    def get_cache_config(self) -> Dict[str, Any]:
        """Get redirect cache configuration"""
        return {
            'namespace': self.CACHE_NAMESPACE,
            'max_size': self.REDIRECT_CACHE_MAX_SIZE,
        }

    def mask_sensitive_data(self) -> Dict[str, Any]:
        """Get configuration with sensitive data masked for logging"""
        config = self.model_dump()

        if config.get('AVIASALES_TOKEN'):
            config['AVIASALES_TOKEN'] = f"{config['AVIASALES_TOKEN'][:4]}***"

        return config

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "validate_assignment": True,
        "use_enum_values": True,
        "env_parse_none_str": "None",
        "extra": "ignore",
    }


def get_settings() -> Settings:
    """Get a fresh settings instance"""
    return Settings()


# Process settings instance - will be initialized when first accessed
settings: Optional[Settings] = None


def get_global_settings() -> Settings:
    """Get or create the process settings instance"""
    global settings
    if settings is None:
        settings = get_settings()
    return settings
