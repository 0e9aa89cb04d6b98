# academic_calendar/core/config.py - Centralized settings management using Pydantic
from pydantic import Field, validator, EmailStr
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings with validation and type safety"""

    # Application Environment
    ENV: str = Field(default="dev", description="Environment: dev, staging, prod")
    DEBUG: bool = Field(default=False, description="Debug mode")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, ge=1, le=65535, description="API port")
    API_TITLE: str = Field(default="Academic Calendar API", description="API title")
    API_VERSION: str = Field(default="1.0.0", description="API version")

    # Database Configuration
    DATABASE_URL: str = Field(default="sqlite:///./academic_calendar.db", description="Database connection URL")
    DATABASE_ECHO: bool = Field(default=False, description="Echo SQL queries")
    DATABASE_POOL_SIZE: int = Field(default=5, ge=1, le=100, description="Connection pool size")
    DATABASE_MAX_OVERFLOW: int = Field(default=10, ge=0, le=100, description="Max overflow connections")
    DATABASE_POOL_TIMEOUT: int = Field(default=30, ge=1, le=300, description="Pool timeout in seconds")
    DATABASE_POOL_RECYCLE: int = Field(default=3600, ge=300, description="Pool recycle time in seconds")

    # CORS Configuration
    CORS_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",  # Vite dev server
            "http://127.0.0.1:5173"
        ],
        description="CORS allowed origins"
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True, description="Allow CORS credentials")

    # Email Configuration (SMTP)
    SMTP_HOST: Optional[str] = Field(default=None, description="SMTP server host")
    SMTP_PORT: int = Field(default=587, ge=1, le=65535, description="SMTP server port")
    SMTP_USER: Optional[str] = Field(default=None, description="SMTP username")
    SMTP_PASSWORD: Optional[str] = Field(default=None, description="SMTP password")
    SMTP_FROM_EMAIL: Optional[EmailStr] = Field(default=None, description="From email address")
    SMTP_FROM_NAME: str = Field(default="School Calendar", description="From name")
    SMTP_USE_TLS: bool = Field(default=True, description="Use TLS for SMTP")

    # Notifications
    NOTIFICATIONS_ENABLED: bool = Field(default=True, description="Queue session/term and promotion emails")
    NOTIFICATION_BATCH_SIZE: int = Field(default=10, ge=1, le=500, description="Promotion emails per batch")
    NOTIFICATION_BATCH_DELAY_SECONDS: float = Field(default=0.5, ge=0.0, le=60.0, description="Pause between promotion email batches")

    # Academic calendar rules
    SESSION_MIN_MONTHS: int = Field(default=10, ge=1, le=24, description="Minimum session span in calendar months")
    SESSION_MIN_DAYS: int = Field(default=300, ge=1, le=730, description="Minimum session span in days")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Logging format string"
    )

    # Development Settings
    DEV_SHOW_DOCS: bool = Field(default=True, description="Show API docs in development")
    DEV_LOG_SQL: bool = Field(default=False, description="Log SQL queries in development")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"  # Ignore extra environment variables

    @validator("ENV")
    def validate_environment(cls, v):
        allowed_envs = ["dev", "development", "test", "staging", "prod", "production"]
        if v.lower() not in allowed_envs:
            raise ValueError(f"ENV must be one of: {allowed_envs}")
        return v.lower()

    @validator("DATABASE_URL")
    def validate_database_url(cls, v):
        # Accept postgresql, postgresql+psycopg2 (legacy), postgresql+psycopg (psycopg3), sqlite
        allowed_prefixes = (
            "postgresql://",
            "postgresql+psycopg2://",
            "postgresql+psycopg://",
            "sqlite://",
        )
        if not v.startswith(allowed_prefixes):
            raise ValueError("DATABASE_URL must be a valid database connection string (postgresql, postgresql+psycopg, postgresql+psycopg2, or sqlite)")
        return v

    @validator("LOG_LEVEL")
    def validate_log_level(cls, v):
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed_levels}")
        return v.upper()

    @validator("CORS_ORIGINS", pre=True)
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            # Handle comma-separated string
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.ENV in ["dev", "development", "test"]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.ENV in ["prod", "production"]

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST and self.SMTP_FROM_EMAIL)

    def get_cors_config(self) -> dict:
        """Get CORS configuration for FastAPI"""
        return {
            "allow_origins": self.CORS_ORIGINS,
            "allow_credentials": self.CORS_ALLOW_CREDENTIALS,
            "allow_methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
            "allow_headers": ["Content-Type", "Authorization", "Accept", "Origin", "X-School-ID"],
        }


# Create settings instance with validation
try:
    settings = Settings()
except Exception as e:
    print(f"Configuration error: {e}")
    print("Please check your .env file and environment variables")
    raise


def validate_critical_settings():
    """Validate critical settings that must be present"""
    critical_errors = []

    if not settings.DATABASE_URL:
        critical_errors.append("DATABASE_URL is required")

    # Notifications without SMTP still run, they just log instead of sending
    if settings.NOTIFICATIONS_ENABLED and not settings.smtp_configured:
        print("WARNING: Notifications are enabled but SMTP is not configured. Emails will be logged, not sent.")

    if critical_errors:
        error_msg = "Critical configuration errors:\n" + "\n".join(f"  - {error}" for error in critical_errors)
        raise ValueError(error_msg)


# Validate on import
validate_critical_settings()

# Export settings
__all__ = ["settings", "Settings"]
