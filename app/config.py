from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from functools import lru_cache


# Secret keys that must never reach a production deployment
WEAK_SECRET_KEYS = {
    "secret",
    "changeme",
    "password",
    "development",
    "development-secret-key-change-in-production",
    "your-secret-key",
    "test",
}

MIN_PRODUCTION_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/fire_safety_planning"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # Auth (tokens are issued elsewhere, this service only verifies them)
    SECRET_KEY: str = "development-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 120

    # CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # Planning engine
    BUSINESS_TIMEZONE: str = "Asia/Riyadh"
    SUBSCRIPTION_DEBOUNCE_MS: int = 500
    MOVE_MAX_YEAR_DISTANCE: int = 1
    RENEWAL_RECONCILE_INTERVAL_MINUTES: int = 15
    RENEWAL_RECONCILER_ENABLED: bool = True
    ACTIVITY_LOG_ENABLED: bool = True

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    ENABLE_DOCS: bool | None = None

    class Config:
        env_file = ".env"
        case_sensitive = True

    @model_validator(mode='after')
    def validate_production_settings(self) -> "Settings":
        """Reject unsafe configuration when running in production."""
        if self.is_production:
            if self.SECRET_KEY.lower() in WEAK_SECRET_KEYS:
                raise ValueError("SECRET_KEY uses a known weak value; set a strong secret in production")
            if len(self.SECRET_KEY) < MIN_PRODUCTION_SECRET_LENGTH:
                raise ValueError(
                    f"SECRET_KEY must be at least {MIN_PRODUCTION_SECRET_LENGTH} characters in production"
                )
            self.DEBUG = False
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() in ("production", "staging")

    @property
    def DOCS_ENABLED(self) -> bool:
        """API docs are on in development unless explicitly disabled."""
        if self.ENABLE_DOCS is not None:
            return self.ENABLE_DOCS
        return not self.is_production

    @property
    def sqlalchemy_echo(self) -> bool:
        # SECURITY: echo logs bound parameters, never enable in production
        return self.DEBUG and not self.is_production

    @property
    def subscription_debounce_seconds(self) -> float:
        return self.SUBSCRIPTION_DEBOUNCE_MS / 1000


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
