"""
Application Configuration
"""
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dateutil import tz
from typing import List, Optional
import warnings

INSECURE_KEYS = {
    "your-super-secret-key-change-in-production-min-32-chars",
    "secret-key",
    "change-me",
}


class Settings(BaseSettings):
    """Settings read from the environment (or .env); names are case sensitive"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "Balance Reporting API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./balance.db"

    # Auth
    SECRET_KEY: str = "your-super-secret-key-change-in-production-min-32-chars"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440
    BOOTSTRAP_ADMIN_USERNAME: Optional[str] = None
    BOOTSTRAP_ADMIN_PASSWORD: Optional[str] = None

    # Reporting
    REPORT_TIMEZONE: str = "Africa/Khartoum"
    REPORT_TIMEOUT_SECONDS: float = Field(30.0, gt=0)
    LEDGER_PAGE_SIZE: int = Field(500, ge=1)
    MAX_PAGE_SIZE: int = Field(1000, ge=1)

    # HTTP
    RATE_LIMIT_ENABLED: bool = True
    CORS_ORIGINS: str = "http://localhost:8081,http://127.0.0.1:8081"

    @field_validator("REPORT_TIMEZONE")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        if tz.gettz(value) is None:
            raise ValueError(f"Unknown timezone '{value}'")
        return value

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def security_problems(self) -> List[str]:
        problems = []
        if self.SECRET_KEY in INSECURE_KEYS:
            problems.append("SECRET_KEY is a published default")
        elif len(self.SECRET_KEY) < 32:
            problems.append("SECRET_KEY is shorter than 32 characters")
        if self.is_production and self.DEBUG:
            problems.append("DEBUG is enabled in production")
        return problems


settings = Settings()

# Refuse to start insecurely in production; only warn elsewhere
for problem in settings.security_problems():
    if settings.is_production:
        raise ValueError(f"CRITICAL: {problem}")
    warnings.warn(problem, UserWarning)
