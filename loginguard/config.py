from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application Config
    PROJECT_NAME: str = Field(default="LoginGuard Risk Engine")
    PROJECT_DESCRIPTION: str = Field(
        default="Device fingerprint risk scoring and login audit service"
    )
    VERSION: str = Field(default="1.0.0")
    API_PREFIX: str = Field(default="/api")
    DOCS_URL: str = Field(default="/docs")
    BACKEND_CORS_ORIGINS: List[str] = Field(default_factory=list)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=True)

    # Database
    DATABASE_URL: str = Field(default="")
    DATABASE_POOL_SIZE: int = Field(default=10)
    DATABASE_MAX_OVERFLOW: int = Field(default=20)

    # Development database fallback
    DEV_DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./loginguard.sqlite3")

    # Admin bearer tokens
    SECRET_KEY: str = Field(default="dev-secret-key")
    ALGORITHM: str = Field(default="HS256")
    ADMIN_TOKEN_EXPIRE_MINUTES: int = Field(default=60)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_TO_FILE: bool = Field(default=False)
    LOG_DIR: str = Field(default="logs")

    # Geolocation
    GEOIP_PROVIDER_URL: str = Field(
        default="", description="JSON lookup URL with an {ip} placeholder"
    )
    GEOIP_TIMEOUT_SECONDS: float = Field(default=1.5, gt=0)

    # Risk thresholds used to seed the risk_thresholds row on first boot
    DEFAULT_RISK_LOW: float = Field(default=0.3, ge=0, le=1)
    DEFAULT_RISK_MEDIUM: float = Field(default=0.6, ge=0, le=1)
    DEFAULT_RISK_HIGH: float = Field(default=0.8, ge=0, le=1)
    DEFAULT_RISK_BLOCK: float = Field(default=0.9, ge=0, le=1)

    # Scoring
    TRUSTED_DEVICE_DAMPENING: float = Field(default=0.5, ge=0, lt=1)
    LOW_FONT_DIVERSITY_THRESHOLD: int = Field(default=20, ge=0)

    # Bookkeeping retries
    AUDIT_WRITE_ATTEMPTS: int = Field(default=2, ge=1)
    DEVICE_UPSERT_ATTEMPTS: int = Field(default=2, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def model_post_init(self, __context) -> None:
        """Resolve the database URL and enforce production requirements"""
        if self.ENVIRONMENT.lower() == "production":
            if not self.DATABASE_URL:
                raise ValueError("DATABASE_URL must be set in production!")
            if not self.SECRET_KEY or self.SECRET_KEY == "dev-secret-key":
                raise ValueError(
                    "SECRET_KEY must be set to a secure value in production!"
                )
        elif not self.DATABASE_URL:
            self.DATABASE_URL = self.DEV_DATABASE_URL

    @property
    def default_thresholds(self) -> dict:
        return {
            "low": self.DEFAULT_RISK_LOW,
            "medium": self.DEFAULT_RISK_MEDIUM,
            "high": self.DEFAULT_RISK_HIGH,
            "block": self.DEFAULT_RISK_BLOCK,
        }


# Instantiate settings
settings = Settings()
