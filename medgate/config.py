"""
MedGate Configuration Management
Centralized configuration with environment-based settings and secrets management
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings with environment variable support
    Uses pydantic for validation and type safety
    """

    # ============================================
    # APPLICATION SETTINGS
    # ============================================
    APP_NAME: str = "MedGate"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # ============================================
    # SERVER SETTINGS
    # ============================================
    API_HOST: str = Field(default="0.0.0.0")  # nosec B104
    API_PORT: int = Field(default=8000)

    # ============================================
    # SECURITY SETTINGS
    # ============================================
    SESSION_TOKEN_SECRET: Optional[str] = Field(default=None)
    JWT_SECRET: Optional[str] = Field(default=None)
    JWT_EXPIRATION_HOURS: int = Field(default=24, ge=1)

    # CORS Settings
    ALLOWED_ORIGINS: list = Field(default=["http://localhost:3000", "http://127.0.0.1:3000"])
    CORS_ALLOW_CREDENTIALS: bool = True

    # ============================================
    # SESSION REGISTRY
    # ============================================
    MAX_CONCURRENT_SESSIONS: int = Field(default=2, ge=1)
    SESSION_IDLE_TIMEOUT_MINUTES: int = Field(default=30, ge=1)
    SESSION_SWEEP_INTERVAL_SECONDS: int = Field(default=300, ge=1)

    # ============================================
    # COMPLETION THRESHOLDS (per step type defaults)
    # ============================================
    VIDEO_MIN_WATCH_PERCENT: float = Field(default=80, ge=0, le=100)
    BOOK_MIN_READ_SECONDS: int = Field(default=300, gt=0)  # 5 minutes
    MCQ_MIN_SCROLL_PERCENT: float = Field(default=90, ge=0, le=100)

    # ============================================
    # ANOMALY DETECTION
    # ============================================
    ANOMALY_WINDOW_SECONDS: int = Field(default=60, ge=1)
    RAPID_ACCESS_THRESHOLD: int = Field(default=10, ge=1)
    MULTI_IP_THRESHOLD: int = Field(default=3, ge=1)

    # ============================================
    # DATABASE SETTINGS
    # ============================================
    PROGRESS_STORE: str = Field(default="memory")  # memory | mysql
    DB_HOST: str = Field(default="localhost")
    DB_PORT: int = Field(default=3306)
    DB_USER: str = Field(default="root")
    DB_PASSWORD: str = Field(default="")
    DB_NAME: str = Field(default="medgate")
    DB_POOL_SIZE: int = Field(default=10, ge=1, le=32)

    # ============================================
    # LOGGING
    # ============================================
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")
    LOG_FILE: str = Field(default="medgate.log")
    LOG_MAX_BYTES: int = Field(default=10485760)  # 10MB
    LOG_BACKUP_COUNT: int = Field(default=5)
    ENABLE_FILE_LOGS: bool = Field(default=True)
    AUDIT_LOG_FILE: Optional[str] = Field(default=None)  # defaults to <LOG_FILE>_audit.log

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.ENVIRONMENT.lower() in ("production", "prod")

    @property
    def database_url(self) -> str:
        """Generate database connection URL (used by alembic)"""
        return f"mysql+mysqlconnector://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    def get_cors_origins(self) -> list:
        """Get CORS origins as list"""
        if isinstance(self.ALLOWED_ORIGINS, str):
            return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]
        return self.ALLOWED_ORIGINS


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings"""
    return settings
