"""
Application settings using Pydantic for configuration management.
Supports environment variables, a .env file and validation.
"""

from enum import Enum
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .. import __app_name__, __version__


class Environment(str, Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Quality(str, Enum):
    """Quality presets accepted on intake."""
    BEST = "best"
    P2160 = "2160"
    P1440 = "1440"
    P1080 = "1080"
    P720 = "720"
    P480 = "480"
    P360 = "360"
    AUDIO = "audio"


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        validate_assignment=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = __app_name__
    APP_VERSION: str = __version__
    ENVIRONMENT: Environment = Environment.DEVELOPMENT
    DEBUG: bool = False

    # API Configuration
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 5000
    API_PREFIX: str = "/api"
    API_DOCS_URL: str = "/api/docs"
    API_REDOC_URL: str = "/api/redoc"
    ALLOWED_HOSTS: Annotated[List[str], NoDecode] = Field(default=["*"])

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/tubevault.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # Storage
    STORAGE_ROOT: Path = Path("./data")
    MEDIA_SUBDIR: str = "videos"
    THUMBNAIL_SUBDIR: str = "thumbnails"
    SUBTITLE_SUBDIR: str = "subtitles"
    WORKING_SUBDIR: str = "videos"

    # Fetcher
    FETCHER_BINARY: str = "yt-dlp"
    FETCHER_METADATA_TIMEOUT: float = 120.0
    FETCHER_RESOLVE_TIMEOUT: float = 15.0
    COOKIES_FILE: Optional[Path] = None

    # Acquisition defaults
    DEFAULT_QUALITY: str = Quality.P720.value
    DEFAULT_WANT_SUBTITLES: bool = True
    SUBTITLE_LANGUAGES: Annotated[List[str], NoDecode] = Field(default=["en"])

    # Orchestration
    MAX_CONCURRENT_ACQUISITIONS: int = Field(default=3, ge=1)
    BATCH_MEMBER_CONCURRENCY: int = Field(default=1, ge=1)
    CANCEL_GRACE_SECONDS: float = Field(default=5.0, ge=0)
    HISTORY_DEFAULT_LIMIT: int = Field(default=20, ge=1)
    HISTORY_MAX_LIMIT: int = Field(default=100, ge=1)

    # Logging
    LOG_LEVEL: LogLevel = LogLevel.INFO
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[Path] = None
    LOG_JSON: Optional[bool] = None

    # Monitoring
    ENABLE_METRICS: bool = True

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Only async drivers work with the async engine."""
        if not v.startswith(("sqlite+aiosqlite://", "postgresql+asyncpg://")):
            raise ValueError(
                "DATABASE_URL must be an async SQLAlchemy URL "
                "(sqlite+aiosqlite:// or postgresql+asyncpg://)"
            )
        return v

    @field_validator("ALLOWED_HOSTS", "SUBTITLE_LANGUAGES", mode="before")
    @classmethod
    def split_comma_separated(cls, v):
        """Parse comma separated strings into lists."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("DEFAULT_QUALITY")
    @classmethod
    def validate_default_quality(cls, v: str) -> str:
        normalized = v.strip().lower().rstrip("p")
        if normalized not in {q.value for q in Quality}:
            raise ValueError(f"DEFAULT_QUALITY must be one of {[q.value for q in Quality]}")
        return normalized

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.ENVIRONMENT == Environment.TESTING

    @property
    def media_dir(self) -> Path:
        return self.STORAGE_ROOT / self.MEDIA_SUBDIR

    @property
    def thumbnails_dir(self) -> Path:
        return self.STORAGE_ROOT / self.THUMBNAIL_SUBDIR

    @property
    def subtitles_dir(self) -> Path:
        return self.STORAGE_ROOT / self.SUBTITLE_SUBDIR

    @property
    def working_dir(self) -> Path:
        """Directory the fetcher writes into; shared by every job."""
        return self.STORAGE_ROOT / self.WORKING_SUBDIR

    @property
    def cookies_path(self) -> Path:
        return self.COOKIES_FILE or self.STORAGE_ROOT / "cookies.txt"

    @property
    def database_config(self) -> dict:
        """Get database configuration dictionary."""
        return {
            "url": self.DATABASE_URL,
            "pool_size": self.DATABASE_POOL_SIZE,
            "max_overflow": self.DATABASE_MAX_OVERFLOW,
            "echo": self.DEBUG,
        }

    @property
    def cors_config(self) -> dict:
        """Get CORS configuration dictionary."""
        return {
            "allow_origins": self.ALLOWED_HOSTS,
            "allow_credentials": True,
            "allow_methods": ["*"],
            "allow_headers": ["*"],
        }


# Global settings instance
settings = Settings()
