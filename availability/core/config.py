from pathlib import Path
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables with validation.
    """
    # Application settings
    PROJECT_NAME: str = "Study Availability API"
    API_V1_PREFIX: str = "/api/v1"
    ENVIRONMENT: str = Field("development")  # development, staging, production, test

    # Google OAuth2 client used to refresh calendar credentials
    GOOGLE_CLIENT_ID: str = Field("")
    GOOGLE_CLIENT_SECRET: str = Field("")
    GOOGLE_TOKEN_URI: str = "https://oauth2.googleapis.com/token"

    # Logging settings
    AUDIT_LOG_PATH: str = Field("./logs/audit.log")
    LOG_LEVEL: str = Field("INFO")  # console sink level

    # Scheduling defaults
    DEFAULT_TIMEZONE: str = Field("UTC")
    MAX_SEARCH_DAYS: int = 14
    ALTERNATIVE_SEARCH_DAYS: int = 7
    MAX_SUGGESTIONS: int = 3
    DEFAULT_SESSION_MINUTES: int = 90
    DEFAULT_STUDY_BREAK_MINUTES: int = 15
    STUDY_START_HOUR: int = 9
    STUDY_END_HOUR: int = 21
    BUSY_FALLBACK_TITLE: str = "Busy"

    # Read-only access is enough for free/busy and event lookups
    GOOGLE_CALENDAR_SCOPES: List[str] = [
        "https://www.googleapis.com/auth/calendar.readonly",
        "https://www.googleapis.com/auth/calendar.events.readonly"
    ]

    @validator("AUDIT_LOG_PATH")
    def validate_audit_log_path(cls, v: str) -> str:
        """Validate the audit log path exists or can be created"""
        log_dir = Path(v).parent
        if not log_dir.exists():
            try:
                log_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ValueError(f"Failed to create log directory: {e}")
        return v

    @validator("DEFAULT_TIMEZONE")
    def validate_timezone(cls, v: str) -> str:
        """Validate the timezone is a known IANA zone"""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone {v!r}: {e}")
        return v

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.DEFAULT_TIMEZONE)

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in the environment


settings = Settings()
