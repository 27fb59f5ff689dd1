from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict

from voicemail_log.repositories import LookupErrorPolicy, ReturnedAtPolicy

# Request header carrying the owner scope of voicemail endpoints
ACCOUNT_HEADER = "X-Account-Id"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database connection string (SQLAlchemy URL)
    DATABASE_URL: str = "sqlite:///./voicemail.db"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # What the identity resolver does when an account lookup fails:
    # "create_new" issues a fresh account, "raise" propagates the error
    LOOKUP_ERROR_POLICY: LookupErrorPolicy = LookupErrorPolicy.CREATE_NEW

    # What a repeated mark-returned does to returned_at:
    # "first_write_wins" keeps the first timestamp, "refresh" overwrites it
    RETURNED_AT_POLICY: ReturnedAtPolicy = ReturnedAtPolicy.FIRST_WRITE_WINS


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()
