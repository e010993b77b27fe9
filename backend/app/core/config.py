from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings sourced from environment variables."""

    DATABASE_URL: str = "postgresql+asyncpg://app_user@localhost:5432/timeline"
    REDIS_URL: str = "redis://localhost:6379/0"

    API_PREFIX: str = "/api/v1"

    # Where manual block adjustments live: redis hash per day, SQL table, or process memory
    ADJUSTMENT_BACKEND: Literal["redis", "sql", "memory"] = "redis"
    ADJUSTMENTS_KEY_PREFIX: str = "adjustments"
    ADJUSTMENTS_CHANNEL: str = "adjustments:changed"

    # Decides which date is "today" for the now-floor of drags
    TIMEZONE: str = "UTC"
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()
