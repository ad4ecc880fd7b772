import os
from functools import lru_cache

from pydantic_settings import BaseSettings

# Hosting platforms set DATABASE_URL and PORT without a prefix -- map them to
# the SHOWCLOCK_-prefixed names that pydantic-settings expects.
if "DATABASE_URL" in os.environ and "SHOWCLOCK_DATABASE_URL" not in os.environ:
    _url = os.environ["DATABASE_URL"]
    if _url.startswith("postgres://"):
        _url = _url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif _url.startswith("postgresql://"):
        _url = _url.replace("postgresql://", "postgresql+asyncpg://", 1)
    os.environ["SHOWCLOCK_DATABASE_URL"] = _url

if "PORT" in os.environ and "SHOWCLOCK_PORT" not in os.environ:
    os.environ["SHOWCLOCK_PORT"] = os.environ["PORT"]


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./showclock.db"
    JWT_SECRET: str = "dev-secret-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 720
    OPERATOR_KEY: str = "dev-operator-key"

    # Realtime
    CHANNEL_PREFIX: str = "SHOW_TIMERS"

    # Polling loop (checks for due durational and punctual timers)
    ENABLE_POLLING: bool = True
    POLL_INTERVAL_SECONDS: float = 30.0

    # Engine behaviour
    DEFAULT_SECONDS_BEFORE: int = 15
    AUTO_COMPLETE_ON_LAST_ACTION: bool = True

    # Demo mode: forced duration for durational timers (None keeps the
    # template durations) and the template-timer-id -> demo-timer-id map.
    DEMO_TIMER_DURATION_MINUTES: int | None = None
    DEMO_TIMER_MAP: dict[str, str] = {}

    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: list[str] = ["http://localhost:5173"]
    LOG_LEVEL: str = "INFO"

    model_config = {"env_prefix": "SHOWCLOCK_"}


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
