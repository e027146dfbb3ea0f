"""
Tindo API - Configuration
All settings are read from environment variables (or .env file).
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    SERVICE_NAME: str = "tindo-api"
    SERVICE_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── JWT (verification only, tokens are issued elsewhere) ──
    JWT_SECRET_KEY: str = "CHANGE_ME_IN_PRODUCTION"
    JWT_ALGORITHM: str = "HS256"

    # ── PostgreSQL ────────────────────────────────────────────
    POSTGRES_HOST: str = "tindo-db"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "tindo_db"
    POSTGRES_USER: str = "tindo_user"
    POSTGRES_PASSWORD: str = "tindo_pass"
    DATABASE_URL: str | None = None

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # ── Redis (pub/sub + idempotency cache) ───────────────────
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── Broadcast channel ─────────────────────────────────────
    BROKER_BACKEND: str = "redis"          # "redis" (multi-process) or "local"
    LOCAL_SUBSCRIBER_QUEUE_SIZE: int = 256
    SSE_KEEPALIVE_INTERVAL_SECONDS: int = 15
    SSE_POLL_TIMEOUT_SECONDS: float = 1.0
    SSE_RETRY_MILLISECONDS: int = 3000

    # ── Orders ────────────────────────────────────────────────
    ORDER_ID_MAX_ATTEMPTS: int = 10
    IDEMPOTENCY_KEY_TTL_SECONDS: int = 86400
    AVERAGE_DELIVERY_SPEED_KMH: float = 30.0

    # ── Observability ─────────────────────────────────────────
    METRICS_ENABLED: bool = True
    HEALTH_CHECK_TIMEOUT: float = 5.0


@lru_cache()
def get_settings() -> Settings:
    return Settings()
