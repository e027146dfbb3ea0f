"""
Tindo Agent - Configuration for the on-device location publisher
Read from AGENT_* environment variables (or .env file).
"""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="AGENT_", extra="ignore")

    API_BASE_URL: str = "http://localhost:8000"

    # ── Sampling ──────────────────────────────────────────────
    LOCATION_INTERVAL_SECONDS: float = Field(7.0, ge=5.0, le=10.0)  # backstop tick
    MIN_MOVEMENT_METERS: float = Field(5.0, ge=0.0)
    POSITION_TIMEOUT_SECONDS: float = 5.0

    # ── Outbound HTTP ─────────────────────────────────────────
    HTTP_TIMEOUT_SECONDS: float = 5.0


@lru_cache()
def get_agent_settings() -> AgentSettings:
    return AgentSettings()
