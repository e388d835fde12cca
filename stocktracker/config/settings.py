import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field


class Settings(BaseModel):
    STOCK_DATABASE_URL: str = "sqlite+pysqlite:///:memory:"
    STOCK_UPDATE_INTERVAL_SEC: float = Field(default=3.0, gt=0)
    STOCK_SIMULATION_ENABLED: bool = True
    STOCK_LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    STOCK_CORS_ORIGINS: list[str] = ["*"]
    STOCK_WS_QUEUE_SIZE: int = Field(default=100, ge=1)

    @classmethod
    def from_env(cls) -> "Settings":
        raw_origins = os.getenv("STOCK_CORS_ORIGINS", "*")
        origins = [s.strip() for s in raw_origins.split(",") if s.strip()]
        if not origins:
            origins = ["*"]

        values = {
            "STOCK_DATABASE_URL": os.getenv("STOCK_DATABASE_URL"),
            "STOCK_UPDATE_INTERVAL_SEC": os.getenv("STOCK_UPDATE_INTERVAL_SEC"),
            "STOCK_SIMULATION_ENABLED": os.getenv("STOCK_SIMULATION_ENABLED"),
            "STOCK_LOG_LEVEL": (os.getenv("STOCK_LOG_LEVEL") or "").upper() or None,
            "STOCK_WS_QUEUE_SIZE": os.getenv("STOCK_WS_QUEUE_SIZE"),
        }
        # unset env vars fall back to field defaults
        data = {k: v for k, v in values.items() if v is not None}
        data["STOCK_CORS_ORIGINS"] = origins
        return cls.model_validate(data)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
