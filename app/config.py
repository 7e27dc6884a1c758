from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str
    timezone: str
    app_host: str
    app_port: int
    sqlite_busy_timeout_ms: int
    billing_service_key: str


def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./gym_billing.db"),
        timezone=os.getenv("TZ", "UTC"),
        app_host=os.getenv("APP_HOST", "0.0.0.0"),
        app_port=int(os.getenv("APP_PORT", "8000")),
        sqlite_busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        billing_service_key=os.getenv("BILLING_SERVICE_KEY", ""),
    )
