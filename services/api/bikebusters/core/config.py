from __future__ import annotations

import json
import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    app_name: str
    environment: str
    cors_allow_origins: list[str]
    database_url: str
    jwt_secret: str
    access_token_expire_minutes: int
    bootstrap_admin_email: str | None
    bootstrap_admin_password: str | None
    tracker_api_key: str | None
    enable_poller: bool
    poll_interval_seconds: float
    routing_url: str | None
    routing_timeout_seconds: float
    log_level: str


def _load_settings() -> Settings:
    load_dotenv()

    cors = os.getenv("CORS_ALLOW_ORIGINS")
    cors_allow_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    if cors:
        try:
            cors_allow_origins = list(json.loads(cors))
        except ValueError:
            cors_allow_origins = [x.strip() for x in cors.split(",") if x.strip()]

    database_url = os.getenv("DATABASE_URL")
    jwt_secret = os.getenv("JWT_SECRET")
    if not database_url:
        raise RuntimeError("DATABASE_URL env var is required")
    if not jwt_secret:
        raise RuntimeError("JWT_SECRET env var is required")

    enable_poller = os.getenv("ENABLE_POLLER", "1").strip().lower() in {"1", "true", "yes", "on"}

    return Settings(
        app_name=os.getenv("APP_NAME", "BikeBusters API"),
        environment=os.getenv("ENVIRONMENT", "dev"),
        cors_allow_origins=cors_allow_origins,
        database_url=database_url,
        jwt_secret=jwt_secret,
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")),
        bootstrap_admin_email=os.getenv("BOOTSTRAP_ADMIN_EMAIL"),
        bootstrap_admin_password=os.getenv("BOOTSTRAP_ADMIN_PASSWORD"),
        tracker_api_key=os.getenv("TRACKER_API_KEY"),
        enable_poller=enable_poller,
        poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "30")),
        routing_url=os.getenv("ROUTING_URL") or None,
        routing_timeout_seconds=float(os.getenv("ROUTING_TIMEOUT_SECONDS", "10")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


settings = _load_settings()
