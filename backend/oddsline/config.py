"""
backend/oddsline/config.py

Purpose:
    Central settings loading for the backend service and the async client.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str
    MONGO_DB: str = "oddsline"
    JWT_SECRET: str
    JWT_SECRET_OLD: str = ""  # Set during rotation; cleared once old tokens expired
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"

    # Bet placement
    ODDS_DRIFT_MAX_RATIO: float = 0.2  # submitted vs current odds

    # WebSocket push channel
    WS_PATH: str = "/ws"
    WS_EVENTS_ENABLED: bool = True
    WS_HEARTBEAT_SECONDS: int = 30
    WS_MAX_CONNECTIONS: int = 500
    ODDS_BROADCAST_SECONDS: int = 30

    # Settlement of pending bets on finished fixtures
    SETTLE_BETS_SECONDS: int = 40

    # Client: live odds notifier reconnect policy
    NOTIFIER_RECONNECT_BASE_SECONDS: float = 5.0
    NOTIFIER_RECONNECT_MAX_SECONDS: float = 60.0
    NOTIFIER_RECONNECT_FACTOR: float = 2.0
    NOTIFIER_RECONNECT_JITTER: float = 0.2

    # Client: HTTP + query cache
    CLIENT_HTTP_TIMEOUT_SECONDS: float = 15.0
    CLIENT_HTTP_MAX_RETRIES: int = 3
    CLIENT_HTTP_RETRY_BASE_DELAY: float = 1.0
    CLIENT_CACHE_STALE_SECONDS: float = 0.0  # 0 = fresh until invalidated

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
