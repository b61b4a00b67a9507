"""
backend/betline/config.py

Purpose:
    Central settings loading for the settlement core and its HTTP surface.

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
    MONGO_URI: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGO_DB: str = "betline"

    # Connection pool (shared by all request workers)
    MONGO_MAX_POOL_SIZE: int = 25
    MONGO_MIN_POOL_SIZE: int = 5
    MONGO_WAIT_QUEUE_TIMEOUT_MS: int = 5000  # pool exhaustion -> ResourceUnavailable
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 5000

    # Multi-document transactions need a replica set; disable for a standalone dev mongod
    MONGO_TRANSACTIONS_ENABLED: bool = True

    # Tickets
    TICKET_VALIDITY_DAYS: int = 10  # lifetime of an empty ticket

    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
