# backend/possync/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the app by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///possync.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound on waiting for a stock row lock held by another sale.
    STOCK_LOCK_TIMEOUT_MS = _env_int("STOCK_LOCK_TIMEOUT_MS", 5000)

    # Deadlock / serialization-failure retries per sale event
    SALE_RETRY_ATTEMPTS = _env_int("SALE_RETRY_ATTEMPTS", 3)

    # Maximum number of sale events accepted in one sync request
    SYNC_MAX_BATCH_SIZE = _env_int("SYNC_MAX_BATCH_SIZE", 500)

    # Reject offline sales recorded longer ago than this. Unset = accept any age.
    OFFLINE_SALE_MAX_AGE_HOURS = _env_int("OFFLINE_SALE_MAX_AGE_HOURS", None)

    SESSION_ABSOLUTE_TIMEOUT_HOURS = _env_int("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_HOURS = _env_int("SESSION_IDLE_TIMEOUT_HOURS", 2)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # CSV list of browser origins allowed to call the API
    CORS_ORIGINS = os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    )

    @staticmethod
    def engine_options(database_uri: str, lock_timeout_ms: int | None) -> dict:
        """
        SQLite has no per-statement lock timeout; the driver busy timeout
        bounds how long a writer waits for BEGIN IMMEDIATE instead.
        """
        if database_uri.startswith("sqlite") and lock_timeout_ms:
            return {"connect_args": {"timeout": lock_timeout_ms / 1000.0}}
        return {}
