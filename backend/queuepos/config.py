# backend/queuepos/config.py
from __future__ import annotations
import os


def _split_origins(value: str) -> set[str]:
    return {item.strip() for item in value.split(",") if item.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/queuepos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///queuepos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Fallbacks for shops that have no timezone / rollover configured
    QUEUE_DEFAULT_TIMEZONE = os.environ.get("QUEUE_DEFAULT_TIMEZONE", "Asia/Dhaka")
    QUEUE_DEFAULT_ROLLOVER_HOUR = int(os.environ.get("QUEUE_DEFAULT_ROLLOVER_HOUR", "0"))

    CORS_ALLOWED_ORIGINS = _split_origins(
        os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        )
    )
