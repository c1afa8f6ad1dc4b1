# backend/app/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cannapos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cannapos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "development" exposes error details in 500 responses; anything else hides them
    APP_ENV = os.environ.get("APP_ENV", "development")
    EXPOSE_ERROR_DETAILS = _env_flag("EXPOSE_ERROR_DETAILS", APP_ENV == "development")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Inventory rows created lazily (adjust, transfer destination) get this threshold in grams
    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get("DEFAULT_LOW_STOCK_THRESHOLD", "10"))

    # Terminal calls block until the customer finishes on the device
    PAYMENT_HTTP_TIMEOUT_SECONDS = float(os.environ.get("PAYMENT_HTTP_TIMEOUT_SECONDS", "150"))
    DEJAVOO_PROXY_TIMEOUT_MINUTES = int(os.environ.get("DEJAVOO_PROXY_TIMEOUT_MINUTES", "2"))

    # Back-office / POS front ends allowed to call the API from a browser
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip() for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",") if o.strip()
    )
