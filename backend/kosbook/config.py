# backend/kosbook/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/kosbook.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///kosbook.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Midtrans gateway credentials (sandbox unless MIDTRANS_IS_PRODUCTION is set)
    MIDTRANS_SERVER_KEY = os.environ.get("MIDTRANS_SERVER_KEY", "")
    MIDTRANS_CLIENT_KEY = os.environ.get("MIDTRANS_CLIENT_KEY", "")
    MIDTRANS_IS_PRODUCTION = _env_flag("MIDTRANS_IS_PRODUCTION")
    MIDTRANS_TIMEOUT_SECONDS = float(os.environ.get("MIDTRANS_TIMEOUT_SECONDS", "15"))

    # Used for the Snap "finish" redirect back to the booking page
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:3000")

    # Cron endpoint bearer secret; the endpoint refuses to run without it
    CRON_SECRET = os.environ.get("CRON_SECRET")

    # Kept as the raw string so the cron route can reject bad values with a 500
    BOOKING_UNPAID_GRACE_MINUTES = os.environ.get("BOOKING_UNPAID_GRACE_MINUTES", "30")
