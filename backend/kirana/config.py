# backend/kirana/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/kirana.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///kirana.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer token accepted by admin routes (issued out of band)
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN", "dev-admin-token-change-me")

    # Store-wide fallback per-litre price when neither the log nor the subscription has one
    DEFAULT_MILK_PRICE = os.environ.get("DEFAULT_MILK_PRICE", "60")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
