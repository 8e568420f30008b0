# backend/invtrack/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw else default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/invtrack.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///invtrack.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Spreadsheet source (Sheets v4 values API, API-key auth)
    GOOGLE_API_KEY = os.environ.get("GOOGLE_API_KEY")
    SPREADSHEET_ID = os.environ.get("SPREADSHEET_ID")
    INVENTORY_SHEET_NAME = os.environ.get("INVENTORY_SHEET_NAME", "PHYSICAL INVENTORY")
    OUTBOUND_SHEET_NAME = os.environ.get("OUTBOUND_SHEET_NAME", "OUTBOUND")
    SHEETS_FETCH_TIMEOUT_SECONDS = _env_float("SHEETS_FETCH_TIMEOUT_SECONDS", 60.0)

    # Sync run policy
    SYNC_STALE_AFTER_MINUTES = _env_int("SYNC_STALE_AFTER_MINUTES", 60)
    SYNC_FETCH_ATTEMPTS = _env_int("SYNC_FETCH_ATTEMPTS", 3)
    SYNC_FETCH_BACKOFF_SECONDS = _env_float("SYNC_FETCH_BACKOFF_SECONDS", 0.5)
    SYNC_PROGRESS_INTERVAL = _env_int("SYNC_PROGRESS_INTERVAL", 500)

    SESSION_TTL_HOURS = _env_int("SESSION_TTL_HOURS", 24)
    SHIPPED_IMEI_CHUNK_SIZE = _env_int("SHIPPED_IMEI_CHUNK_SIZE", 500)

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    }
