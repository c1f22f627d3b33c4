import os
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]
load_dotenv(ROOT_DIR / ".env")


def _normalize_database_url(raw_url):
    url = (raw_url or "").strip()
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def _split_origins(raw):
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


class Config:
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development").strip().lower()
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(
        os.getenv("DATABASE_URL", "sqlite:///" + str(ROOT_DIR / "habit_tracker.db"))
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "fallback-secret")
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRY_DAYS = int(os.getenv("JWT_EXPIRY_DAYS", "7"))
    CORS_ORIGINS = _split_origins(
        os.getenv("CORS_ORIGINS", os.getenv("FRONTEND_URL", "http://localhost:3000"))
    )
    APP_TIMEZONE = os.getenv("APP_TIMEZONE", "UTC")
    AUTO_CREATE_SCHEMA = os.getenv("AUTO_CREATE_SCHEMA", "1") == "1"
    STORE_PROBE_INTERVAL = float(os.getenv("STORE_PROBE_INTERVAL", "5"))
    MIGRATIONS_DIR = str(ROOT_DIR / "migrations")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").upper()
    PORT = int(os.getenv("PORT", "5000"))
    VERSION = "1.0.0"


def today_str(tz_name=None):
    # Calendar day in the canonical zone, zero-padded ISO so string order is date order
    zone = ZoneInfo(tz_name or Config.APP_TIMEZONE)
    return datetime.now(zone).date().isoformat()
