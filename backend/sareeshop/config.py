# backend/sareeshop/config.py
from __future__ import annotations
import os


def _csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/sareeshop.sqlite3 unless a hosted DB is configured
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///sareeshop.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Item images. Relative paths resolve against the instance folder.
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "uploads")
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", str(8 * 1024 * 1024)))
    ALLOWED_IMAGE_EXTENSIONS = set(_csv_env("ALLOWED_IMAGE_EXTENSIONS", "jpg,jpeg,png,webp,gif"))

    # The two partners who own the shop; also the default login users
    DEFAULT_PARTNERS = _csv_env("DEFAULT_PARTNERS", "Putty,Sony")

    SESSION_COOKIE_NAME_TOKEN = os.environ.get("SESSION_COOKIE_NAME_TOKEN", "session_token")
    SESSION_COOKIE_SECURE = os.environ.get("SESSION_COOKIE_SECURE", "false").lower() == "true"
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Origins allowed to call the API from a browser front end
    CORS_ALLOWED_ORIGINS = set(_csv_env(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    ))
