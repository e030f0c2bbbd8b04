# backend/laptrack/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file next to the working directory unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///laptrack.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # DEBUG, INFO, WARNING, ERROR
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # "system seed-sample" is refused when false (production databases)
    SAMPLE_SEED_ENABLED = os.environ.get("SAMPLE_SEED_ENABLED", "true").lower() == "true"
