# backend/stockflow/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # DATABASE_URL wins; otherwise a SQLite file in the working directory
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///stockflow.sqlite3")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Threshold given to alerts the reconciler creates for unregistered pairs
    STOCK_ALERT_DEFAULT_THRESHOLD = int(os.environ.get("STOCK_ALERT_DEFAULT_THRESHOLD", "10"))

    # Attempts per savepoint before a lock/version conflict becomes a 409
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
