# backend/partspos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/partspos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///partspos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Transaction runner: attempts per confirmation and exponential backoff base
    TX_RETRY_ATTEMPTS = int(os.environ.get("TX_RETRY_ATTEMPTS", "3"))
    TX_RETRY_BACKOFF_SECONDS = float(os.environ.get("TX_RETRY_BACKOFF_SECONDS", "0.1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
