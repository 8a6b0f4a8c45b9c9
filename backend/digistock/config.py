# backend/digistock/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/digistock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///digistock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Lock-conflict retries for ledger writes (run_with_retry)
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.1"))

    # Applied to new platforms that do not state their own threshold
    DEFAULT_LOW_BALANCE_THRESHOLD_CENTS = int(
        os.environ.get("DEFAULT_LOW_BALANCE_THRESHOLD_CENTS", "10000")
    )

    # Injectable collaborators; None means the built-in defaults
    # (time_utils.utcnow and ids.default_id_generator).
    CLOCK = None
    ID_GENERATOR = None
