# backend/salonpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/salonpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///salonpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Defaults used until a row exists in the settings table
    COSTING_METHOD = os.environ.get("COSTING_METHOD", "FIFO")
    TAX_RATE = os.environ.get("TAX_RATE", "0.10")
    SHORTFALL_COSTING = os.environ.get("SHORTFALL_COSTING", "Zero")

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "5"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
