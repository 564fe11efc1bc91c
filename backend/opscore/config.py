# backend/opscore/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/opscore.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///opscore.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Request header carrying the tenant (organization) id, set by the upstream auth layer
    TENANT_HEADER = os.environ.get("TENANT_HEADER", "X-Tenant-Id")

    # Optional header carrying the acting user id, recorded on movements and payments
    ACTOR_HEADER = os.environ.get("ACTOR_HEADER", "X-User-Id")
