# backend/gearbook/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the backend by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///gearbook.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Signs reservation QR payloads; rotating it invalidates every printed code
    QR_CODE_SECRET = os.environ.get("QR_CODE_SECRET", "dev-qr-secret-change-me")

    # Fallback when a section does not define its own cancellation cutoff
    DEFAULT_REFUND_DEADLINE_HOURS = int(os.environ.get("DEFAULT_REFUND_DEADLINE_HOURS", "48"))

    # S3 (or S3-compatible) bucket for movement photos
    S3_BUCKET = os.environ.get("S3_BUCKET", "gearbook")
    S3_ENDPOINT_URL = os.environ.get("S3_ENDPOINT_URL")
    S3_REGION = os.environ.get("S3_REGION", "us-east-1")
    S3_ACCESS_KEY_ID = os.environ.get("S3_ACCESS_KEY_ID")
    S3_SECRET_ACCESS_KEY = os.environ.get("S3_SECRET_ACCESS_KEY")
    BLOB_SIGNED_URL_TTL_SECONDS = int(os.environ.get("BLOB_SIGNED_URL_TTL_SECONDS", "3600"))

    MAX_MOVEMENT_PHOTOS = int(os.environ.get("MAX_MOVEMENT_PHOTOS", "3"))

    # Bearer tokens issued via `flask users issue-token`
    SESSION_TOKEN_TTL_HOURS = int(os.environ.get("SESSION_TOKEN_TTL_HOURS", "24"))
