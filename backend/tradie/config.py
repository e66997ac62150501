# backend/tradie/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tradie.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tradie.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Passwordless sign-in
    LOGIN_CODE_TTL_MINUTES = int(os.environ.get("LOGIN_CODE_TTL_MINUTES", "10"))
    LOGIN_CODE_LENGTH = 6
    # Callable (email, code) -> None; None means delivery is skipped with a warning
    LOGIN_CODE_SENDER = None

    # Owner sessions
    SESSION_ABSOLUTE_HOURS = int(os.environ.get("SESSION_ABSOLUTE_HOURS", "24"))
    SESSION_IDLE_MINUTES = int(os.environ.get("SESSION_IDLE_MINUTES", "120"))

    # Failed sign-ins per email before a temporary lock
    LOGIN_MAX_FAILED_ATTEMPTS = 5
    LOGIN_LOCKOUT_WINDOW_MINUTES = 15
    LOGIN_LOCKOUT_MINUTES = 15

    # Public capability tokens (quote acceptance / invoice payment links)
    CAPABILITY_TOKEN_LENGTH = 12

    # GST in basis points (1000 = 10%)
    GST_RATE_BPS = int(os.environ.get("GST_RATE_BPS", "1000"))

    # When True, public accept/decline is refused once a quote has left "sent"
    STRICT_PUBLIC_TRANSITIONS = os.environ.get("STRICT_PUBLIC_TRANSITIONS", "0") == "1"

    # Browser origins allowed to call the API (local frontend dev servers)
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip() for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",") if o.strip()
    )
