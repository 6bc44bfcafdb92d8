"""
Runtime configuration for the PipaPal backend.

All settings come from environment variables so the same image can run locally,
in CI (SQLite, no vendor credentials) and in production (managed Postgres,
Twilio, Firebase, M-Pesa).
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    return float(raw)


class Settings:
    """Settings snapshot taken from the process environment."""

    def __init__(self) -> None:
        self.environment: str = os.getenv("ENVIRONMENT", "development")
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.port: int = int(os.getenv("PORT", "8000"))

        # Database
        self.database_url: Optional[str] = os.getenv("DATABASE_URL")
        self.auto_create_schema: bool = _env_bool("AUTO_CREATE_SCHEMA", False)

        # API tokens
        self.jwt_secret: str = os.getenv("JWT_SECRET", "pipapal-secret-key-development-only")
        self.jwt_algorithm: str = "HS256"
        self.jwt_expire_days: int = int(os.getenv("JWT_EXPIRE_DAYS", "7"))

        self.cors_origins: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

        # Twilio (SMS OTP)
        self.twilio_account_sid: Optional[str] = os.getenv("TWILIO_ACCOUNT_SID")
        self.twilio_auth_token: Optional[str] = os.getenv("TWILIO_AUTH_TOKEN")
        self.twilio_phone_number: Optional[str] = os.getenv("TWILIO_PHONE_NUMBER")

        # Firebase
        self.firebase_project_id: Optional[str] = os.getenv("FIREBASE_PROJECT_ID")

        # M-Pesa Daraja
        self.mpesa_base_url: str = os.getenv("MPESA_BASE_URL", "https://sandbox.safaricom.co.ke")
        self.mpesa_consumer_key: Optional[str] = os.getenv("MPESA_CONSUMER_KEY")
        self.mpesa_consumer_secret: Optional[str] = os.getenv("MPESA_CONSUMER_SECRET")
        self.mpesa_shortcode: str = os.getenv("MPESA_SHORTCODE", "174379")
        self.mpesa_passkey: Optional[str] = os.getenv("MPESA_PASSKEY")
        self.mpesa_callback_url: str = os.getenv("MPESA_CALLBACK_URL", "http://localhost:8000/api/payments/callback")

        # Route planning depot (defaults to Nairobi CBD)
        self.depot_lat: float = _env_float("DEPOT_LAT", -1.2921)
        self.depot_lng: float = _env_float("DEPOT_LNG", 36.8219)

        self.ws_reconnect_delay: float = _env_float("WS_RECONNECT_DELAY", 5.0)

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


settings = Settings()


# PUBLIC_INTERFACE
def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
