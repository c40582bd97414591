"""Auth configuration management."""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path, override=True)
else:
    load_dotenv(override=True)


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


_DEFAULT_JWT_SECRET = secrets.token_urlsafe(32)
_DEFAULT_CHALLENGE_SECRET = secrets.token_urlsafe(32)
_DEFAULT_OTP_SECRET = secrets.token_urlsafe(32)


@dataclass(frozen=True)
class AuthConfig:
    """Configuration values for auth flows."""

    JWT_ALGORITHM: str = os.getenv("AUTH_JWT_ALGORITHM", "HS256")
    JWT_SECRET: str = os.getenv("AUTH_JWT_SECRET", _DEFAULT_JWT_SECRET)
    SESSION_TOKEN_EXPIRE_DAYS: int = int(os.getenv("SESSION_TOKEN_EXPIRE_DAYS", "7"))
    LOGIN_CHALLENGE_SECRET: str = os.getenv("LOGIN_CHALLENGE_SECRET", _DEFAULT_CHALLENGE_SECRET)
    LOGIN_CHALLENGE_EXPIRE_MINUTES: int = int(os.getenv("LOGIN_CHALLENGE_EXPIRE_MINUTES", "10"))

    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

    COOKIE_SECURE: bool = _parse_bool(os.getenv("COOKIE_SECURE"), True)
    COOKIE_HTTP_ONLY: bool = _parse_bool(os.getenv("COOKIE_HTTP_ONLY"), True)
    COOKIE_SAMESITE: str = os.getenv("COOKIE_SAME_SITE", "strict")
    COOKIE_DOMAIN: str | None = os.getenv("COOKIE_DOMAIN")
    CSRF_COOKIE_NAME: str = os.getenv("CSRF_COOKIE_NAME", "csrf_token")
    CSRF_HEADER_NAME: str = os.getenv("CSRF_HEADER_NAME", "X-CSRF-Token")
    CSRF_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("CSRF_TOKEN_EXPIRE_MINUTES", "120"))
    SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "access_token")

    OTP_SECRET: str = os.getenv("OTP_SECRET", _DEFAULT_OTP_SECRET)
    OTP_EXPIRY_MINUTES: int = int(os.getenv("OTP_EXPIRY_MINUTES", "5"))
    MAX_OTP_ATTEMPTS: int = int(os.getenv("MAX_OTP_ATTEMPTS", "5"))

    MAX_FAILED_LOGIN_ATTEMPTS: int = int(os.getenv("MAX_FAILED_LOGIN_ATTEMPTS", "5"))
    LOGIN_LOCK_MINUTES: int = int(os.getenv("LOGIN_LOCK_MINUTES", "15"))
    CAPTCHA_AFTER_FAILED_ATTEMPTS: int = int(os.getenv("CAPTCHA_AFTER_FAILED_ATTEMPTS", "3"))

    LOGIN_RATE_LIMIT_PER_MINUTE: int = int(os.getenv("LOGIN_RATE_LIMIT_PER_MINUTE", "10"))
    REGISTER_RATE_LIMIT_PER_HOUR: int = int(os.getenv("REGISTER_RATE_LIMIT_PER_HOUR", "5"))
    OTP_SEND_RATE_LIMIT: int = int(os.getenv("OTP_SEND_RATE_LIMIT", "5"))
    OTP_VERIFY_RATE_LIMIT: int = int(os.getenv("OTP_VERIFY_RATE_LIMIT", "10"))
    OTP_RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("OTP_RATE_LIMIT_WINDOW_SECONDS", "600"))

    SUSPICIOUS_ESCALATION_COUNT: int = int(os.getenv("SUSPICIOUS_ESCALATION_COUNT", "3"))
    SUSPICIOUS_WINDOW_MINUTES: int = int(os.getenv("SUSPICIOUS_WINDOW_MINUTES", "60"))
    SUSPICIOUS_LOCK_MINUTES: int = int(os.getenv("SUSPICIOUS_LOCK_MINUTES", "30"))
    SUSPICIOUS_SCORE_THRESHOLD: int = int(os.getenv("SUSPICIOUS_SCORE_THRESHOLD", "1"))
    LOGIN_HISTORY_LIMIT: int = int(os.getenv("LOGIN_HISTORY_LIMIT", "20"))

    ALWAYS_REQUIRE_2FA: bool = _parse_bool(os.getenv("ALWAYS_REQUIRE_2FA"), True)
    STEP_UP_ON_NEW_DEVICE: bool = _parse_bool(os.getenv("STEP_UP_ON_NEW_DEVICE"), True)
    REQUIRE_VERIFIED_EMAIL: bool = _parse_bool(os.getenv("REQUIRE_VERIFIED_EMAIL"), True)
    PASSWORD_MAX_AGE_DAYS: int = int(os.getenv("PASSWORD_MAX_AGE_DAYS", "90"))
    PASSWORD_HISTORY_LIMIT: int = int(os.getenv("PASSWORD_HISTORY_LIMIT", "5"))
    PASSWORD_RESET_EXPIRY_MINUTES: int = int(os.getenv("PASSWORD_RESET_EXPIRY_MINUTES", "15"))

    GOOGLE_CLIENT_ID: str | None = os.getenv("GOOGLE_CLIENT_ID")
    GOOGLE_TOKENINFO_URL: str = os.getenv("GOOGLE_TOKENINFO_URL", "https://oauth2.googleapis.com/tokeninfo")

    GEOIP_DB_PATH: str | None = os.getenv("GEOIP_DB_PATH")

    TURNSTILE_SECRET_KEY: str | None = os.getenv("TURNSTILE_SECRET_KEY")
    TURNSTILE_VERIFY_URL: str = os.getenv(
        "TURNSTILE_VERIFY_URL", "https://challenges.cloudflare.com/turnstile/v0/siteverify"
    )

    EMAIL_PROVIDER: str = os.getenv("EMAIL_PROVIDER", "resend")
    EMAIL_FROM_NAME: str = os.getenv("EMAIL_FROM_NAME", "Storefront")
    EMAIL_FROM_ADDRESS: str = os.getenv("EMAIL_FROM_ADDRESS", "no-reply@storefront.local")
    RESEND_API_KEY: str | None = os.getenv("RESEND_API_KEY")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # Auth store: "postgres" (production) or "memory" (testing)
    AUTH_STORE: str = os.getenv("AUTH_STORE", "postgres")
