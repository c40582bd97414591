"""Security utilities for auth."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.config import AuthConfig
from auth.exceptions import InvalidToken, TokenExpired

OTP_LENGTH = 6


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt(rounds=rounds or AuthConfig.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    try:
        password_bytes = password.encode("utf-8")
        hashed_bytes = hashed_password.encode("utf-8")
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except Exception:
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password(secrets.token_urlsafe(16))


def burn_password_check(password: str) -> None:
    """Run a bcrypt comparison that always fails so unknown accounts cost the same time."""
    verify_password(password or "", _dummy_hash())


def generate_otp() -> str:
    return f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"


def hash_otp(code: str, secret: str | None = None) -> str:
    key = secret or AuthConfig.OTP_SECRET
    return hashlib.sha256(f"{code}:{key}".encode("utf-8")).hexdigest()


def otp_matches(code: str, code_hash: str, secret: str | None = None) -> bool:
    if not code or not code_hash:
        return False
    candidate = hash_otp(code.strip(), secret).encode("utf-8")
    stored = code_hash.encode("utf-8")
    if len(candidate) != len(stored):
        return False
    return hmac.compare_digest(candidate, stored)


def generate_reset_token() -> str:
    return secrets.token_hex(32)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def encode_token(payload: dict[str, Any], secret: str, algorithm: str | None = None) -> str:
    return jwt.encode(payload, secret, algorithm=algorithm or AuthConfig.JWT_ALGORITHM)


def decode_token(
    token: str,
    secret: str,
    algorithm: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Decode a signed token; expiry is checked against ``now`` when given, else the wall clock."""
    options = {"verify_exp": now is None}
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm or AuthConfig.JWT_ALGORITHM],
            options=options,
        )
    except ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except JWTError as exc:
        raise InvalidToken() from exc

    if now is not None:
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise InvalidToken("Invalid token payload")
        if exp <= now.timestamp():
            raise TokenExpired()
    return payload
