"""
Password strength policy.

The same algorithm backs registration/reset enforcement and the client-side
strength meter (served through ``POST /password/evaluate``), so the two can
never disagree.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from auth.security import verify_password

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 32

COMMON_PASSWORDS = frozenset(
    {
        "123456",
        "1234567",
        "12345678",
        "123456789",
        "1234567890",
        "123123",
        "111111",
        "000000",
        "qwerty",
        "qwertyuiop",
        "asdfgh",
        "zxcvbn",
        "password",
        "passw0rd",
        "letmein",
        "welcome",
        "admin",
        "login",
        "iloveyou",
        "monkey",
        "dragon",
        "football",
        "baseball",
        "abc123",
        "test",
        "test123",
        "test@123",
    }
)
COMMON_SUBSTRINGS = (
    "password",
    "passw0rd",
    "qwerty",
    "asdf",
    "zxcv",
    "1234",
    "abcd",
    "admin",
    "letmein",
    "welcome",
    "iloveyou",
    "monkey",
    "dragon",
    "football",
    "baseball",
    "abc123",
    "test",
)
SEQUENCES = (
    "0123456789",
    "abcdefghijklmnopqrstuvwxyz",
    "qwertyuiop",
    "asdfghjkl",
    "zxcvbnm",
)
SEQUENCE_WINDOW = 4

_REPEATED_CHARS = re.compile(r"(.)\1{3,}")
_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def _sequence_chunks() -> frozenset[str]:
    chunks = set()
    for sequence in SEQUENCES:
        for candidate in (sequence, sequence[::-1]):
            for i in range(len(candidate) - SEQUENCE_WINDOW + 1):
                chunks.add(candidate[i : i + SEQUENCE_WINDOW])
    return frozenset(chunks)


_SEQUENCE_CHUNKS = _sequence_chunks()


@dataclass(frozen=True)
class PasswordEvaluation:
    ok: bool
    label: str
    reason: str | None = None
    score: int | None = None


def _extract_tokens(value: str | None) -> list[str]:
    return [token for token in _TOKEN_SPLIT.split((value or "").lower()) if len(token) >= 3]


def has_sequence(password_lower: str) -> bool:
    return any(chunk in password_lower for chunk in _SEQUENCE_CHUNKS)


def has_repeated_chars(password: str) -> bool:
    return _REPEATED_CHARS.search(password) is not None


def evaluate_password(password: str | None, name: str | None = None, email: str | None = None) -> PasswordEvaluation:
    if not password or not isinstance(password, str):
        return PasswordEvaluation(ok=False, label="Weak", reason="Password is required.")

    length = len(password)
    if length < PASSWORD_MIN_LENGTH or length > PASSWORD_MAX_LENGTH:
        return PasswordEvaluation(
            ok=False,
            label="Weak",
            reason=f"Password must be {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} characters.",
        )

    password_lower = password.lower()
    if password_lower in COMMON_PASSWORDS or any(word in password_lower for word in COMMON_SUBSTRINGS):
        return PasswordEvaluation(ok=False, label="Weak", reason="Password is too common or easy to guess.")

    if has_sequence(password_lower) or has_repeated_chars(password):
        return PasswordEvaluation(ok=False, label="Weak", reason="Password is too easy to guess.")

    local_part = email.split("@")[0] if email else ""
    blocked_tokens = _extract_tokens(name) + _extract_tokens(local_part)
    if any(token in password_lower for token in blocked_tokens):
        return PasswordEvaluation(
            ok=False, label="Weak", reason="Password should not contain your name or email."
        )

    categories = sum(
        [
            bool(re.search(r"[a-z]", password)),
            bool(re.search(r"[A-Z]", password)),
            bool(re.search(r"[0-9]", password)),
            bool(re.search(r"[^A-Za-z0-9]", password)),
        ]
    )

    score = sum(1 for threshold in (10, 12, 16, 20) if length >= threshold)
    score += categories
    if categories >= 3:
        score += 1
    if categories == 4 and length >= 12:
        score += 1

    if score >= 7:
        label = "Strong"
    elif score >= 5:
        label = "Medium"
    else:
        return PasswordEvaluation(
            ok=False,
            label="Weak",
            reason="Password is too weak. Use a longer, more unique passphrase.",
            score=score,
        )
    return PasswordEvaluation(ok=True, label=label, score=score)


def rotate_password_history(current_hash: str | None, history: list[str], limit: int = 5) -> list[str]:
    """Push the outgoing hash to the front of the history, keeping the newest ``limit``."""
    if not current_hash:
        return list(history[:limit])
    return [current_hash, *history][:limit]


def is_password_reused(password: str, current_hash: str | None, history: list[str]) -> bool:
    if current_hash and verify_password(password, current_hash):
        return True
    return any(verify_password(password, old_hash) for old_hash in history)
