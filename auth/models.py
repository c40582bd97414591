"""
Typed auth records.

Account: identity, credential and risk state
LoginHistoryEntry: one slot of the bounded login-history ring
OtpChallenge: hashed one-time code keyed by (subject, purpose)
TrustedDevice: (account, device fingerprint) pair seen on a completed login
AuditRecord: one audit-log row

Records validate their invariants on construction and are mutated only
through narrow patches applied by the stores.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any

ROLES = ("user", "admin")
PASSWORD_HISTORY_LIMIT = 5


class OtpPurpose(str, Enum):
    GENERIC = "generic"
    LOGIN_2FA = "login_2fa"
    EMAIL_VERIFY = "email_verify"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass
class LoginHistoryEntry:
    ip: str
    user_agent: str
    device_hash: str
    country: str
    city: str
    time: datetime
    suspicious: bool = False
    reason: str = ""
    risk_score: int = 0
    outcome: str = "success"

    def __post_init__(self) -> None:
        if not 0 <= self.risk_score <= 100:
            raise ValueError("risk_score must be between 0 and 100")


@dataclass
class Account:
    id: int | None
    email: str
    name: str = ""
    hashed_password: str | None = None
    password_history: list[str] = field(default_factory=list)
    password_changed_at: datetime | None = None
    role: str = "user"
    is_active: bool = True
    is_otp_user: bool = False
    oauth_provider: str | None = None
    failed_login_attempts: int = 0
    lock_until: datetime | None = None
    token_version: int = 0
    last_login_at: datetime | None = None
    last_login_ip: str | None = None
    last_login_user_agent: str | None = None
    last_login_device_hash: str | None = None
    last_login_country: str | None = None
    last_login_city: str | None = None
    suspicious_login_count: int = 0
    last_suspicious_at: datetime | None = None
    flagged_for_review: bool = False
    is_email_verified: bool = False
    email_verified_at: datetime | None = None
    login_history: list[LoginHistoryEntry] = field(default_factory=list)
    reset_password_token_hash: str | None = None
    reset_password_expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.email = normalize_email(self.email)
        if not self.email or "@" not in self.email:
            raise ValueError("Account email must be a valid address")
        if self.role not in ROLES:
            raise ValueError(f"Unknown role: {self.role}")
        if self.failed_login_attempts < 0:
            raise ValueError("failed_login_attempts cannot be negative")
        if self.suspicious_login_count < 0:
            raise ValueError("suspicious_login_count cannot be negative")
        if self.token_version < 0:
            raise ValueError("token_version cannot be negative")
        if len(self.password_history) > PASSWORD_HISTORY_LIMIT:
            raise ValueError("password_history holds at most 5 hashes")

    def is_locked(self, now: datetime) -> bool:
        return self.lock_until is not None and self.lock_until > now


ACCOUNT_FIELDS = frozenset(f.name for f in fields(Account))
# Fields owned by dedicated store operations, never by a generic patch.
PROTECTED_ACCOUNT_FIELDS = frozenset({"id", "email", "token_version", "login_history", "created_at"})


def validate_account_updates(updates: dict[str, Any]) -> None:
    unknown = set(updates) - ACCOUNT_FIELDS
    if unknown:
        raise ValueError(f"Unknown account fields: {sorted(unknown)}")
    protected = set(updates) & PROTECTED_ACCOUNT_FIELDS
    if protected:
        raise ValueError(f"Fields cannot be patched directly: {sorted(protected)}")
    if updates.get("failed_login_attempts", 0) < 0:
        raise ValueError("failed_login_attempts cannot be negative")
    if len(updates.get("password_history", [])) > PASSWORD_HISTORY_LIMIT:
        raise ValueError("password_history holds at most 5 hashes")
    if "role" in updates and updates["role"] not in ROLES:
        raise ValueError(f"Unknown role: {updates['role']}")


@dataclass
class OtpChallenge:
    subject: str
    purpose: OtpPurpose
    code_hash: str
    expires_at: datetime
    attempts: int = 0
    correlation_id: str | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        self.subject = normalize_email(self.subject)
        self.purpose = OtpPurpose(self.purpose)
        if self.attempts < 0:
            raise ValueError("attempts cannot be negative")
        if not self.code_hash:
            raise ValueError("code_hash is required")


@dataclass
class TrustedDevice:
    account_id: int
    device_hash: str
    first_seen_at: datetime
    last_seen_at: datetime
    last_ip: str = ""
    last_country: str = ""
    last_city: str = ""
    user_agent: str = ""
    browser: str = ""
    os: str = ""
    platform: str = ""
    accept_language: str = ""
    revoked: bool = False

    def __post_init__(self) -> None:
        if not self.device_hash:
            raise ValueError("device_hash is required")


@dataclass
class AuditRecord:
    action: str
    account_id: int | None = None
    ip: str = ""
    user_agent: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass(frozen=True)
class GeoLocation:
    country: str = "UNKNOWN"
    city: str = "UNKNOWN"


@dataclass(frozen=True)
class UserAgentInfo:
    browser: str = "Unknown"
    os: str = "Unknown"
    platform: str = ""


@dataclass(frozen=True)
class RequestContext:
    """Raw client signals captured by the transport layer."""

    ip: str = ""
    user_agent: str = ""
    accept_language: str = ""
    platform: str = ""
    country: str | None = None
    city: str | None = None


@dataclass(frozen=True)
class LoginSignals:
    """Resolved signals for one login attempt."""

    ip: str
    user_agent: str
    device_hash: str
    geo: GeoLocation
    client: UserAgentInfo
    accept_language: str = ""
