"""Outcomes produced by the login state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from auth.exceptions import (
    AccountDisabled,
    AccountLocked,
    AuthException,
    CaptchaFailed,
    ChallengeInvalid,
    EmailNotVerified,
    InvalidCredentials,
    OtpExhausted,
    OtpExpired,
    OtpMismatch,
    OtpNotFound,
    PasswordExpired,
)
from auth.models import Account


class LoginState(str, Enum):
    AWAITING_CREDENTIALS = "awaiting_credentials"
    CREDENTIALS_VERIFIED = "credentials_verified"
    DEVICE_EVALUATED = "device_evaluated"
    REQUIRE_2FA = "require_2fa"
    OTP_PENDING = "otp_pending"
    OTP_VERIFIED = "otp_verified"
    SESSION_ISSUED = "session_issued"
    REJECTED = "rejected"


class RejectionKind(str, Enum):
    LOCKED = "locked"
    INVALID = "invalid"
    DISABLED = "disabled"
    CAPTCHA_FAILED = "captcha_failed"
    EMAIL_UNVERIFIED = "email_unverified"
    PASSWORD_EXPIRED = "password_expired"
    CHALLENGE_INVALID = "challenge_invalid"
    OTP_NOT_FOUND = "otp_not_found"
    OTP_EXPIRED = "otp_expired"
    OTP_EXHAUSTED = "otp_exhausted"
    OTP_MISMATCH = "otp_mismatch"


@dataclass(frozen=True)
class SessionIssued:
    token: str
    account: Account
    expires_at: datetime
    suspicious: bool = False
    risk_score: int = 0
    reasons: list[str] = field(default_factory=list)
    is_new_device: bool = False

    state = LoginState.SESSION_ISSUED


@dataclass(frozen=True)
class Require2FA:
    challenge_token: str
    expires_at: datetime
    suspicious: bool = False
    risk_score: int = 0
    reasons: list[str] = field(default_factory=list)
    code_sent: bool = True

    state = LoginState.OTP_PENDING


@dataclass(frozen=True)
class Rejected:
    kind: RejectionKind
    retry_after: int | None = None

    state = LoginState.REJECTED

    def to_exception(self) -> AuthException:
        if self.kind is RejectionKind.LOCKED:
            return AccountLocked(retry_after=self.retry_after)
        return _REJECTION_EXCEPTIONS[self.kind]()


_REJECTION_EXCEPTIONS = {
    RejectionKind.INVALID: InvalidCredentials,
    RejectionKind.DISABLED: AccountDisabled,
    RejectionKind.CAPTCHA_FAILED: CaptchaFailed,
    RejectionKind.EMAIL_UNVERIFIED: EmailNotVerified,
    RejectionKind.PASSWORD_EXPIRED: PasswordExpired,
    RejectionKind.CHALLENGE_INVALID: ChallengeInvalid,
    RejectionKind.OTP_NOT_FOUND: OtpNotFound,
    RejectionKind.OTP_EXPIRED: OtpExpired,
    RejectionKind.OTP_EXHAUSTED: OtpExhausted,
    RejectionKind.OTP_MISMATCH: OtpMismatch,
}

LoginOutcome = SessionIssued | Require2FA | Rejected
