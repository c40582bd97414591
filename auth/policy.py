"""Immutable login policy passed into the auth services."""

from __future__ import annotations

from dataclasses import dataclass, field

from auth.config import AuthConfig


@dataclass(frozen=True)
class RiskWeights:
    """Score added by each anomaly signal. Weights are non-negative and the cap stays within 1..100."""

    new_ip: int = 30
    user_agent_changed: int = 25
    client_family_changed: int = 15
    new_device: int = 25
    new_country: int = 30
    new_city: int = 10
    prior_failed_attempts: int = 20
    max_score: int = 100

    def __post_init__(self) -> None:
        for name, value in self.__dict__.items():
            if value < 0:
                raise ValueError(f"Risk weight {name} must be non-negative")
        if not 0 < self.max_score <= 100:
            raise ValueError("max_score must be between 1 and 100")


@dataclass(frozen=True)
class LoginPolicy:
    max_failed_attempts: int = AuthConfig.MAX_FAILED_LOGIN_ATTEMPTS
    lock_minutes: int = AuthConfig.LOGIN_LOCK_MINUTES
    captcha_after_failed_attempts: int = AuthConfig.CAPTCHA_AFTER_FAILED_ATTEMPTS

    otp_expiry_minutes: int = AuthConfig.OTP_EXPIRY_MINUTES
    max_otp_attempts: int = AuthConfig.MAX_OTP_ATTEMPTS

    suspicious_escalation_count: int = AuthConfig.SUSPICIOUS_ESCALATION_COUNT
    suspicious_window_minutes: int = AuthConfig.SUSPICIOUS_WINDOW_MINUTES
    suspicious_lock_minutes: int = AuthConfig.SUSPICIOUS_LOCK_MINUTES
    suspicious_score_threshold: int = AuthConfig.SUSPICIOUS_SCORE_THRESHOLD
    failed_attempts_risk_threshold: int = 3
    login_history_limit: int = AuthConfig.LOGIN_HISTORY_LIMIT
    risk_weights: RiskWeights = field(default_factory=RiskWeights)

    always_require_2fa: bool = AuthConfig.ALWAYS_REQUIRE_2FA
    step_up_on_new_device: bool = AuthConfig.STEP_UP_ON_NEW_DEVICE
    require_verified_email: bool = AuthConfig.REQUIRE_VERIFIED_EMAIL
    password_max_age_days: int | None = AuthConfig.PASSWORD_MAX_AGE_DAYS
    password_history_limit: int = AuthConfig.PASSWORD_HISTORY_LIMIT
    password_reset_expiry_minutes: int = AuthConfig.PASSWORD_RESET_EXPIRY_MINUTES

    session_expire_days: int = AuthConfig.SESSION_TOKEN_EXPIRE_DAYS
    challenge_expire_minutes: int = AuthConfig.LOGIN_CHALLENGE_EXPIRE_MINUTES

    def __post_init__(self) -> None:
        if self.max_failed_attempts < 1:
            raise ValueError("max_failed_attempts must be at least 1")
        if self.max_otp_attempts < 1:
            raise ValueError("max_otp_attempts must be at least 1")
        if self.suspicious_escalation_count < 1:
            raise ValueError("suspicious_escalation_count must be at least 1")
        if self.login_history_limit < 1:
            raise ValueError("login_history_limit must be at least 1")
