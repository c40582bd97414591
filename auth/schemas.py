"""Auth request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, EmailStr, Field

from auth.models import Account, TrustedDevice


class ApiResponse(BaseModel):
    success: bool
    message: str
    data: dict[str, Any] | None = None


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    captcha_token: str | None = None


class GoogleAuthRequest(BaseModel):
    """Google Identity Services posts the ID token as ``credential``; older clients send ``token``."""

    id_token: str = Field(min_length=1, validation_alias=AliasChoices("credential", "token", "id_token"))


class VerifyLogin2FARequest(BaseModel):
    challenge_token: str = Field(min_length=1)
    otp: str = Field(min_length=4, max_length=8)


class EmailRequest(BaseModel):
    email: EmailStr


class EmailCodeRequest(BaseModel):
    email: EmailStr
    otp: str = Field(min_length=4, max_length=8)


class PasswordEvaluateRequest(BaseModel):
    password: str = Field(max_length=256)
    name: str | None = None
    email: str | None = None


class PasswordChangeRequest(BaseModel):
    current_password: str | None = None
    new_password: str = Field(min_length=1, max_length=128)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr
    captcha_token: str | None = None


class ResetPasswordRequest(BaseModel):
    password: str = Field(min_length=1, max_length=128)


class LogoutAllRequest(BaseModel):
    revoke_devices: bool = False


class AuthAccount(BaseModel):
    id: int | None = None
    email: EmailStr
    name: str | None = None
    role: str = "user"
    is_admin: bool = False
    is_email_verified: bool = False
    is_otp_user: bool = False
    oauth_provider: str | None = None
    flagged_for_review: bool = False
    last_login_at: datetime | None = None

    @classmethod
    def from_account(cls, account: Account) -> "AuthAccount":
        return cls(
            id=account.id,
            email=account.email,
            name=account.name,
            role=account.role,
            is_admin=account.role == "admin",
            is_email_verified=account.is_email_verified,
            is_otp_user=account.is_otp_user,
            oauth_provider=account.oauth_provider,
            flagged_for_review=account.flagged_for_review,
            last_login_at=account.last_login_at,
        )


class DeviceView(BaseModel):
    device_hash: str
    browser: str = ""
    os: str = ""
    platform: str = ""
    last_ip: str = ""
    last_country: str = ""
    last_city: str = ""
    first_seen_at: datetime
    last_seen_at: datetime
    revoked: bool = False

    @classmethod
    def from_device(cls, device: TrustedDevice) -> "DeviceView":
        return cls(
            device_hash=device.device_hash,
            browser=device.browser,
            os=device.os,
            platform=device.platform,
            last_ip=device.last_ip,
            last_country=device.last_country,
            last_city=device.last_city,
            first_seen_at=device.first_seen_at,
            last_seen_at=device.last_seen_at,
            revoked=device.revoked,
        )
