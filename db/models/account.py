"""
Account models.

UserAccount: identity, credentials and login-risk state
LoginHistoryRecord: bounded per-account login history (newest rows kept)
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from db.engine import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserAccount(Base):
    """
    Account used for authentication.

    Lockout, suspicious-login and token-version columns are patched in place
    by the auth stores; login history lives in its own table.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False, default="")
    hashed_password = Column(Text, nullable=True)
    password_history = Column(JSON, nullable=False, default=list)
    password_changed_at = Column(DateTime(timezone=True), nullable=True)
    role = Column(String(20), nullable=False, default="user")
    is_active = Column(Boolean, nullable=False, default=True)
    is_otp_user = Column(Boolean, nullable=False, default=False)
    oauth_provider = Column(String(50), nullable=True)

    failed_login_attempts = Column(Integer, nullable=False, default=0)
    lock_until = Column(DateTime(timezone=True), nullable=True)
    token_version = Column(Integer, nullable=False, default=0)

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    last_login_ip = Column(String(64), nullable=True)
    last_login_user_agent = Column(Text, nullable=True)
    last_login_device_hash = Column(String(64), nullable=True)
    last_login_country = Column(String(64), nullable=True)
    last_login_city = Column(String(128), nullable=True)

    suspicious_login_count = Column(Integer, nullable=False, default=0)
    last_suspicious_at = Column(DateTime(timezone=True), nullable=True)
    flagged_for_review = Column(Boolean, nullable=False, default=False)

    is_email_verified = Column(Boolean, nullable=False, default=False)
    email_verified_at = Column(DateTime(timezone=True), nullable=True)

    reset_password_token_hash = Column(String(64), nullable=True, index=True)
    reset_password_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    login_history = relationship(
        "LoginHistoryRecord",
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="LoginHistoryRecord.id",
    )
    trusted_devices = relationship("TrustedDeviceRecord", back_populates="account", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<UserAccount(id={self.id}, email={self.email})>"


class LoginHistoryRecord(Base):
    __tablename__ = "login_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    ip = Column(String(64), nullable=False, default="")
    user_agent = Column(Text, nullable=False, default="")
    device_hash = Column(String(64), nullable=False, default="")
    country = Column(String(64), nullable=False, default="UNKNOWN")
    city = Column(String(128), nullable=False, default="UNKNOWN")
    time = Column(DateTime(timezone=True), nullable=False)
    suspicious = Column(Boolean, nullable=False, default=False)
    reason = Column(Text, nullable=False, default="")
    risk_score = Column(Integer, nullable=False, default=0)
    outcome = Column(String(32), nullable=False, default="success")

    account = relationship("UserAccount", back_populates="login_history")

    def __repr__(self):
        return f"<LoginHistoryRecord(account_id={self.account_id}, outcome={self.outcome})>"
