"""
Auth models for one-time codes, device trust and auditing.

OtpChallengeRecord: live hashed code per (subject, purpose)
TrustedDeviceRecord: device fingerprints seen on completed logins
AuditLog: append-only security event log
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


class OtpChallengeRecord(Base):
    """
    At most one live code per (subject, purpose); issuing a new one replaces it.
    """
    __tablename__ = "otp_challenges"

    subject = Column(String(255), primary_key=True)
    purpose = Column(String(32), primary_key=True)
    code_hash = Column(String(64), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    correlation_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<OtpChallengeRecord(subject={self.subject}, purpose={self.purpose})>"


class TrustedDeviceRecord(Base):
    __tablename__ = "trusted_devices"

    account_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    device_hash = Column(String(64), primary_key=True)
    first_seen_at = Column(DateTime(timezone=True), nullable=False)
    last_seen_at = Column(DateTime(timezone=True), nullable=False)
    last_ip = Column(String(64), nullable=False, default="")
    last_country = Column(String(64), nullable=False, default="")
    last_city = Column(String(128), nullable=False, default="")
    user_agent = Column(Text, nullable=False, default="")
    browser = Column(String(64), nullable=False, default="")
    os = Column(String(64), nullable=False, default="")
    platform = Column(String(64), nullable=False, default="")
    accept_language = Column(String(255), nullable=False, default="")
    revoked = Column(Boolean, nullable=False, default=False)

    account = relationship("UserAccount", back_populates="trusted_devices")

    def __repr__(self):
        return f"<TrustedDeviceRecord(account_id={self.account_id}, device={self.device_hash[:8]}...)>"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(64), nullable=False, index=True)
    ip = Column(String(64), nullable=False, default="")
    user_agent = Column(Text, nullable=False, default="")
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    def __repr__(self):
        return f"<AuditLog(action={self.action}, account_id={self.account_id})>"
