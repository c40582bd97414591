"""
SQLAlchemy models for the Storefront auth database.

All models inherit from db.engine.Base for Alembic migrations.
"""

from db.models.account import LoginHistoryRecord, UserAccount
from db.models.auth import AuditLog, OtpChallengeRecord, TrustedDeviceRecord

__all__ = [
    # Accounts
    "UserAccount",
    "LoginHistoryRecord",
    # Auth
    "OtpChallengeRecord",
    "TrustedDeviceRecord",
    "AuditLog",
]
