"""PostgreSQL auth stores using SQLAlchemy."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from auth.exceptions import AccountExists
from auth.models import (
    Account,
    AuditRecord,
    LoginHistoryEntry,
    OtpChallenge,
    OtpPurpose,
    TrustedDevice,
    normalize_email,
    validate_account_updates,
)
from db.engine import SessionLocal
from db.models.account import LoginHistoryRecord, UserAccount
from db.models.auth import AuditLog, OtpChallengeRecord, TrustedDeviceRecord

_SCALAR_ACCOUNT_FIELDS = (
    "name",
    "hashed_password",
    "password_changed_at",
    "role",
    "is_active",
    "is_otp_user",
    "oauth_provider",
    "failed_login_attempts",
    "lock_until",
    "token_version",
    "last_login_at",
    "last_login_ip",
    "last_login_user_agent",
    "last_login_device_hash",
    "last_login_country",
    "last_login_city",
    "suspicious_login_count",
    "last_suspicious_at",
    "flagged_for_review",
    "is_email_verified",
    "email_verified_at",
    "reset_password_token_hash",
    "reset_password_expires_at",
)

_DEVICE_FIELDS = (
    "first_seen_at",
    "last_seen_at",
    "last_ip",
    "last_country",
    "last_city",
    "user_agent",
    "browser",
    "os",
    "platform",
    "accept_language",
    "revoked",
)


def _history_to_entry(row: LoginHistoryRecord) -> LoginHistoryEntry:
    return LoginHistoryEntry(
        ip=row.ip,
        user_agent=row.user_agent,
        device_hash=row.device_hash,
        country=row.country,
        city=row.city,
        time=row.time,
        suspicious=row.suspicious,
        reason=row.reason,
        risk_score=row.risk_score,
        outcome=row.outcome,
    )


def _row_to_account(row: UserAccount) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_history=list(row.password_history or []),
        login_history=[_history_to_entry(item) for item in row.login_history],
        created_at=row.created_at,
        updated_at=row.updated_at,
        **{name: getattr(row, name) for name in _SCALAR_ACCOUNT_FIELDS},
    )


def _row_to_challenge(row: OtpChallengeRecord) -> OtpChallenge:
    return OtpChallenge(
        subject=row.subject,
        purpose=OtpPurpose(row.purpose),
        code_hash=row.code_hash,
        expires_at=row.expires_at,
        attempts=row.attempts,
        correlation_id=row.correlation_id,
        created_at=row.created_at,
    )


def _row_to_device(row: TrustedDeviceRecord) -> TrustedDevice:
    return TrustedDevice(
        account_id=row.account_id,
        device_hash=row.device_hash,
        **{name: getattr(row, name) for name in _DEVICE_FIELDS},
    )


class PostgresAccountStore:
    """Account store backed by PostgreSQL."""

    def _get_session(self) -> Session:
        return SessionLocal()

    def _load(self, db: Session, *criteria) -> UserAccount | None:
        return db.execute(
            select(UserAccount).options(selectinload(UserAccount.login_history)).where(*criteria)
        ).scalar_one_or_none()

    async def get_by_email(self, email: str) -> Account | None:
        with self._get_session() as db:
            row = self._load(db, UserAccount.email == normalize_email(email))
            return _row_to_account(row) if row else None

    async def get_by_id(self, account_id: int) -> Account | None:
        with self._get_session() as db:
            row = self._load(db, UserAccount.id == account_id)
            return _row_to_account(row) if row else None

    async def get_by_reset_token_hash(self, token_hash: str) -> Account | None:
        with self._get_session() as db:
            row = self._load(db, UserAccount.reset_password_token_hash == token_hash)
            return _row_to_account(row) if row else None

    async def create_account(self, account: Account) -> Account:
        with self._get_session() as db:
            row = UserAccount(
                email=normalize_email(account.email),
                password_history=list(account.password_history),
                **{name: getattr(account, name) for name in _SCALAR_ACCOUNT_FIELDS},
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise AccountExists() from exc
            row = self._load(db, UserAccount.id == row.id)
            return _row_to_account(row)

    async def update_account(self, account_id: int, updates: dict) -> Account:
        validate_account_updates(updates)
        with self._get_session() as db:
            row = self._load(db, UserAccount.id == account_id)
            if not row:
                raise ValueError("Account not found")
            for key, value in updates.items():
                if key == "password_history":
                    value = list(value)
                setattr(row, key, value)
            db.commit()
            row = self._load(db, UserAccount.id == account_id)
            return _row_to_account(row)

    async def append_login_history(self, account_id: int, entry: LoginHistoryEntry, limit: int) -> None:
        with self._get_session() as db:
            db.add(
                LoginHistoryRecord(
                    account_id=account_id,
                    ip=entry.ip,
                    user_agent=entry.user_agent,
                    device_hash=entry.device_hash,
                    country=entry.country,
                    city=entry.city,
                    time=entry.time,
                    suspicious=entry.suspicious,
                    reason=entry.reason,
                    risk_score=entry.risk_score,
                    outcome=entry.outcome,
                )
            )
            db.flush()
            keep = (
                select(LoginHistoryRecord.id)
                .where(LoginHistoryRecord.account_id == account_id)
                .order_by(LoginHistoryRecord.id.desc())
                .limit(limit)
            )
            db.execute(
                delete(LoginHistoryRecord).where(
                    LoginHistoryRecord.account_id == account_id,
                    LoginHistoryRecord.id.not_in(keep.scalar_subquery()),
                )
            )
            db.commit()

    async def increment_token_version(self, account_id: int) -> int:
        with self._get_session() as db:
            version = db.execute(
                update(UserAccount)
                .where(UserAccount.id == account_id)
                .values(token_version=UserAccount.token_version + 1)
                .returning(UserAccount.token_version)
            ).scalar_one_or_none()
            if version is None:
                raise ValueError("Account not found")
            db.commit()
            return version

    async def increment_failed_attempts(self, account_id: int) -> int:
        with self._get_session() as db:
            attempts = db.execute(
                update(UserAccount)
                .where(UserAccount.id == account_id)
                .values(failed_login_attempts=UserAccount.failed_login_attempts + 1)
                .returning(UserAccount.failed_login_attempts)
            ).scalar_one_or_none()
            if attempts is None:
                raise ValueError("Account not found")
            db.commit()
            return attempts


class PostgresOtpStore:
    """One-time code store backed by PostgreSQL. Conditional writes make verification atomic."""

    def _get_session(self) -> Session:
        return SessionLocal()

    @staticmethod
    def _key(subject: str, purpose: OtpPurpose):
        return (
            OtpChallengeRecord.subject == normalize_email(subject),
            OtpChallengeRecord.purpose == OtpPurpose(purpose).value,
        )

    async def get(self, subject: str, purpose: OtpPurpose) -> OtpChallenge | None:
        with self._get_session() as db:
            row = db.execute(select(OtpChallengeRecord).where(*self._key(subject, purpose))).scalar_one_or_none()
            return _row_to_challenge(row) if row else None

    async def upsert(self, challenge: OtpChallenge) -> None:
        values = {
            "subject": challenge.subject,
            "purpose": challenge.purpose.value,
            "code_hash": challenge.code_hash,
            "expires_at": challenge.expires_at,
            "attempts": challenge.attempts,
            "correlation_id": challenge.correlation_id,
        }
        if challenge.created_at:
            values["created_at"] = challenge.created_at
        statement = insert(OtpChallengeRecord).values(**values)
        statement = statement.on_conflict_do_update(
            index_elements=[OtpChallengeRecord.subject, OtpChallengeRecord.purpose],
            set_={key: statement.excluded[key] for key in values if key not in {"subject", "purpose"}},
        )
        with self._get_session() as db:
            db.execute(statement)
            db.commit()

    async def delete(self, subject: str, purpose: OtpPurpose) -> None:
        with self._get_session() as db:
            db.execute(delete(OtpChallengeRecord).where(*self._key(subject, purpose)))
            db.commit()

    async def claim_attempt(
        self, subject: str, purpose: OtpPurpose, code_hash: str, max_attempts: int
    ) -> int | None:
        with self._get_session() as db:
            attempts = db.execute(
                update(OtpChallengeRecord)
                .where(
                    *self._key(subject, purpose),
                    OtpChallengeRecord.code_hash == code_hash,
                    OtpChallengeRecord.attempts < max_attempts,
                )
                .values(attempts=OtpChallengeRecord.attempts + 1)
                .returning(OtpChallengeRecord.attempts)
            ).scalar_one_or_none()
            db.commit()
            return attempts

    async def delete_if_hash(self, subject: str, purpose: OtpPurpose, code_hash: str) -> bool:
        with self._get_session() as db:
            result = db.execute(
                delete(OtpChallengeRecord).where(
                    *self._key(subject, purpose), OtpChallengeRecord.code_hash == code_hash
                )
            )
            db.commit()
            return result.rowcount == 1

    async def delete_expired(self, now: datetime) -> int:
        with self._get_session() as db:
            result = db.execute(delete(OtpChallengeRecord).where(OtpChallengeRecord.expires_at < now))
            db.commit()
            return result.rowcount


class PostgresDeviceStore:
    """Trusted device store backed by PostgreSQL."""

    def _get_session(self) -> Session:
        return SessionLocal()

    async def get(self, account_id: int, device_hash: str) -> TrustedDevice | None:
        with self._get_session() as db:
            row = db.get(TrustedDeviceRecord, (account_id, device_hash))
            return _row_to_device(row) if row else None

    async def upsert(self, device: TrustedDevice) -> TrustedDevice:
        values = {name: getattr(device, name) for name in _DEVICE_FIELDS}
        statement = insert(TrustedDeviceRecord).values(
            account_id=device.account_id, device_hash=device.device_hash, **values
        )
        statement = statement.on_conflict_do_update(
            index_elements=[TrustedDeviceRecord.account_id, TrustedDeviceRecord.device_hash],
            set_={key: statement.excluded[key] for key in values},
        )
        with self._get_session() as db:
            db.execute(statement)
            db.commit()
        return device

    async def list_for_account(self, account_id: int) -> list[TrustedDevice]:
        with self._get_session() as db:
            rows = db.execute(
                select(TrustedDeviceRecord)
                .where(TrustedDeviceRecord.account_id == account_id)
                .order_by(TrustedDeviceRecord.last_seen_at.desc())
            ).scalars()
            return [_row_to_device(row) for row in rows]

    async def revoke(self, account_id: int, device_hash: str) -> bool:
        with self._get_session() as db:
            result = db.execute(
                update(TrustedDeviceRecord)
                .where(
                    TrustedDeviceRecord.account_id == account_id,
                    TrustedDeviceRecord.device_hash == device_hash,
                    TrustedDeviceRecord.revoked.is_(False),
                )
                .values(revoked=True)
            )
            db.commit()
            return result.rowcount == 1

    async def revoke_all(self, account_id: int) -> int:
        with self._get_session() as db:
            result = db.execute(
                update(TrustedDeviceRecord)
                .where(TrustedDeviceRecord.account_id == account_id, TrustedDeviceRecord.revoked.is_(False))
                .values(revoked=True)
            )
            db.commit()
            return result.rowcount


class PostgresAuditSink:
    def _get_session(self) -> Session:
        return SessionLocal()

    async def record(self, record: AuditRecord) -> None:
        with self._get_session() as db:
            row = AuditLog(
                account_id=record.account_id,
                action=record.action,
                ip=record.ip or "",
                user_agent=record.user_agent or "",
                metadata_=record.metadata,
            )
            if record.created_at:
                row.created_at = record.created_at
            db.add(row)
            db.commit()
