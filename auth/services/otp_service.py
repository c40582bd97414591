"""One-time code issuing and verification."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum

from auth.exceptions import OtpExhausted, OtpExpired, OtpMismatch, OtpNotFound
from auth.interfaces.otp_store import OtpStore
from auth.models import OtpChallenge, OtpPurpose, normalize_email
from auth.policy import LoginPolicy
from auth.security import generate_otp, hash_otp, otp_matches, utc_now

logger = logging.getLogger(__name__)


class OtpResult(str, Enum):
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    MISMATCH = "mismatch"
    NOT_FOUND = "not_found"


_RESULT_EXCEPTIONS = {
    OtpResult.EXPIRED: OtpExpired,
    OtpResult.EXHAUSTED: OtpExhausted,
    OtpResult.MISMATCH: OtpMismatch,
    OtpResult.NOT_FOUND: OtpNotFound,
}


class OtpService:
    def __init__(
        self,
        otp_store: OtpStore,
        policy: LoginPolicy | None = None,
        secret: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = otp_store
        self._policy = policy or LoginPolicy()
        self._secret = secret
        self._clock = clock

    async def issue(
        self,
        subject: str,
        purpose: OtpPurpose,
        correlation_id: str | None = None,
        expiry_minutes: int | None = None,
    ) -> str:
        """Create (or replace) the live challenge for (subject, purpose) and return the raw code."""
        code = generate_otp()
        now = self._clock()
        minutes = expiry_minutes or self._policy.otp_expiry_minutes
        await self._store.upsert(
            OtpChallenge(
                subject=normalize_email(subject),
                purpose=purpose,
                code_hash=hash_otp(code, self._secret),
                expires_at=now + timedelta(minutes=minutes),
                attempts=0,
                correlation_id=correlation_id,
                created_at=now,
            )
        )
        logger.info("Issued %s code", OtpPurpose(purpose).value)
        return code

    async def verify(
        self,
        subject: str,
        purpose: OtpPurpose,
        code: str,
        correlation_id: str | None = None,
    ) -> OtpResult:
        subject = normalize_email(subject)
        record = await self._store.get(subject, purpose)
        if record is None:
            return OtpResult.NOT_FOUND
        if correlation_id is not None and record.correlation_id != correlation_id:
            return OtpResult.NOT_FOUND

        if self._clock() > record.expires_at:
            await self._store.delete(subject, purpose)
            return OtpResult.EXPIRED

        max_attempts = self._policy.max_otp_attempts
        if record.attempts >= max_attempts:
            await self._store.delete(subject, purpose)
            return OtpResult.EXHAUSTED

        claimed = await self._store.claim_attempt(subject, purpose, record.code_hash, max_attempts)
        if claimed is None:
            # Lost a race: the challenge was consumed, replaced or capped meanwhile.
            current = await self._store.get(subject, purpose)
            if current is None or current.code_hash != record.code_hash:
                return OtpResult.NOT_FOUND
            await self._store.delete(subject, purpose)
            return OtpResult.EXHAUSTED

        if not otp_matches(code or "", record.code_hash, self._secret):
            return OtpResult.MISMATCH

        if not await self._store.delete_if_hash(subject, purpose, record.code_hash):
            return OtpResult.NOT_FOUND
        return OtpResult.ACCEPTED

    async def verify_or_raise(
        self,
        subject: str,
        purpose: OtpPurpose,
        code: str,
        correlation_id: str | None = None,
    ) -> None:
        result = await self.verify(subject, purpose, code, correlation_id=correlation_id)
        if result is not OtpResult.ACCEPTED:
            raise _RESULT_EXCEPTIONS[result]()

    async def purge_expired(self) -> int:
        return await self._store.delete_expired(self._clock())
