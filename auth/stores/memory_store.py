"""In-memory auth stores."""

from __future__ import annotations

import asyncio
import copy
import time
from dataclasses import replace
from datetime import datetime
from typing import Callable

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
from auth.security import utc_now


class MemoryAccountStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._accounts_by_email: dict[str, Account] = {}
        self._accounts_by_id: dict[int, Account] = {}
        self._next_id = 1

    async def get_by_email(self, email: str) -> Account | None:
        async with self._lock:
            account = self._accounts_by_email.get(normalize_email(email))
            return copy.deepcopy(account) if account else None

    async def get_by_id(self, account_id: int) -> Account | None:
        async with self._lock:
            account = self._accounts_by_id.get(account_id)
            return copy.deepcopy(account) if account else None

    async def get_by_reset_token_hash(self, token_hash: str) -> Account | None:
        async with self._lock:
            for account in self._accounts_by_id.values():
                if account.reset_password_token_hash == token_hash:
                    return copy.deepcopy(account)
            return None

    async def create_account(self, account: Account) -> Account:
        async with self._lock:
            if account.email in self._accounts_by_email:
                raise AccountExists()
            now = utc_now()
            stored = replace(
                copy.deepcopy(account),
                id=self._next_id,
                created_at=account.created_at or now,
                updated_at=now,
            )
            self._next_id += 1
            self._accounts_by_email[stored.email] = stored
            self._accounts_by_id[stored.id] = stored
            return copy.deepcopy(stored)

    async def update_account(self, account_id: int, updates: dict) -> Account:
        validate_account_updates(updates)
        async with self._lock:
            account = self._accounts_by_id.get(account_id)
            if not account:
                raise ValueError("Account not found")
            for key, value in updates.items():
                setattr(account, key, copy.deepcopy(value))
            account.updated_at = utc_now()
            return copy.deepcopy(account)

    async def append_login_history(self, account_id: int, entry: LoginHistoryEntry, limit: int) -> None:
        async with self._lock:
            account = self._accounts_by_id.get(account_id)
            if not account:
                raise ValueError("Account not found")
            account.login_history.append(copy.deepcopy(entry))
            if len(account.login_history) > limit:
                del account.login_history[: len(account.login_history) - limit]

    async def increment_token_version(self, account_id: int) -> int:
        async with self._lock:
            account = self._accounts_by_id.get(account_id)
            if not account:
                raise ValueError("Account not found")
            account.token_version += 1
            account.updated_at = utc_now()
            return account.token_version

    async def increment_failed_attempts(self, account_id: int) -> int:
        async with self._lock:
            account = self._accounts_by_id.get(account_id)
            if not account:
                raise ValueError("Account not found")
            account.failed_login_attempts += 1
            account.updated_at = utc_now()
            return account.failed_login_attempts


class MemoryOtpStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._challenges: dict[tuple[str, OtpPurpose], OtpChallenge] = {}

    @staticmethod
    def _key(subject: str, purpose: OtpPurpose) -> tuple[str, OtpPurpose]:
        return normalize_email(subject), OtpPurpose(purpose)

    async def get(self, subject: str, purpose: OtpPurpose) -> OtpChallenge | None:
        async with self._lock:
            challenge = self._challenges.get(self._key(subject, purpose))
            return replace(challenge) if challenge else None

    async def upsert(self, challenge: OtpChallenge) -> None:
        async with self._lock:
            stored = replace(challenge, created_at=challenge.created_at or utc_now())
            self._challenges[self._key(stored.subject, stored.purpose)] = stored

    async def delete(self, subject: str, purpose: OtpPurpose) -> None:
        async with self._lock:
            self._challenges.pop(self._key(subject, purpose), None)

    async def claim_attempt(
        self, subject: str, purpose: OtpPurpose, code_hash: str, max_attempts: int
    ) -> int | None:
        async with self._lock:
            challenge = self._challenges.get(self._key(subject, purpose))
            if not challenge or challenge.code_hash != code_hash:
                return None
            if challenge.attempts >= max_attempts:
                return None
            challenge.attempts += 1
            return challenge.attempts

    async def delete_if_hash(self, subject: str, purpose: OtpPurpose, code_hash: str) -> bool:
        async with self._lock:
            key = self._key(subject, purpose)
            challenge = self._challenges.get(key)
            if not challenge or challenge.code_hash != code_hash:
                return False
            del self._challenges[key]
            return True

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [key for key, item in self._challenges.items() if item.expires_at < now]
            for key in expired:
                del self._challenges[key]
            return len(expired)


class MemoryDeviceStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._devices: dict[tuple[int, str], TrustedDevice] = {}

    async def get(self, account_id: int, device_hash: str) -> TrustedDevice | None:
        async with self._lock:
            device = self._devices.get((account_id, device_hash))
            return replace(device) if device else None

    async def upsert(self, device: TrustedDevice) -> TrustedDevice:
        async with self._lock:
            self._devices[(device.account_id, device.device_hash)] = replace(device)
            return replace(device)

    async def list_for_account(self, account_id: int) -> list[TrustedDevice]:
        async with self._lock:
            devices = [replace(item) for key, item in self._devices.items() if key[0] == account_id]
        return sorted(devices, key=lambda item: item.last_seen_at, reverse=True)

    async def revoke(self, account_id: int, device_hash: str) -> bool:
        async with self._lock:
            device = self._devices.get((account_id, device_hash))
            if not device or device.revoked:
                return False
            device.revoked = True
            return True

    async def revoke_all(self, account_id: int) -> int:
        async with self._lock:
            count = 0
            for (owner, _), device in self._devices.items():
                if owner == account_id and not device.revoked:
                    device.revoked = True
                    count += 1
            return count


class MemoryAuditSink:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.records: list[AuditRecord] = []

    async def record(self, record: AuditRecord) -> None:
        async with self._lock:
            self.records.append(replace(record, created_at=record.created_at or utc_now()))

    def actions(self) -> list[str]:
        return [record.action for record in self.records]


class MemoryRateLimiter:
    """Sliding-window counter per key. Process-local, so each worker enforces its own budget."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = asyncio.Lock()
        self._hits: dict[str, list[float]] = {}
        self._clock = clock

    async def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = self._clock()
        async with self._lock:
            hits = [timestamp for timestamp in self._hits.get(key, []) if (now - timestamp) < window_seconds]
            if len(hits) >= limit:
                self._hits[key] = hits
                return False
            hits.append(now)
            self._hits[key] = hits
            return True
