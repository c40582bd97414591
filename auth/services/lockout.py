"""
Brute-force lockout tracker.

States are Open and Locked. Locked holds while ``now < lock_until`` and lapses
lazily on the next attempt, so there is no explicit unlock transition. The
functions here are pure: they return the patch to persist.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from auth.models import Account
from auth.policy import LoginPolicy


@dataclass(frozen=True)
class LockoutDecision:
    updates: dict[str, Any] = field(default_factory=dict)
    locked_now: bool = False
    lock_until: datetime | None = None


def is_locked(account: Account, now: datetime) -> bool:
    return account.is_locked(now)


def retry_after_seconds(account: Account, now: datetime) -> int:
    if not account.lock_until or account.lock_until <= now:
        return 0
    return math.ceil((account.lock_until - now).total_seconds())


def extend_lock(current: datetime | None, candidate: datetime) -> datetime:
    """Whichever lock ends later wins."""
    if current is None or candidate > current:
        return candidate
    return current


def register_failure(account: Account, attempts: int, now: datetime, policy: LoginPolicy) -> LockoutDecision:
    """Decide on a lock once the store has counted the failure; ``attempts`` is the incremented total."""
    if attempts >= policy.max_failed_attempts:
        lock_until = extend_lock(account.lock_until, now + timedelta(minutes=policy.lock_minutes))
        return LockoutDecision(
            updates={"failed_login_attempts": 0, "lock_until": lock_until},
            locked_now=True,
            lock_until=lock_until,
        )
    return LockoutDecision()


def register_success() -> dict[str, Any]:
    return {"failed_login_attempts": 0, "lock_until": None}
