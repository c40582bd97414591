"""One-time code store interface.

``claim_attempt`` and ``delete_if_hash`` must be atomic conditional writes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from auth.models import OtpChallenge, OtpPurpose


class OtpStore(Protocol):
    async def get(self, subject: str, purpose: OtpPurpose) -> OtpChallenge | None:
        ...

    async def upsert(self, challenge: OtpChallenge) -> None:
        ...

    async def delete(self, subject: str, purpose: OtpPurpose) -> None:
        ...

    async def claim_attempt(
        self, subject: str, purpose: OtpPurpose, code_hash: str, max_attempts: int
    ) -> int | None:
        """Increment attempts if the stored hash matches and attempts < max; return the new count."""
        ...

    async def delete_if_hash(self, subject: str, purpose: OtpPurpose, code_hash: str) -> bool:
        ...

    async def delete_expired(self, now: datetime) -> int:
        ...
