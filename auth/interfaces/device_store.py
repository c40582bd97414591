"""Trusted device store interface."""

from __future__ import annotations

from typing import Protocol

from auth.models import TrustedDevice


class DeviceStore(Protocol):
    async def get(self, account_id: int, device_hash: str) -> TrustedDevice | None:
        ...

    async def upsert(self, device: TrustedDevice) -> TrustedDevice:
        ...

    async def list_for_account(self, account_id: int) -> list[TrustedDevice]:
        ...

    async def revoke(self, account_id: int, device_hash: str) -> bool:
        ...

    async def revoke_all(self, account_id: int) -> int:
        ...
