"""Trusted device registry."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime

from auth.interfaces.device_store import DeviceStore
from auth.models import LoginSignals, TrustedDevice
from auth.security import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceRecordResult:
    is_new_device: bool
    device: TrustedDevice


class DeviceTrustRegistry:
    def __init__(self, device_store: DeviceStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._devices = device_store
        self._clock = clock

    async def is_trusted(self, account_id: int, device_hash: str) -> bool:
        device = await self._devices.get(account_id, device_hash)
        return device is not None and not device.revoked

    async def record_login(self, account_id: int, signals: LoginSignals) -> DeviceRecordResult:
        now = self._clock()
        existing = await self._devices.get(account_id, signals.device_hash)

        if existing and not existing.revoked:
            updated = replace(
                existing,
                last_seen_at=now,
                last_ip=signals.ip or existing.last_ip,
                last_country=signals.geo.country or existing.last_country,
                last_city=signals.geo.city or existing.last_city,
                user_agent=signals.user_agent or existing.user_agent,
                browser=signals.client.browser or existing.browser,
                os=signals.client.os or existing.os,
                platform=signals.client.platform or existing.platform,
                accept_language=signals.accept_language or existing.accept_language,
            )
            return DeviceRecordResult(is_new_device=False, device=await self._devices.upsert(updated))

        # A revoked pair stays untrusted until this fresh record replaces it.
        device = TrustedDevice(
            account_id=account_id,
            device_hash=signals.device_hash,
            first_seen_at=now,
            last_seen_at=now,
            last_ip=signals.ip,
            last_country=signals.geo.country,
            last_city=signals.geo.city,
            user_agent=signals.user_agent,
            browser=signals.client.browser,
            os=signals.client.os,
            platform=signals.client.platform,
            accept_language=signals.accept_language,
            revoked=False,
        )
        logger.info("Registered new device for account %s", account_id)
        return DeviceRecordResult(is_new_device=True, device=await self._devices.upsert(device))

    async def list_devices(self, account_id: int) -> list[TrustedDevice]:
        return await self._devices.list_for_account(account_id)

    async def revoke(self, account_id: int, device_hash: str) -> bool:
        return await self._devices.revoke(account_id, device_hash)

    async def revoke_all(self, account_id: int) -> int:
        return await self._devices.revoke_all(account_id)
