import unittest

from auth.services.device_registry import DeviceTrustRegistry
from auth.stores.memory_store import MemoryDeviceStore

from tests.support import FakeClock, HOME, TRAVEL, make_signals


class TestDeviceTrustRegistry(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.clock = FakeClock()
        self.registry = DeviceTrustRegistry(MemoryDeviceStore(), clock=self.clock)
        self.signals = make_signals(HOME)

    async def test_first_login_registers_new_device(self):
        self.assertFalse(await self.registry.is_trusted(1, self.signals.device_hash))

        result = await self.registry.record_login(1, self.signals)

        self.assertTrue(result.is_new_device)
        self.assertEqual(result.device.browser, "Chrome")
        self.assertEqual(result.device.os, "Windows")
        self.assertTrue(await self.registry.is_trusted(1, self.signals.device_hash))

    async def test_repeat_login_refreshes_last_seen(self):
        first = await self.registry.record_login(1, self.signals)
        later = self.clock.advance(hours=3)

        second = await self.registry.record_login(1, self.signals)

        self.assertFalse(second.is_new_device)
        self.assertEqual(second.device.first_seen_at, first.device.first_seen_at)
        self.assertEqual(second.device.last_seen_at, later)

    async def test_trust_is_per_account(self):
        await self.registry.record_login(1, self.signals)

        self.assertFalse(await self.registry.is_trusted(2, self.signals.device_hash))

    async def test_revoked_device_is_new_again(self):
        await self.registry.record_login(1, self.signals)

        self.assertTrue(await self.registry.revoke(1, self.signals.device_hash))
        self.assertFalse(await self.registry.revoke(1, self.signals.device_hash))
        self.assertFalse(await self.registry.is_trusted(1, self.signals.device_hash))

        result = await self.registry.record_login(1, self.signals)
        self.assertTrue(result.is_new_device)
        self.assertFalse(result.device.revoked)

    async def test_revoke_all_and_listing(self):
        await self.registry.record_login(1, self.signals)
        self.clock.advance(minutes=5)
        await self.registry.record_login(1, make_signals(TRAVEL))

        devices = await self.registry.list_devices(1)
        self.assertEqual([device.browser for device in devices], ["Firefox", "Chrome"])

        self.assertEqual(await self.registry.revoke_all(1), 2)
        self.assertTrue(all(device.revoked for device in await self.registry.list_devices(1)))


if __name__ == "__main__":
    unittest.main()
