import unittest

from jose import jwt

from auth.exceptions import AccountDisabled, ChallengeInvalid, InvalidToken, TokenExpired, TokenVersionMismatch
from auth.models import Account
from auth.policy import LoginPolicy
from auth.services.token_authority import TokenAuthority
from auth.stores.memory_store import MemoryAccountStore

from tests.support import CHALLENGE_SECRET, SESSION_SECRET, FakeClock, make_signals


class TestTokenAuthority(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.clock = FakeClock()
        self.accounts = MemoryAccountStore()
        self.tokens = TokenAuthority(
            self.accounts,
            policy=LoginPolicy(),
            session_secret=SESSION_SECRET,
            challenge_secret=CHALLENGE_SECRET,
            clock=self.clock,
        )
        self.account = await self.accounts.create_account(Account(id=None, email="dana@example.com", role="admin"))

    async def test_session_token_carries_version_and_role(self):
        issued = self.tokens.issue_token(self.account)

        claims = jwt.get_unverified_claims(issued.token)
        self.assertEqual(claims["sub"], str(self.account.id))
        self.assertEqual(claims["tv"], 0)
        self.assertEqual(claims["role"], "admin")
        self.assertEqual(claims["type"], "access")
        self.assertEqual((await self.tokens.authenticate(issued.token)).id, self.account.id)

    async def test_session_expires_after_policy_lifetime(self):
        issued = self.tokens.issue_token(self.account)
        self.clock.advance(days=7, seconds=1)

        with self.assertRaises(TokenExpired):
            await self.tokens.authenticate(issued.token)

    async def test_revoke_all_invalidates_every_outstanding_token(self):
        first = self.tokens.issue_token(self.account)
        second = self.tokens.issue_token(self.account)

        version = await self.tokens.revoke_all(self.account.id)

        self.assertEqual(version, 1)
        for issued in (first, second):
            with self.assertRaises(TokenVersionMismatch):
                await self.tokens.authenticate(issued.token)
        fresh = self.tokens.issue_token(await self.accounts.get_by_id(self.account.id))
        self.assertEqual((await self.tokens.authenticate(fresh.token)).token_version, 1)

    async def test_disabled_account_cannot_authenticate(self):
        issued = self.tokens.issue_token(self.account)
        await self.accounts.update_account(self.account.id, {"is_active": False})

        with self.assertRaises(AccountDisabled):
            await self.tokens.authenticate(issued.token)

    async def test_challenge_token_is_not_a_session(self):
        challenge = self.tokens.issue_challenge(self.account, make_signals(), False, 0, [])

        with self.assertRaises(InvalidToken):
            await self.tokens.authenticate(challenge.token)

    async def test_session_token_is_not_a_challenge(self):
        issued = self.tokens.issue_token(self.account)

        with self.assertRaises(ChallengeInvalid):
            self.tokens.decode_challenge(issued.token)

    async def test_challenge_round_trips_login_signals(self):
        signals = make_signals()
        challenge = self.tokens.issue_challenge(self.account, signals, True, 55, ["New IP address"])

        decoded = self.tokens.decode_challenge(challenge.token)

        self.assertEqual(decoded.account_id, self.account.id)
        self.assertEqual(decoded.jti, challenge.jti)
        self.assertEqual(decoded.signals.device_hash, signals.device_hash)
        self.assertEqual(decoded.signals.geo, signals.geo)
        self.assertEqual(decoded.signals.client.browser, "Chrome")
        self.assertTrue(decoded.suspicious)
        self.assertEqual(decoded.risk_score, 55)
        self.assertEqual(decoded.reasons, ["New IP address"])

    async def test_challenge_expires(self):
        challenge = self.tokens.issue_challenge(self.account, make_signals(), False, 0, [])
        self.clock.advance(minutes=10, seconds=1)

        with self.assertRaises(ChallengeInvalid):
            self.tokens.decode_challenge(challenge.token)

    def test_secrets_must_differ(self):
        with self.assertRaises(ValueError):
            TokenAuthority(MemoryAccountStore(), session_secret="same", challenge_secret="same")


if __name__ == "__main__":
    unittest.main()
