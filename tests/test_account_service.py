import unittest
from datetime import timedelta

from auth.exceptions import (
    AccountDisabled,
    AccountExists,
    AccountLocked,
    AuthException,
    CaptchaFailed,
    InvalidCredentials,
    OtpMismatch,
    PasswordReused,
    TokenVersionMismatch,
    WeakPassword,
)
from auth.security import hash_reset_token, verify_password

from auth.services.account_service import AccountService
from auth.services.oauth_service import GoogleIdentity

from tests.support import EMAIL, GOOGLE_EMAIL, GOOGLE_TOKEN, HOME, PASSWORD, AuthHarness, FakeCaptcha

NEW_PASSWORD = "Harbor#Lamp7Quill"


class TestRegistration(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.harness = AuthHarness()
        self.service = self.harness.account_service

    async def test_register_creates_unverified_account_and_mails_code(self):
        account = await self.service.register("Dana Whitfield", " Dana@Example.com ", PASSWORD, context=HOME)

        self.assertEqual(account.email, EMAIL)
        self.assertFalse(account.is_email_verified)
        self.assertTrue(verify_password(PASSWORD, account.hashed_password))
        self.assertEqual(self.harness.mailer.kinds(), ["verification"])
        self.assertIn("REGISTER_SUCCESS", self.harness.actions())

    async def test_duplicate_email_rejected(self):
        await self.harness.add_account()

        with self.assertRaises(AccountExists) as ctx:
            await self.service.register("Dana Whitfield", EMAIL, PASSWORD)

        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(self.harness.actions(), ["REGISTER_EMAIL_EXISTS"])

    async def test_weak_password_rejected(self):
        with self.assertRaises(WeakPassword):
            await self.service.register("Dana Whitfield", EMAIL, "password123")

        self.assertIsNone(await self.harness.accounts.get_by_email(EMAIL))

    async def test_markup_in_name_is_stripped_and_audited(self):
        account = await self.service.register("<script>x</script>Dana   Whitfield", EMAIL, PASSWORD)

        self.assertEqual(account.name, "xDana Whitfield")
        self.assertEqual(self.harness.actions()[0], "XSS_BLOCKED")

    async def test_verify_email(self):
        await self.service.register("Dana Whitfield", EMAIL, PASSWORD)
        code = self.harness.mailer.last("verification")

        with self.assertRaises(OtpMismatch):
            await self.service.verify_email(EMAIL, "000000" if code != "000000" else "111111")
        account = await self.service.verify_email(EMAIL, code)

        self.assertTrue(account.is_email_verified)
        self.assertEqual(account.email_verified_at, self.harness.clock())
        self.assertIn("EMAIL_VERIFIED", self.harness.actions())

    async def test_resend_verification_is_silent_for_unknown_or_verified(self):
        await self.harness.add_account()

        await self.service.send_verification_code(EMAIL)
        await self.service.send_verification_code("nobody@example.com")

        self.assertEqual(self.harness.mailer.sent, [])


class TestCodeSignIn(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.harness = AuthHarness()
        self.service = self.harness.account_service

    async def test_first_code_creates_otp_user(self):
        self.assertTrue(await self.service.send_sign_in_code("new.shopper@example.com"))
        code = self.harness.mailer.last("code", "new.shopper@example.com")

        session = await self.service.sign_in_with_code("new.shopper@example.com", code)

        self.assertTrue(session.account.is_otp_user)
        self.assertTrue(session.account.is_email_verified)
        self.assertIsNone(session.account.hashed_password)
        self.assertEqual((await self.harness.tokens.authenticate(session.token)).id, session.account.id)
        self.assertIn("OTP_USER_CREATED", self.harness.actions())

    async def test_locked_account_cannot_use_code(self):
        await self.harness.add_account(lock_until=self.harness.clock() + timedelta(minutes=5))
        await self.service.send_sign_in_code(EMAIL)

        with self.assertRaises(AccountLocked) as ctx:
            await self.service.sign_in_with_code(EMAIL, self.harness.mailer.last("code"))

        self.assertEqual(ctx.exception.retry_after, 300)

    async def test_undelivered_code_is_reported(self):
        self.harness.mailer.fail = True

        self.assertFalse(await self.service.send_sign_in_code(EMAIL))


class TestGoogleSignIn(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.harness = AuthHarness()
        self.service = self.harness.account_service

    async def test_first_sign_in_creates_federated_account(self):
        session = await self.service.sign_in_with_google(GOOGLE_TOKEN, HOME)

        account = session.account
        self.assertEqual(account.email, GOOGLE_EMAIL)
        self.assertEqual(account.name, "Sam Okafor")
        self.assertEqual(account.oauth_provider, "google")
        self.assertTrue(account.is_email_verified)
        self.assertFalse(account.is_otp_user)
        self.assertIsNone(account.hashed_password)
        self.assertEqual((await self.harness.tokens.authenticate(session.token)).id, account.id)
        self.assertEqual(self.harness.actions(), ["GOOGLE_REGISTER_SUCCESS", "GOOGLE_LOGIN_SUCCESS"])

    async def test_existing_password_account_is_linked(self):
        existing = await self.harness.add_account(is_email_verified=False)
        self.harness.google.identities["linked"] = GoogleIdentity(subject="77", email=EMAIL.upper(), name="Dana")

        session = await self.service.sign_in_with_google("linked", HOME)

        self.assertEqual(session.account.id, existing.id)
        self.assertEqual(session.account.oauth_provider, "google")
        self.assertTrue(session.account.is_email_verified)
        self.assertTrue(verify_password(PASSWORD, session.account.hashed_password))
        self.assertEqual(self.harness.actions(), ["GOOGLE_LOGIN_SUCCESS"])

    async def test_rejected_token_is_audited(self):
        with self.assertRaises(AuthException) as ctx:
            await self.service.sign_in_with_google("forged", HOME)

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(ctx.exception.message, "Google authentication failed")
        self.assertEqual(self.harness.actions(), ["GOOGLE_LOGIN_FAILED"])

    async def test_disabled_and_locked_accounts_are_refused(self):
        await self.harness.add_account(email=GOOGLE_EMAIL, is_active=False)
        with self.assertRaises(AccountDisabled):
            await self.service.sign_in_with_google(GOOGLE_TOKEN, HOME)

        other = await self.harness.add_account(lock_until=self.harness.clock() + timedelta(minutes=10))
        self.harness.google.identities["locked"] = GoogleIdentity(subject="78", email=other.email)
        with self.assertRaises(AccountLocked):
            await self.service.sign_in_with_google("locked", HOME)

    async def test_unconfigured_google_sign_in(self):
        h = self.harness
        service = AccountService(
            account_store=h.accounts, otp_service=h.otp, token_authority=h.tokens, audit=h.audit, mailer=h.mailer
        )

        with self.assertRaises(AuthException) as ctx:
            await service.sign_in_with_google(GOOGLE_TOKEN, HOME)

        self.assertEqual(ctx.exception.status_code, 500)


class TestChangePassword(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.harness = AuthHarness()
        self.service = self.harness.account_service
        self.account = await self.harness.add_account()

    async def test_change_revokes_old_sessions_and_returns_a_fresh_one(self):
        old = self.harness.tokens.issue_token(self.account)

        session = await self.service.change_password(self.account.id, PASSWORD, NEW_PASSWORD, context=HOME)

        with self.assertRaises(TokenVersionMismatch):
            await self.harness.tokens.authenticate(old.token)
        self.assertEqual((await self.harness.tokens.authenticate(session.token)).token_version, 1)
        self.assertTrue(verify_password(NEW_PASSWORD, session.account.hashed_password))
        self.assertEqual(session.account.password_history, [self.account.hashed_password])
        self.assertEqual(self.harness.actions()[-2:], ["PASSWORD_CHANGED", "SESSIONS_REVOKED"])

    async def test_wrong_current_password(self):
        with self.assertRaises(InvalidCredentials):
            await self.service.change_password(self.account.id, "Wrong#Guess9x", NEW_PASSWORD)

    async def test_recent_password_cannot_be_reused(self):
        await self.service.change_password(self.account.id, PASSWORD, NEW_PASSWORD)

        with self.assertRaises(PasswordReused):
            await self.service.change_password(self.account.id, NEW_PASSWORD, PASSWORD)
        self.assertIn("PASSWORD_REUSE_BLOCKED", self.harness.actions())


class TestPasswordReset(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.harness = AuthHarness()
        self.service = self.harness.account_service
        self.account = await self.harness.add_account()

    async def _reset_token(self):
        await self.service.request_password_reset(EMAIL, context=HOME)
        url = self.harness.mailer.last("reset")
        self.assertTrue(url.startswith("https://shop.example.com/reset-password/"))
        return url.rsplit("/", 1)[-1]

    async def test_unknown_email_is_silent(self):
        await self.service.request_password_reset("nobody@example.com")

        self.assertEqual(self.harness.mailer.sent, [])
        self.assertEqual(self.harness.actions(), ["PASSWORD_RESET_REQUESTED_NOUSER"])

    async def test_reset_flow(self):
        token = await self._reset_token()
        stored = await self.harness.accounts.get_by_id(self.account.id)
        self.assertEqual(stored.reset_password_token_hash, hash_reset_token(token))

        await self.service.reset_password(token, NEW_PASSWORD)

        account = await self.harness.accounts.get_by_id(self.account.id)
        self.assertTrue(verify_password(NEW_PASSWORD, account.hashed_password))
        self.assertIsNone(account.reset_password_token_hash)
        self.assertEqual(account.token_version, 1)
        with self.assertRaises(AuthException):
            await self.service.reset_password(token, "Another#Path8Reed")

    async def test_expired_token(self):
        token = await self._reset_token()
        self.harness.clock.advance(minutes=16)

        with self.assertRaises(AuthException) as ctx:
            await self.service.reset_password(token, NEW_PASSWORD)

        self.assertEqual(ctx.exception.message, "Invalid or expired password reset token.")

    async def test_captcha_gates_reset_requests(self):
        harness = AuthHarness(captcha=FakeCaptcha(ok=False))
        await harness.add_account()

        with self.assertRaises(CaptchaFailed):
            await harness.account_service.request_password_reset(EMAIL, captcha_token="bad", context=HOME)

        self.assertEqual(harness.captcha.calls, [("bad", HOME.ip)])
        self.assertEqual(harness.mailer.sent, [])


if __name__ == "__main__":
    unittest.main()
