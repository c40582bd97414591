import unittest

from fastapi.testclient import TestClient

from api.main import app
from auth.dependencies import (
    LOGIN_RATE_LIMIT,
    OTP_SEND_RATE_LIMIT,
    OTP_VERIFY_RATE_LIMIT,
    get_account_service,
    get_audit_logger,
    get_device_registry,
    get_login_service,
    get_rate_limiter,
    get_token_authority,
)
from auth.stores.memory_store import MemoryRateLimiter

from tests.support import EMAIL, GOOGLE_EMAIL, GOOGLE_TOKEN, HOME, PASSWORD, AuthHarness

BASE = "/api/v1/auth"
CLIENT_HEADERS = {
    "user-agent": HOME.user_agent,
    "accept-language": HOME.accept_language,
    "x-forwarded-for": HOME.ip,
    "cf-ipcountry": HOME.country,
    "x-vercel-ip-city": HOME.city,
}


class AuthApiTestCase(unittest.TestCase):
    def setUp(self):
        self.harness = AuthHarness()
        app.dependency_overrides[get_login_service] = lambda: self.harness.login
        app.dependency_overrides[get_account_service] = lambda: self.harness.account_service
        app.dependency_overrides[get_token_authority] = lambda: self.harness.tokens
        app.dependency_overrides[get_device_registry] = lambda: self.harness.devices
        app.dependency_overrides[get_audit_logger] = lambda: self.harness.audit
        self.limiter = MemoryRateLimiter()
        app.dependency_overrides[get_rate_limiter] = lambda: self.limiter
        self.client = TestClient(app, headers=CLIENT_HEADERS)
        self.addCleanup(app.dependency_overrides.clear)

    def add_account(self, **overrides):
        return self.client.portal.call(lambda: self.harness.add_account(**overrides))

    def sign_in(self):
        return self.sign_in_session()["token"]

    def sign_in_session(self):
        response = self.client.post(f"{BASE}/login", json={"email": EMAIL, "password": PASSWORD})
        self.assertEqual(response.status_code, 200)
        challenge = response.json()["data"]["challenge_token"]
        response = self.client.post(
            f"{BASE}/login/verify-2fa",
            json={"challenge_token": challenge, "otp": self.harness.mailer.last("code")},
        )
        self.assertEqual(response.status_code, 200)
        return response.json()["data"]


class TestLoginRoutes(AuthApiTestCase):
    def test_login_step_up_then_me(self):
        with self.client:
            self.add_account()

            response = self.client.post(f"{BASE}/login", json={"email": EMAIL, "password": PASSWORD})
            data = response.json()["data"]
            self.assertTrue(data["requires_2fa"])
            self.assertTrue(data["code_sent"])
            self.assertNotIn("token", data)

            response = self.client.post(
                f"{BASE}/login/verify-2fa",
                json={"challenge_token": data["challenge_token"], "otp": self.harness.mailer.last("code")},
            )
            self.assertEqual(response.status_code, 200)
            session = response.json()["data"]
            self.assertTrue(session["new_device"])
            self.assertEqual(session["user"]["email"], EMAIL)
            self.assertIn("access_token", response.headers["set-cookie"])

            response = self.client.get(f"{BASE}/me", headers={"Authorization": f"Bearer {session['token']}"})
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json()["data"]["user"]["email"], EMAIL)

    def test_bad_password_is_generic(self):
        with self.client:
            self.add_account()

            wrong = self.client.post(f"{BASE}/login", json={"email": EMAIL, "password": "Wrong#Guess9x"})
            unknown = self.client.post(f"{BASE}/login", json={"email": "nobody@example.com", "password": PASSWORD})

            self.assertEqual(wrong.status_code, 401)
            self.assertEqual(wrong.json(), unknown.json())

    def test_lockout_returns_423_with_retry_after(self):
        with self.client:
            self.add_account()
            for _ in range(4):
                self.client.post(f"{BASE}/login", json={"email": EMAIL, "password": "Wrong#Guess9x"})

            response = self.client.post(f"{BASE}/login", json={"email": EMAIL, "password": "Wrong#Guess9x"})

            self.assertEqual(response.status_code, 423)
            self.assertEqual(response.headers["retry-after"], "900")

            response = self.client.post(f"{BASE}/login", json={"email": EMAIL, "password": PASSWORD})
            self.assertEqual(response.status_code, 423)

    def test_invalid_challenge(self):
        with self.client:
            response = self.client.post(
                f"{BASE}/login/verify-2fa", json={"challenge_token": "not-a-token", "otp": "123456"}
            )

            self.assertEqual(response.status_code, 400)

    def test_me_requires_a_token(self):
        with self.client:
            self.assertEqual(self.client.get(f"{BASE}/me").status_code, 401)

    def test_logout_all_revokes_sessions(self):
        with self.client:
            self.add_account()
            token = self.sign_in()
            auth = {"Authorization": f"Bearer {token}"}

            response = self.client.post(f"{BASE}/logout-all", headers=auth, json={"revoke_devices": True})
            self.assertEqual(response.status_code, 200)

            self.assertEqual(self.client.get(f"{BASE}/me", headers=auth).status_code, 401)
            self.assertIn("LOGOUT_ALL_DEVICES", self.harness.actions())

    def test_login_is_throttled_per_client_ip(self):
        with self.client:
            statuses = [
                self.client.post(
                    f"{BASE}/login", json={"email": f"shopper{n}@example.com", "password": PASSWORD}
                ).status_code
                for n in range(LOGIN_RATE_LIMIT.limit + 1)
            ]

            self.assertEqual(statuses[:-1], [401] * LOGIN_RATE_LIMIT.limit)
            self.assertEqual(statuses[-1], 429)


class TestCsrf(AuthApiTestCase):
    def test_every_session_carries_a_fresh_csrf_token(self):
        with self.client:
            self.add_account()

            first = self.sign_in_session()
            second = self.sign_in_session()

            self.assertEqual(len(first["csrf_token"]), 48)
            self.assertNotEqual(first["csrf_token"], second["csrf_token"])

    def test_cookie_session_without_csrf_header_is_rejected(self):
        with self.client:
            self.add_account()
            session = self.sign_in_session()
            self.client.cookies.set("access_token", session["token"])
            self.client.cookies.set("csrf_token", session["csrf_token"])

            response = self.client.post(f"{BASE}/logout-all")

            self.assertEqual(response.status_code, 403)
            self.assertEqual(response.json()["detail"], "CSRF validation failed")
            self.assertIn("CSRF_FAILED", self.harness.actions())
            self.assertNotIn("LOGOUT_ALL_DEVICES", self.harness.actions())
            self.assertEqual(self.client.get(f"{BASE}/me").status_code, 200)

    def test_cookie_session_with_forged_csrf_header_is_rejected(self):
        with self.client:
            self.add_account()
            session = self.sign_in_session()
            self.client.cookies.set("access_token", session["token"])
            self.client.cookies.set("csrf_token", session["csrf_token"])

            response = self.client.post(f"{BASE}/logout", headers={"X-CSRF-Token": "0" * 48})

            self.assertEqual(response.status_code, 403)
            self.assertIn("CSRF_FAILED", self.harness.actions())

    def test_cookie_session_with_matching_csrf_token(self):
        with self.client:
            self.add_account()
            session = self.sign_in_session()
            self.client.cookies.set("access_token", session["token"])
            self.client.cookies.set("csrf_token", session["csrf_token"])

            response = self.client.post(f"{BASE}/logout-all", headers={"X-CSRF-Token": session["csrf_token"]})

            self.assertEqual(response.status_code, 200)
            self.assertIn("LOGOUT_ALL_DEVICES", self.harness.actions())


class TestRateLimits(AuthApiTestCase):
    def test_sign_in_code_requests_are_throttled_per_ip(self):
        with self.client:
            statuses = [
                self.client.post(f"{BASE}/otp/send", json={"email": f"shopper{n}@example.com"}).status_code
                for n in range(OTP_SEND_RATE_LIMIT.limit + 1)
            ]

            self.assertEqual(statuses[:-1], [200] * OTP_SEND_RATE_LIMIT.limit)
            self.assertEqual(statuses[-1], 429)

    def test_sign_in_code_requests_are_throttled_per_email(self):
        with self.client:
            responses = [
                self.client.post(
                    f"{BASE}/otp/send", json={"email": EMAIL}, headers={"x-forwarded-for": f"198.51.100.{n}"}
                )
                for n in range(OTP_SEND_RATE_LIMIT.limit + 1)
            ]

            self.assertEqual(responses[-2].status_code, 200)
            self.assertEqual(responses[-1].status_code, 429)
            self.assertEqual(responses[-1].headers["retry-after"], str(OTP_SEND_RATE_LIMIT.window_seconds))
            self.assertEqual(len(self.harness.mailer.sent), OTP_SEND_RATE_LIMIT.limit)

    def test_code_verification_is_throttled(self):
        with self.client:
            statuses = [
                self.client.post(f"{BASE}/otp/verify", json={"email": EMAIL, "otp": "000000"}).status_code
                for _ in range(OTP_VERIFY_RATE_LIMIT.limit + 1)
            ]

            self.assertNotIn(429, statuses[:-1])
            self.assertEqual(statuses[-1], 429)


class TestGoogleRoute(AuthApiTestCase):
    def test_google_sign_in_creates_a_verified_account(self):
        with self.client:
            response = self.client.post(f"{BASE}/google-auth", json={"credential": GOOGLE_TOKEN})

            self.assertEqual(response.status_code, 200)
            data = response.json()["data"]
            self.assertEqual(data["user"]["email"], GOOGLE_EMAIL)
            self.assertTrue(data["user"]["is_email_verified"])
            self.assertFalse(data["user"]["is_otp_user"])
            self.assertEqual(data["user"]["oauth_provider"], "google")
            self.assertIn("csrf_token", data)
            self.assertEqual(self.harness.actions(), ["GOOGLE_REGISTER_SUCCESS", "GOOGLE_LOGIN_SUCCESS"])

            me = self.client.get(f"{BASE}/me", headers={"Authorization": f"Bearer {data['token']}"})
            self.assertEqual(me.status_code, 200)

    def test_unverifiable_google_token(self):
        with self.client:
            response = self.client.post(f"{BASE}/google-auth", json={"token": "forged"})

            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.json()["detail"], "Google authentication failed")
            self.assertEqual(self.harness.actions(), ["GOOGLE_LOGIN_FAILED"])

class TestAccountRoutes(AuthApiTestCase):
    def test_register_then_duplicate(self):
        with self.client:
            payload = {"name": "Dana Whitfield", "email": EMAIL, "password": PASSWORD}

            response = self.client.post(f"{BASE}/register", json=payload)
            self.assertEqual(response.status_code, 201)
            self.assertTrue(response.json()["data"]["verification_required"])

            response = self.client.post(f"{BASE}/register", json=payload)
            self.assertEqual(response.status_code, 409)

    def test_password_evaluate(self):
        with self.client:
            strong = self.client.post(f"{BASE}/password/evaluate", json={"password": PASSWORD}).json()["data"]
            weak = self.client.post(f"{BASE}/password/evaluate", json={"password": "qwerty12"}).json()["data"]

            self.assertTrue(strong["ok"])
            self.assertFalse(weak["ok"])
            self.assertEqual(weak["label"], "Weak")

    def test_forgot_password_is_uniform(self):
        with self.client:
            self.add_account()

            known = self.client.post(f"{BASE}/password/forgot", json={"email": EMAIL})
            unknown = self.client.post(f"{BASE}/password/forgot", json={"email": "nobody@example.com"})

            self.assertEqual(known.json(), unknown.json())
            self.assertEqual(self.harness.mailer.kinds(), ["reset"])

    def test_devices_list_and_revoke(self):
        with self.client:
            self.add_account()
            auth = {"Authorization": f"Bearer {self.sign_in()}"}

            devices = self.client.get(f"{BASE}/devices", headers=auth).json()["data"]["devices"]
            self.assertEqual(len(devices), 1)
            device_hash = devices[0]["device_hash"]

            self.assertEqual(self.client.delete(f"{BASE}/devices/{device_hash}", headers=auth).status_code, 200)
            self.assertEqual(self.client.delete(f"{BASE}/devices/{device_hash}", headers=auth).status_code, 404)


if __name__ == "__main__":
    unittest.main()
