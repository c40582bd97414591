"""Shared fixtures for the auth tests: fake collaborators, a controllable clock and a wired service graph."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from auth.exceptions import AuthException
from auth.interfaces.captcha_verifier import CaptchaResult
from auth.models import Account, GeoLocation, LoginSignals, RequestContext
from auth.fingerprint import build_device_fingerprint, parse_user_agent
from auth.policy import LoginPolicy
from auth.security import hash_password
from auth.services.account_service import AccountService
from auth.services.audit_service import AuditLogger
from auth.services.device_registry import DeviceTrustRegistry
from auth.services.geo_service import StaticGeoResolver
from auth.services.login_service import LoginService
from auth.services.oauth_service import GoogleIdentity
from auth.services.otp_service import OtpService
from auth.services.token_authority import TokenAuthority
from auth.stores.memory_store import MemoryAccountStore, MemoryAuditSink, MemoryDeviceStore, MemoryOtpStore

START = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)
PASSWORD = "Tr0ub4dor&3xyz"
EMAIL = "dana@example.com"
SESSION_SECRET = "test-session-secret"
CHALLENGE_SECRET = "test-challenge-secret"
OTP_SECRET = "test-otp-secret"
GOOGLE_TOKEN = "google-id-token"
GOOGLE_EMAIL = "sam@example.com"

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0"

HOME = RequestContext(
    ip="203.0.113.10",
    user_agent=CHROME_WINDOWS,
    accept_language="en-US",
    country="US",
    city="Austin",
)
TRAVEL = RequestContext(
    ip="198.51.100.77",
    user_agent=FIREFOX_LINUX,
    accept_language="de-DE",
    country="DE",
    city="Berlin",
)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeMailer:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str, Any]] = []

    async def _deliver(self, kind: str, email: str, payload: Any) -> bool:
        if self.fail:
            raise ConnectionError("mail provider unavailable")
        self.sent.append((kind, email, payload))
        return True

    async def send_code(self, email: str, code: str) -> bool:
        return await self._deliver("code", email, code)

    async def send_verification_code(self, email: str, code: str) -> bool:
        return await self._deliver("verification", email, code)

    async def send_suspicious_login_notice(self, email: str, details: dict[str, Any]) -> bool:
        return await self._deliver("suspicious", email, details)

    async def send_new_login_notice(self, email: str, details: dict[str, Any]) -> bool:
        return await self._deliver("new_login", email, details)

    async def send_password_reset(self, email: str, reset_url: str) -> bool:
        return await self._deliver("reset", email, reset_url)

    def last(self, kind: str, email: str = EMAIL) -> Any:
        for sent_kind, sent_email, payload in reversed(self.sent):
            if sent_kind == kind and sent_email == email:
                return payload
        raise AssertionError(f"no {kind} mail sent to {email}")

    def kinds(self) -> list[str]:
        return [kind for kind, _, _ in self.sent]


class FakeCaptcha:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.calls: list[tuple[str | None, str | None]] = []

    async def verify(self, token: str | None, ip: str | None) -> CaptchaResult:
        self.calls.append((token, ip))
        if self.ok:
            return CaptchaResult(ok=True)
        return CaptchaResult(ok=False, error_codes=["invalid-input-response"])


class FakeGoogleVerifier:
    def __init__(self, identities: dict[str, GoogleIdentity] | None = None) -> None:
        self.identities = dict(identities or {})

    async def verify(self, id_token: str) -> GoogleIdentity:
        if id_token not in self.identities:
            raise AuthException("Invalid Google token", status_code=401)
        return self.identities[id_token]


def make_signals(context: RequestContext = HOME) -> LoginSignals:
    return LoginSignals(
        ip=context.ip,
        user_agent=context.user_agent,
        device_hash=build_device_fingerprint(context.ip, context.user_agent, context.accept_language, context.platform),
        geo=GeoLocation(country=context.country or "UNKNOWN", city=context.city or "UNKNOWN"),
        client=parse_user_agent(context.user_agent, context.platform),
        accept_language=context.accept_language,
    )


class AuthHarness:
    """In-memory service graph sharing one clock, mailer and audit sink."""

    def __init__(
        self,
        policy: LoginPolicy | None = None,
        captcha: FakeCaptcha | None = None,
        mailer: FakeMailer | None = None,
    ) -> None:
        self.clock = FakeClock()
        self.policy = policy or LoginPolicy()
        self.mailer = mailer or FakeMailer()
        self.captcha = captcha
        self.accounts = MemoryAccountStore()
        self.otp_store = MemoryOtpStore()
        self.device_store = MemoryDeviceStore()
        self.audit_sink = MemoryAuditSink()
        self.google = FakeGoogleVerifier(
            {GOOGLE_TOKEN: GoogleIdentity(subject="1098", email=GOOGLE_EMAIL, name="Sam Okafor")}
        )

        self.otp = OtpService(self.otp_store, policy=self.policy, secret=OTP_SECRET, clock=self.clock)
        self.devices = DeviceTrustRegistry(self.device_store, clock=self.clock)
        self.tokens = TokenAuthority(
            self.accounts,
            policy=self.policy,
            session_secret=SESSION_SECRET,
            challenge_secret=CHALLENGE_SECRET,
            clock=self.clock,
        )
        self.audit = AuditLogger(self.audit_sink)
        self.login = LoginService(
            account_store=self.accounts,
            otp_service=self.otp,
            device_registry=self.devices,
            token_authority=self.tokens,
            audit=self.audit,
            mailer=self.mailer,
            geo_resolver=StaticGeoResolver(),
            captcha=captcha,
            policy=self.policy,
            clock=self.clock,
        )
        self.account_service = AccountService(
            account_store=self.accounts,
            otp_service=self.otp,
            token_authority=self.tokens,
            audit=self.audit,
            mailer=self.mailer,
            captcha=captcha,
            google_verifier=self.google,
            policy=self.policy,
            clock=self.clock,
            frontend_url="https://shop.example.com",
            bcrypt_rounds=4,
        )

    async def add_account(self, email: str = EMAIL, password: str = PASSWORD, **overrides: Any) -> Account:
        fields = {
            "name": "Dana Whitfield",
            "hashed_password": hash_password(password, rounds=4),
            "password_changed_at": self.clock(),
            "is_email_verified": True,
        }
        fields.update(overrides)
        return await self.accounts.create_account(Account(id=None, email=email, **fields))

    def actions(self) -> list[str]:
        return self.audit_sink.actions()
