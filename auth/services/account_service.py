"""Account lifecycle: registration, email verification, code sign-in and password management."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from auth.config import AuthConfig
from auth.exceptions import (
    AccountDisabled,
    AccountExists,
    AccountLocked,
    AccountNotFound,
    AuthException,
    CaptchaFailed,
    InvalidCredentials,
    PasswordReused,
    WeakPassword,
)
from auth.interfaces.account_store import AccountStore
from auth.interfaces.captcha_verifier import CaptchaVerifier
from auth.interfaces.mail_dispatcher import MailDispatcher
from auth.models import Account, OtpPurpose, RequestContext, normalize_email
from auth.policy import LoginPolicy
from auth.results import SessionIssued
from auth.sanitize import sanitize_text
from auth.security import (
    generate_reset_token,
    hash_password,
    hash_reset_token,
    utc_now,
    verify_password,
)
from auth.services import lockout
from auth.services.audit_service import AuditLogger
from auth.services.email_service import send_best_effort
from auth.services.oauth_service import GoogleIdTokenVerifier
from auth.services.otp_service import OtpService
from auth.services.password_policy import evaluate_password, is_password_reused, rotate_password_history
from auth.services.token_authority import TokenAuthority

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 100
EMAIL_VERIFY_EXPIRY_MINUTES = 10


class AccountService:
    def __init__(
        self,
        account_store: AccountStore,
        otp_service: OtpService,
        token_authority: TokenAuthority,
        audit: AuditLogger,
        mailer: MailDispatcher,
        captcha: CaptchaVerifier | None = None,
        google_verifier: GoogleIdTokenVerifier | None = None,
        policy: LoginPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
        frontend_url: str | None = None,
        bcrypt_rounds: int | None = None,
    ) -> None:
        self._accounts = account_store
        self._otp = otp_service
        self._tokens = token_authority
        self._audit = audit
        self._mailer = mailer
        self._captcha = captcha
        self._google = google_verifier
        self._policy = policy or LoginPolicy()
        self._clock = clock
        self._frontend_url = (frontend_url or AuthConfig.FRONTEND_URL).rstrip("/")
        self._bcrypt_rounds = bcrypt_rounds

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        context: RequestContext | None = None,
    ) -> Account:
        """Create a password account and mail its email verification code. No session is issued."""
        clean_name, modified = sanitize_text(name, NAME_MAX_LENGTH)
        email = normalize_email(email)
        if not clean_name or not email or not password:
            raise AuthException("Name, email and password are required.", status_code=400)

        if modified:
            await self._audit.record("XSS_BLOCKED", None, context, {"field": "name", "route": "register"})

        if await self._accounts.get_by_email(email):
            await self._audit.record("REGISTER_EMAIL_EXISTS", None, context, {"email": email})
            raise AccountExists()

        self._enforce_strength(password, clean_name, email)

        now = self._clock()
        account = await self._accounts.create_account(
            Account(
                id=None,
                email=email,
                name=clean_name,
                hashed_password=hash_password(password, rounds=self._bcrypt_rounds),
                password_changed_at=now,
                is_email_verified=False,
            )
        )
        await self._issue_verification_code(account)
        await self._audit.record("REGISTER_SUCCESS", account.id, context, {"email": account.email})
        logger.info("Registered account %s", account.id)
        return account

    async def send_verification_code(self, email: str, context: RequestContext | None = None) -> None:
        """Mail a fresh verification code. Silent for unknown or already verified addresses."""
        account = await self._accounts.get_by_email(normalize_email(email))
        if account is None or account.is_email_verified:
            return
        await self._issue_verification_code(account)
        await self._audit.record("EMAIL_VERIFICATION_SENT", account.id, context, {"email": account.email})

    async def verify_email(self, email: str, code: str, context: RequestContext | None = None) -> Account:
        account = await self._accounts.get_by_email(normalize_email(email))
        if account is None:
            raise AuthException("Invalid verification request.", status_code=400)
        if account.is_email_verified:
            return account

        await self._otp.verify_or_raise(account.email, OtpPurpose.EMAIL_VERIFY, code)
        account = await self._accounts.update_account(
            account.id, {"is_email_verified": True, "email_verified_at": self._clock()}
        )
        await self._audit.record("EMAIL_VERIFIED", account.id, context, {"email": account.email})
        return account

    async def send_sign_in_code(self, email: str, context: RequestContext | None = None) -> bool:
        email = normalize_email(email)
        if not email:
            raise AuthException("Email is required.", status_code=400)
        code = await self._otp.issue(email, OtpPurpose.GENERIC)
        sent = await send_best_effort("sign-in code", lambda: self._mailer.send_code(email, code))
        await self._audit.record("OTP_SIGN_IN_CODE_SENT", None, context, {"email": email, "delivered": sent})
        return sent

    async def sign_in_with_code(
        self,
        email: str,
        code: str,
        context: RequestContext | None = None,
    ) -> SessionIssued:
        """Passwordless sign-in. The first successful code for an unknown address creates an OTP user."""
        email = normalize_email(email)
        await self._otp.verify_or_raise(email, OtpPurpose.GENERIC, code)

        now = self._clock()
        account = await self._accounts.get_by_email(email)
        if account is None:
            try:
                account = await self._accounts.create_account(
                    Account(
                        id=None,
                        email=email,
                        name=email.split("@")[0],
                        is_otp_user=True,
                        is_email_verified=True,
                        email_verified_at=now,
                    )
                )
            except AccountExists:
                account = await self._accounts.get_by_email(email)
            await self._audit.record("OTP_USER_CREATED", account.id, context, {"email": email})

        if not account.is_active:
            raise AccountDisabled()
        if lockout.is_locked(account, now):
            raise AccountLocked(retry_after=lockout.retry_after_seconds(account, now))

        updates = {"last_login_at": now}
        if not account.is_email_verified:
            updates.update({"is_email_verified": True, "email_verified_at": now})
        account = await self._accounts.update_account(account.id, updates)

        issued = self._tokens.issue_token(account)
        await self._audit.record("OTP_SIGN_IN_SUCCESS", account.id, context, {"email": email})
        return SessionIssued(token=issued.token, account=account, expires_at=issued.expires_at)

    async def sign_in_with_google(self, id_token: str, context: RequestContext | None = None) -> SessionIssued:
        """
        Federated sign-in with a Google ID token.

        An unknown address becomes a verified account with no password. Lockout
        and deactivation apply exactly as they do to password logins.
        """
        if self._google is None:
            raise AuthException("Google sign-in not configured", status_code=500)
        try:
            identity = await self._google.verify(id_token)
        except AuthException as exc:
            if exc.status_code >= 500:
                raise
            await self._audit.record("GOOGLE_LOGIN_FAILED", None, context, {"reason": exc.message})
            raise AuthException("Google authentication failed", status_code=401) from exc

        email = normalize_email(identity.email)
        now = self._clock()
        account = await self._accounts.get_by_email(email)
        if account is None:
            name, _ = sanitize_text(identity.name or email.split("@")[0], NAME_MAX_LENGTH)
            try:
                account = await self._accounts.create_account(
                    Account(
                        id=None,
                        email=email,
                        name=name or email.split("@")[0],
                        oauth_provider="google",
                        is_email_verified=True,
                        email_verified_at=now,
                    )
                )
            except AccountExists:
                account = await self._accounts.get_by_email(email)
            else:
                await self._audit.record("GOOGLE_REGISTER_SUCCESS", account.id, context, {"email": email})

        if not account.is_active:
            await self._audit.record("LOGIN_BLOCKED_DEACTIVATED", account.id, context, {"email": email})
            raise AccountDisabled()
        if lockout.is_locked(account, now):
            await self._audit.record("LOGIN_BLOCKED_LOCKED", account.id, context, {"email": email})
            raise AccountLocked(retry_after=lockout.retry_after_seconds(account, now))

        updates = {"last_login_at": now}
        if not account.oauth_provider:
            updates["oauth_provider"] = "google"
        if not account.is_email_verified:
            updates.update({"is_email_verified": True, "email_verified_at": now})
        account = await self._accounts.update_account(account.id, updates)

        issued = self._tokens.issue_token(account)
        await self._audit.record("GOOGLE_LOGIN_SUCCESS", account.id, context, {"email": email})
        logger.info("Google sign-in for account %s", account.id)
        return SessionIssued(token=issued.token, account=account, expires_at=issued.expires_at)

    async def change_password(
        self,
        account_id: int,
        current_password: str | None,
        new_password: str,
        context: RequestContext | None = None,
    ) -> SessionIssued:
        """
        Replace the password of a signed-in account.

        Every outstanding session is revoked; the returned session belongs to the
        caller so they stay signed in on this device.
        """
        account = await self._accounts.get_by_id(account_id)
        if account is None:
            raise AccountNotFound()
        if account.hashed_password and not verify_password(current_password or "", account.hashed_password):
            await self._audit.record("PASSWORD_CHANGE_FAILED_BAD_PASSWORD", account.id, context, {})
            raise InvalidCredentials("Current password is incorrect.")

        account = await self._set_password(account, new_password, context, source="change")
        issued = self._tokens.issue_token(account)
        return SessionIssued(token=issued.token, account=account, expires_at=issued.expires_at)

    async def request_password_reset(
        self,
        email: str,
        captcha_token: str | None = None,
        context: RequestContext | None = None,
    ) -> None:
        """Mail a reset link when the account exists. The caller sees the same outcome either way."""
        context = context or RequestContext()
        if self._captcha is not None:
            result = await self._captcha.verify(captcha_token, context.ip)
            if not result.ok:
                await self._audit.record(
                    "CAPTCHA_FAILED", None, context, {"error_codes": result.error_codes, "context": "forgot_password"}
                )
                raise CaptchaFailed()

        email = normalize_email(email)
        account = await self._accounts.get_by_email(email) if email else None
        if account is None:
            await self._audit.record("PASSWORD_RESET_REQUESTED_NOUSER", None, context, {"email": email})
            return

        reset_token = generate_reset_token()
        await self._accounts.update_account(
            account.id,
            {
                "reset_password_token_hash": hash_reset_token(reset_token),
                "reset_password_expires_at": self._clock()
                + timedelta(minutes=self._policy.password_reset_expiry_minutes),
            },
        )
        reset_url = f"{self._frontend_url}/reset-password/{reset_token}"
        await send_best_effort("password reset link", lambda: self._mailer.send_password_reset(account.email, reset_url))
        await self._audit.record("PASSWORD_RESET_REQUESTED", account.id, context, {"email": account.email})

    async def reset_password(self, token: str, new_password: str, context: RequestContext | None = None) -> None:
        account = await self._accounts.get_by_reset_token_hash(hash_reset_token(token)) if token else None
        if (
            account is None
            or account.reset_password_expires_at is None
            or account.reset_password_expires_at <= self._clock()
        ):
            await self._audit.record("PASSWORD_RESET_FAILED_TOKEN_INVALID", None, context, {})
            raise AuthException("Invalid or expired password reset token.", status_code=400)

        await self._set_password(
            account,
            new_password,
            context,
            source="reset",
            extra_updates={"reset_password_token_hash": None, "reset_password_expires_at": None},
        )
        await self._audit.record("PASSWORD_RESET_SUCCESS", account.id, context, {"email": account.email})

    async def _set_password(
        self,
        account: Account,
        new_password: str,
        context: RequestContext | None,
        source: str,
        extra_updates: dict | None = None,
    ) -> Account:
        self._enforce_strength(new_password, account.name, account.email)
        if is_password_reused(new_password, account.hashed_password, account.password_history):
            await self._audit.record(
                "PASSWORD_REUSE_BLOCKED",
                account.id,
                context,
                {"email": account.email, "reason": "matched password history", "source": source},
            )
            raise PasswordReused()

        updates = {
            "hashed_password": hash_password(new_password, rounds=self._bcrypt_rounds),
            "password_history": rotate_password_history(
                account.hashed_password, account.password_history, self._policy.password_history_limit
            ),
            "password_changed_at": self._clock(),
            "is_otp_user": False,
        }
        updates.update(extra_updates or {})
        await self._accounts.update_account(account.id, updates)
        await self._tokens.revoke_all(account.id)

        await self._audit.record("PASSWORD_CHANGED", account.id, context, {"via": source})
        await self._audit.record("SESSIONS_REVOKED", account.id, context, {"reason": f"password_{source}"})
        logger.info("Password %s for account %s; sessions revoked", source, account.id)
        return await self._accounts.get_by_id(account.id)

    async def _issue_verification_code(self, account: Account) -> None:
        code = await self._otp.issue(
            account.email, OtpPurpose.EMAIL_VERIFY, expiry_minutes=EMAIL_VERIFY_EXPIRY_MINUTES
        )
        await send_best_effort(
            "verification code", lambda: self._mailer.send_verification_code(account.email, code)
        )

    @staticmethod
    def _enforce_strength(password: str, name: str | None, email: str | None) -> None:
        evaluation = evaluate_password(password, name=name, email=email)
        if not evaluation.ok:
            raise WeakPassword(evaluation.reason or "Password is too weak.")
