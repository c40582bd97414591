"""
Login orchestrator.

Drives a login attempt through the state machine

    AwaitingCredentials -> CredentialsVerified -> DeviceEvaluated
        -> [Require2FA -> OtpPending -> OtpVerified] -> SessionIssued

with terminal ``Rejected`` outcomes. Decisions come from the pure lockout and
risk modules; this class owns every persistence call and every audit record.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from auth.exceptions import ChallengeInvalid
from auth.fingerprint import build_device_fingerprint, normalize_ip, parse_user_agent
from auth.interfaces.account_store import AccountStore
from auth.interfaces.captcha_verifier import CaptchaVerifier
from auth.interfaces.geo_resolver import GeoResolver
from auth.interfaces.mail_dispatcher import MailDispatcher
from auth.models import Account, LoginSignals, OtpPurpose, RequestContext, normalize_email
from auth.policy import LoginPolicy
from auth.results import LoginOutcome, Rejected, RejectionKind, Require2FA, SessionIssued
from auth.security import burn_password_check, utc_now, verify_password
from auth.services import lockout
from auth.services.audit_service import AuditLogger
from auth.services.device_registry import DeviceTrustRegistry
from auth.services.email_service import send_best_effort
from auth.services.geo_service import StaticGeoResolver, resolve_geo
from auth.services.otp_service import OtpResult, OtpService
from auth.services.risk_scorer import (
    CLEAN,
    RiskAssessment,
    append_history,
    build_history_entry,
    register_suspicious,
    reset_suspicious,
    score_login,
)
from auth.services.token_authority import TokenAuthority

logger = logging.getLogger(__name__)

_OTP_REJECTIONS = {
    OtpResult.NOT_FOUND: RejectionKind.OTP_NOT_FOUND,
    OtpResult.EXPIRED: RejectionKind.OTP_EXPIRED,
    OtpResult.EXHAUSTED: RejectionKind.OTP_EXHAUSTED,
    OtpResult.MISMATCH: RejectionKind.OTP_MISMATCH,
}


class LoginService:
    def __init__(
        self,
        account_store: AccountStore,
        otp_service: OtpService,
        device_registry: DeviceTrustRegistry,
        token_authority: TokenAuthority,
        audit: AuditLogger,
        mailer: MailDispatcher,
        geo_resolver: GeoResolver | None = None,
        captcha: CaptchaVerifier | None = None,
        policy: LoginPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._accounts = account_store
        self._otp = otp_service
        self._devices = device_registry
        self._tokens = token_authority
        self._audit = audit
        self._mailer = mailer
        self._geo = geo_resolver or StaticGeoResolver()
        self._captcha = captcha
        self._policy = policy or LoginPolicy()
        self._clock = clock

    def resolve_signals(self, context: RequestContext) -> LoginSignals:
        ip = normalize_ip(context.ip)
        return LoginSignals(
            ip=ip,
            user_agent=context.user_agent,
            device_hash=build_device_fingerprint(ip, context.user_agent, context.accept_language, context.platform),
            geo=resolve_geo(self._geo, ip, context.country, context.city),
            client=parse_user_agent(context.user_agent, context.platform),
            accept_language=context.accept_language,
        )

    async def login(
        self,
        email: str,
        password: str,
        context: RequestContext | None = None,
        captcha_token: str | None = None,
    ) -> LoginOutcome:
        context = context or RequestContext()
        policy = self._policy
        now = self._clock()
        email = normalize_email(email)

        account = await self._accounts.get_by_email(email) if email else None
        if account is None:
            burn_password_check(password)
            await self._audit.record("LOGIN_FAILED_NOUSER", None, context, {"email": email})
            return Rejected(RejectionKind.INVALID)

        signals = self.resolve_signals(context)

        if not account.is_active:
            await self._record_attempt(account, signals, now, "disabled")
            await self._audit.record("LOGIN_BLOCKED_DEACTIVATED", account.id, context, {"email": email})
            return Rejected(RejectionKind.DISABLED)

        if lockout.is_locked(account, now):
            burn_password_check(password)
            retry_after = lockout.retry_after_seconds(account, now)
            await self._record_attempt(account, signals, now, "locked")
            await self._audit.record(
                "LOGIN_BLOCKED_LOCKED",
                account.id,
                context,
                {"email": email, "lock_until": account.lock_until.isoformat(), "remaining_seconds": retry_after},
            )
            return Rejected(RejectionKind.LOCKED, retry_after=retry_after)

        if self._captcha is not None and account.failed_login_attempts >= policy.captcha_after_failed_attempts:
            captcha = await self._captcha.verify(captcha_token, signals.ip)
            if not captcha.ok:
                await self._record_attempt(account, signals, now, "captcha_failed")
                await self._audit.record(
                    "CAPTCHA_FAILED",
                    account.id,
                    context,
                    {"error_codes": captcha.error_codes, "context": "login", "email": email},
                )
                return Rejected(RejectionKind.CAPTCHA_FAILED)

        if account.hashed_password:
            password_ok = verify_password(password or "", account.hashed_password)
        else:
            burn_password_check(password)
            password_ok = False

        if not password_ok:
            return await self._reject_bad_password(account, signals, now, context)

        # CredentialsVerified
        if policy.require_verified_email and not account.is_email_verified:
            await self._record_attempt(account, signals, now, "email_unverified")
            await self._audit.record("LOGIN_BLOCKED_EMAIL_UNVERIFIED", account.id, context, {"email": email})
            return Rejected(RejectionKind.EMAIL_UNVERIFIED)

        if self._password_expired(account, now):
            await self._record_attempt(account, signals, now, "password_expired")
            await self._audit.record("LOGIN_BLOCKED_PASSWORD_EXPIRED", account.id, context, {"email": email})
            return Rejected(RejectionKind.PASSWORD_EXPIRED)

        # DeviceEvaluated
        is_new_device = not await self._devices.is_trusted(account.id, signals.device_hash)
        assessment = score_login(account, signals, is_new_device, policy)
        needs_2fa = (
            policy.always_require_2fa
            or assessment.suspicious
            or (is_new_device and policy.step_up_on_new_device)
        )

        entry = build_history_entry(signals, now, "challenge_issued" if needs_2fa else "success", assessment)
        account.login_history = append_history(account.login_history, entry, policy.login_history_limit)

        escalation = register_suspicious(account, now, policy) if assessment.suspicious else None
        if escalation and escalation.locked:
            entry = replace(entry, outcome="escalation_locked")
        await self._accounts.append_login_history(account.id, entry, policy.login_history_limit)

        if escalation:
            await self._accounts.update_account(account.id, escalation.updates)
            await self._notify_suspicious(account, signals, assessment, context)
            if escalation.locked:
                logger.warning("Account %s hard-locked after repeated suspicious logins", account.id)
                await self._audit.record(
                    "LOGIN_SUSPICIOUS_ESCALATION_LOCK",
                    account.id,
                    context,
                    {
                        "email": email,
                        "lock_until": escalation.lock_until.isoformat(),
                        "suspicious_login_count": escalation.updates["suspicious_login_count"],
                    },
                )
                return Rejected(
                    RejectionKind.LOCKED,
                    retry_after=lockout.retry_after_seconds(replace(account, lock_until=escalation.lock_until), now),
                )

        if needs_2fa:
            return await self._start_step_up(account, signals, assessment, context)

        return await self._complete(account, signals, assessment, context, "LOGIN_SUCCESS", is_new_device)

    async def verify_login_2fa(
        self,
        challenge_token: str,
        otp: str,
        context: RequestContext | None = None,
    ) -> SessionIssued | Rejected:
        context = context or RequestContext()
        try:
            challenge = self._tokens.decode_challenge(challenge_token)
        except ChallengeInvalid:
            await self._audit.record("LOGIN_2FA_FAILED_CHALLENGE_INVALID", None, context, {})
            return Rejected(RejectionKind.CHALLENGE_INVALID)

        account = await self._accounts.get_by_id(challenge.account_id)
        if account is None:
            await self._audit.record(
                "LOGIN_2FA_FAILED_USER_NOT_FOUND", None, context, {"account_id": challenge.account_id}
            )
            return Rejected(RejectionKind.CHALLENGE_INVALID)

        if not account.is_active:
            await self._audit.record("LOGIN_BLOCKED_DEACTIVATED", account.id, context, {"email": account.email})
            return Rejected(RejectionKind.DISABLED)

        now = self._clock()
        if lockout.is_locked(account, now):
            retry_after = lockout.retry_after_seconds(account, now)
            await self._audit.record(
                "LOGIN_2FA_BLOCKED_LOCKED", account.id, context, {"email": account.email, "remaining_seconds": retry_after}
            )
            return Rejected(RejectionKind.LOCKED, retry_after=retry_after)

        result = await self._otp.verify(account.email, OtpPurpose.LOGIN_2FA, otp, correlation_id=challenge.jti)
        if result is not OtpResult.ACCEPTED:
            await self._audit.record(
                f"LOGIN_2FA_FAILED_OTP_{result.name}", account.id, context, {"email": account.email}
            )
            return Rejected(_OTP_REJECTIONS[result])

        # OtpVerified
        assessment = RiskAssessment(
            suspicious=challenge.suspicious, risk_score=challenge.risk_score, reasons=challenge.reasons
        )
        is_new_device = not await self._devices.is_trusted(account.id, challenge.signals.device_hash)
        return await self._complete(account, challenge.signals, assessment, context, "LOGIN_2FA_SUCCESS", is_new_device)

    async def logout(self, account_id: int | None, context: RequestContext | None = None) -> None:
        await self._audit.record("LOGOUT", account_id, context, {})

    async def logout_all_devices(
        self,
        account_id: int,
        context: RequestContext | None = None,
        revoke_devices: bool = False,
    ) -> None:
        """Invalidate every outstanding session token by bumping the account's token version."""
        await self._tokens.revoke_all(account_id)
        revoked = await self._devices.revoke_all(account_id) if revoke_devices else 0
        logger.info("Revoked all sessions for account %s", account_id)
        await self._audit.record("LOGOUT_ALL_DEVICES", account_id, context, {"revoked_devices": revoked})

    async def _reject_bad_password(
        self,
        account: Account,
        signals: LoginSignals,
        now: datetime,
        context: RequestContext,
    ) -> Rejected:
        attempts = await self._accounts.increment_failed_attempts(account.id)
        decision = lockout.register_failure(account, attempts, now, self._policy)
        if decision.updates:
            await self._accounts.update_account(account.id, decision.updates)
        await self._record_attempt(account, signals, now, "invalid_credentials")
        await self._audit.record(
            "LOGIN_FAILED_BAD_PASSWORD",
            account.id,
            context,
            {"email": account.email, "failed_login_attempts": attempts},
        )
        if not decision.locked_now:
            return Rejected(RejectionKind.INVALID)

        retry_after = lockout.retry_after_seconds(replace(account, lock_until=decision.lock_until), now)
        logger.warning("Account %s locked after repeated failed logins", account.id)
        await self._audit.record(
            "LOGIN_BRUTE_FORCE_LOCK",
            account.id,
            context,
            {"email": account.email, "lock_until": decision.lock_until.isoformat(), "remaining_seconds": retry_after},
        )
        return Rejected(RejectionKind.LOCKED, retry_after=retry_after)

    async def _start_step_up(
        self,
        account: Account,
        signals: LoginSignals,
        assessment: RiskAssessment,
        context: RequestContext,
    ) -> Require2FA:
        challenge = self._tokens.issue_challenge(
            account, signals, assessment.suspicious, assessment.risk_score, assessment.reasons
        )
        code = await self._otp.issue(account.email, OtpPurpose.LOGIN_2FA, correlation_id=challenge.jti)
        code_sent = await send_best_effort("login code", lambda: self._mailer.send_code(account.email, code))
        if not code_sent:
            await self._audit.record("LOGIN_2FA_CHALLENGE_SEND_FAILED", account.id, context, {"email": account.email})

        await self._audit.record(
            "LOGIN_2FA_CHALLENGE_SENT",
            account.id,
            context,
            self._risk_metadata(account, signals, assessment),
        )
        return Require2FA(
            challenge_token=challenge.token,
            expires_at=challenge.expires_at,
            suspicious=assessment.suspicious,
            risk_score=assessment.risk_score,
            reasons=list(assessment.reasons),
            code_sent=code_sent,
        )

    async def _complete(
        self,
        account: Account,
        signals: LoginSignals,
        assessment: RiskAssessment,
        context: RequestContext,
        action: str,
        is_new_device: bool,
    ) -> SessionIssued:
        now = self._clock()
        updates: dict[str, Any] = lockout.register_success()
        updates.update(
            {
                "last_login_at": now,
                "last_login_ip": signals.ip or account.last_login_ip,
                "last_login_user_agent": signals.user_agent or account.last_login_user_agent,
                "last_login_device_hash": signals.device_hash,
                "last_login_country": signals.geo.country,
                "last_login_city": signals.geo.city,
            }
        )
        if not assessment.suspicious:
            updates.update(reset_suspicious())
        account = await self._accounts.update_account(account.id, updates)

        device = await self._devices.record_login(account.id, signals)
        if device.is_new_device:
            details = {
                "ip": signals.ip,
                "country": signals.geo.country,
                "city": signals.geo.city,
                "browser": signals.client.browser,
                "os": signals.client.os,
                "time": now.isoformat(),
            }
            await send_best_effort(
                "new login notice", lambda: self._mailer.send_new_login_notice(account.email, details)
            )

        issued = self._tokens.issue_token(account)
        metadata = self._risk_metadata(account, signals, assessment)
        metadata["new_device"] = device.is_new_device
        await self._audit.record(action, account.id, context, metadata)
        logger.info("Session issued for account %s", account.id)
        return SessionIssued(
            token=issued.token,
            account=account,
            expires_at=issued.expires_at,
            suspicious=assessment.suspicious,
            risk_score=assessment.risk_score,
            reasons=list(assessment.reasons),
            is_new_device=device.is_new_device or is_new_device,
        )

    async def _record_attempt(self, account: Account, signals: LoginSignals, now: datetime, outcome: str) -> None:
        entry = build_history_entry(signals, now, outcome, CLEAN)
        await self._accounts.append_login_history(account.id, entry, self._policy.login_history_limit)

    async def _notify_suspicious(
        self,
        account: Account,
        signals: LoginSignals,
        assessment: RiskAssessment,
        context: RequestContext,
    ) -> None:
        logger.warning(
            "Suspicious login for account %s (score %s): %s", account.id, assessment.risk_score, assessment.reason
        )
        await self._audit.record(
            "LOGIN_SUSPICIOUS", account.id, context, self._risk_metadata(account, signals, assessment)
        )
        details = {
            "ip": signals.ip,
            "user_agent": signals.user_agent,
            "country": signals.geo.country,
            "city": signals.geo.city,
            "reasons": list(assessment.reasons),
            "risk_score": assessment.risk_score,
        }
        await send_best_effort(
            "suspicious login notice", lambda: self._mailer.send_suspicious_login_notice(account.email, details)
        )

    def _password_expired(self, account: Account, now: datetime) -> bool:
        max_age = self._policy.password_max_age_days
        if not max_age or not account.password_changed_at:
            return False
        return now - account.password_changed_at > timedelta(days=max_age)

    @staticmethod
    def _risk_metadata(account: Account, signals: LoginSignals, assessment: RiskAssessment) -> dict[str, Any]:
        return {
            "email": account.email,
            "suspicious_login": assessment.suspicious,
            "risk_score": assessment.risk_score,
            "risk_reasons": list(assessment.reasons),
            "country": signals.geo.country,
            "city": signals.geo.city,
        }

