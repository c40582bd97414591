"""Session and login-challenge token authority."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from auth.config import AuthConfig
from auth.exceptions import AccountDisabled, AuthException, ChallengeInvalid, InvalidToken, TokenVersionMismatch
from auth.fingerprint import parse_user_agent
from auth.interfaces.account_store import AccountStore
from auth.models import Account, GeoLocation, LoginSignals, UserAgentInfo
from auth.policy import LoginPolicy
from auth.security import decode_token, encode_token, utc_now

logger = logging.getLogger(__name__)

SESSION_TOKEN_TYPE = "access"
CHALLENGE_TOKEN_TYPE = "login_challenge"


@dataclass(frozen=True)
class IssuedToken:
    token: str
    jti: str
    expires_at: datetime


@dataclass(frozen=True)
class LoginChallenge:
    """Decoded login challenge: the signals captured when the password was verified."""

    account_id: int
    jti: str
    signals: LoginSignals
    suspicious: bool
    risk_score: int
    reasons: list[str]


class TokenAuthority:
    def __init__(
        self,
        account_store: AccountStore,
        policy: LoginPolicy | None = None,
        session_secret: str | None = None,
        challenge_secret: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._accounts = account_store
        self._policy = policy or LoginPolicy()
        self._session_secret = session_secret or AuthConfig.JWT_SECRET
        self._challenge_secret = challenge_secret or AuthConfig.LOGIN_CHALLENGE_SECRET
        self._clock = clock
        if self._session_secret == self._challenge_secret:
            raise ValueError("Session and login challenge tokens must use different secrets")

    def issue_token(self, account: Account) -> IssuedToken:
        now = self._clock()
        expire = now + timedelta(days=self._policy.session_expire_days)
        jti = uuid4().hex
        payload: dict[str, Any] = {
            "sub": str(account.id),
            "role": account.role,
            "tv": account.token_version,
            "type": SESSION_TOKEN_TYPE,
            "iat": now,
            "exp": expire,
            "jti": jti,
        }
        return IssuedToken(token=encode_token(payload, self._session_secret), jti=jti, expires_at=expire)

    def decode_session(self, token: str) -> dict[str, Any]:
        payload = decode_token(token, self._session_secret, now=self._clock())
        if payload.get("type") != SESSION_TOKEN_TYPE:
            raise InvalidToken()
        if not payload.get("sub") or not isinstance(payload.get("tv"), int):
            raise InvalidToken("Invalid token payload")
        return payload

    async def authenticate(self, token: str) -> Account:
        """Resolve a session token to its account, rejecting tokens from an older token version."""
        payload = self.decode_session(token)
        try:
            account_id = int(payload["sub"])
        except (TypeError, ValueError) as exc:
            raise InvalidToken("Invalid token payload") from exc

        account = await self._accounts.get_by_id(account_id)
        if not account:
            raise InvalidToken("Not authorized, account not found")
        if not account.is_active:
            raise AccountDisabled()
        if payload["tv"] != account.token_version:
            logger.info("Rejected stale session token for account %s", account_id)
            raise TokenVersionMismatch()
        return account

    async def revoke_all(self, account_id: int) -> int:
        return await self._accounts.increment_token_version(account_id)

    def issue_challenge(
        self,
        account: Account,
        signals: LoginSignals,
        suspicious: bool,
        risk_score: int,
        reasons: list[str],
    ) -> IssuedToken:
        now = self._clock()
        expire = now + timedelta(minutes=self._policy.challenge_expire_minutes)
        jti = uuid4().hex
        payload: dict[str, Any] = {
            "sub": str(account.id),
            "type": CHALLENGE_TOKEN_TYPE,
            "iat": now,
            "exp": expire,
            "jti": jti,
            "ip": signals.ip,
            "ua": signals.user_agent,
            "fp": signals.device_hash,
            "lang": signals.accept_language,
            "platform": signals.client.platform,
            "country": signals.geo.country,
            "city": signals.geo.city,
            "sus": suspicious,
            "risk": risk_score,
            "reasons": reasons,
        }
        return IssuedToken(token=encode_token(payload, self._challenge_secret), jti=jti, expires_at=expire)

    def decode_challenge(self, token: str) -> LoginChallenge:
        try:
            payload = decode_token(token, self._challenge_secret, now=self._clock())
        except AuthException as exc:
            raise ChallengeInvalid() from exc

        if payload.get("type") != CHALLENGE_TOKEN_TYPE or not payload.get("sub") or not payload.get("jti"):
            raise ChallengeInvalid("Invalid login challenge token.")
        try:
            account_id = int(payload["sub"])
        except (TypeError, ValueError) as exc:
            raise ChallengeInvalid("Invalid login challenge token.") from exc

        user_agent = payload.get("ua") or ""
        platform = payload.get("platform") or ""
        signals = LoginSignals(
            ip=payload.get("ip") or "",
            user_agent=user_agent,
            device_hash=payload.get("fp") or "",
            geo=GeoLocation(country=payload.get("country") or "UNKNOWN", city=payload.get("city") or "UNKNOWN"),
            client=parse_user_agent(user_agent, platform) if user_agent else UserAgentInfo(platform=platform),
            accept_language=payload.get("lang") or "",
        )
        return LoginChallenge(
            account_id=account_id,
            jti=payload["jti"],
            signals=signals,
            suspicious=bool(payload.get("sus")),
            risk_score=int(payload.get("risk") or 0),
            reasons=list(payload.get("reasons") or []),
        )
