"""Auth dependency helpers."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, NoReturn

from fastapi import Cookie, Depends, Header, HTTPException, Request, Response

from auth.config import AuthConfig
from auth.exceptions import AuthException
from auth.interfaces.geo_resolver import GeoResolver
from auth.interfaces.rate_limiter import RateLimiter
from auth.models import Account, RequestContext, normalize_email
from auth.services.account_service import AccountService
from auth.services.audit_service import AuditLogger
from auth.services.captcha_service import TurnstileVerifier
from auth.services.device_registry import DeviceTrustRegistry
from auth.services.email_service import EmailService
from auth.services.geo_service import MaxMindGeoResolver, StaticGeoResolver
from auth.services.login_service import LoginService
from auth.services.oauth_service import GoogleIdTokenVerifier
from auth.services.otp_service import OtpService
from auth.services.token_authority import TokenAuthority
from auth.stores.memory_store import (
    MemoryAccountStore,
    MemoryAuditSink,
    MemoryDeviceStore,
    MemoryOtpStore,
    MemoryRateLimiter,
)

logger = logging.getLogger(__name__)

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}


@dataclass(frozen=True)
class AuthStores:
    accounts: Any
    otps: Any
    devices: Any
    audit: Any


_memory_stores = AuthStores(
    accounts=MemoryAccountStore(),
    otps=MemoryOtpStore(),
    devices=MemoryDeviceStore(),
    audit=MemoryAuditSink(),
)
_postgres_stores: AuthStores | None = None


def get_stores() -> AuthStores:
    """Get auth stores based on AUTH_STORE config."""
    if AuthConfig.AUTH_STORE == "postgres":
        global _postgres_stores
        if _postgres_stores is None:
            from auth.stores.postgres_store import (
                PostgresAccountStore,
                PostgresAuditSink,
                PostgresDeviceStore,
                PostgresOtpStore,
            )

            _postgres_stores = AuthStores(
                accounts=PostgresAccountStore(),
                otps=PostgresOtpStore(),
                devices=PostgresDeviceStore(),
                audit=PostgresAuditSink(),
            )
        return _postgres_stores
    # Memory store for development/testing
    return _memory_stores


_memory_rate_limiter = MemoryRateLimiter()


def get_rate_limiter() -> RateLimiter:
    return _memory_rate_limiter


@lru_cache
def get_geo_resolver() -> GeoResolver:
    """MaxMind lookups when a database is configured, otherwise local-only resolution."""
    if AuthConfig.GEOIP_DB_PATH:
        return MaxMindGeoResolver(AuthConfig.GEOIP_DB_PATH)
    return StaticGeoResolver()


def get_audit_logger(stores: AuthStores = Depends(get_stores)) -> AuditLogger:
    return AuditLogger(stores.audit)


def get_token_authority(stores: AuthStores = Depends(get_stores)) -> TokenAuthority:
    return TokenAuthority(stores.accounts)


def get_login_service(
    stores: AuthStores = Depends(get_stores),
    tokens: TokenAuthority = Depends(get_token_authority),
    geo_resolver: GeoResolver = Depends(get_geo_resolver),
) -> LoginService:
    return LoginService(
        account_store=stores.accounts,
        otp_service=OtpService(stores.otps),
        device_registry=DeviceTrustRegistry(stores.devices),
        token_authority=tokens,
        audit=AuditLogger(stores.audit),
        mailer=EmailService(),
        geo_resolver=geo_resolver,
        captcha=TurnstileVerifier() if AuthConfig.TURNSTILE_SECRET_KEY else None,
    )


def get_account_service(
    stores: AuthStores = Depends(get_stores),
    tokens: TokenAuthority = Depends(get_token_authority),
) -> AccountService:
    return AccountService(
        account_store=stores.accounts,
        otp_service=OtpService(stores.otps),
        token_authority=tokens,
        audit=AuditLogger(stores.audit),
        mailer=EmailService(),
        captcha=TurnstileVerifier() if AuthConfig.TURNSTILE_SECRET_KEY else None,
        google_verifier=GoogleIdTokenVerifier() if AuthConfig.GOOGLE_CLIENT_ID else None,
    )


def get_device_registry(stores: AuthStores = Depends(get_stores)) -> DeviceTrustRegistry:
    return DeviceTrustRegistry(stores.devices)


def _header(request: Request, *names: str) -> str:
    for name in names:
        value = request.headers.get(name)
        if value:
            return value.strip().strip('"')
    return ""


def get_request_context(request: Request) -> RequestContext:
    """Collect the client signals a login decision is based on."""
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else "")
    return RequestContext(
        ip=ip,
        user_agent=request.headers.get("user-agent", ""),
        accept_language=request.headers.get("accept-language", ""),
        platform=_header(request, "sec-ch-ua-platform"),
        country=_header(request, "x-user-country", "cf-ipcountry", "x-vercel-ip-country") or None,
        city=_header(request, "x-user-city", "cf-city", "x-vercel-ip-city") or None,
    )


@dataclass(frozen=True)
class RateLimitRule:
    scope: str
    limit: int
    window_seconds: int
    detail: str


LOGIN_RATE_LIMIT = RateLimitRule("login", AuthConfig.LOGIN_RATE_LIMIT_PER_MINUTE, 60, "Too many login attempts")
REGISTER_RATE_LIMIT = RateLimitRule(
    "register", AuthConfig.REGISTER_RATE_LIMIT_PER_HOUR, 3600, "Too many registration attempts"
)
OTP_SEND_RATE_LIMIT = RateLimitRule(
    "otp-send",
    AuthConfig.OTP_SEND_RATE_LIMIT,
    AuthConfig.OTP_RATE_LIMIT_WINDOW_SECONDS,
    "Too many code requests. Please try again later.",
)
EMAIL_CODE_RATE_LIMIT = RateLimitRule(
    "email-code",
    AuthConfig.OTP_SEND_RATE_LIMIT,
    AuthConfig.OTP_RATE_LIMIT_WINDOW_SECONDS,
    "Too many verification emails requested. Please try again later.",
)
OTP_VERIFY_RATE_LIMIT = RateLimitRule(
    "otp-verify",
    AuthConfig.OTP_VERIFY_RATE_LIMIT,
    AuthConfig.OTP_RATE_LIMIT_WINDOW_SECONDS,
    "Too many verification attempts. Please try again later.",
)


@dataclass(frozen=True)
class RateLimitGuard:
    """Returned by ``rate_limited`` so a route can also charge the email it was given."""

    limiter: RateLimiter
    rule: RateLimitRule

    async def hit(self, key: str) -> None:
        rule = self.rule
        if not await self.limiter.allow(f"{rule.scope}:{key}", rule.limit, rule.window_seconds):
            logger.warning("Rate limit %s exceeded for %s", rule.scope, key)
            raise HTTPException(
                status_code=429, detail=rule.detail, headers={"Retry-After": str(rule.window_seconds)}
            )

    async def hit_email(self, email: str | None) -> None:
        email = normalize_email(email)
        if email:
            await self.hit(f"email:{email}")


def rate_limited(rule: RateLimitRule):
    """Dependency factory charging one hit per client IP against ``rule``."""

    async def enforce(
        context: RequestContext = Depends(get_request_context),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> RateLimitGuard:
        guard = RateLimitGuard(limiter, rule)
        await guard.hit(f"ip:{context.ip or 'unknown'}")
        return guard

    return enforce


async def require_csrf(
    request: Request,
    csrf_cookie: str | None = Cookie(default=None, alias=AuthConfig.CSRF_COOKIE_NAME),
    csrf_header: str | None = Header(default=None, alias=AuthConfig.CSRF_HEADER_NAME),
    context: RequestContext = Depends(get_request_context),
    audit: AuditLogger = Depends(get_audit_logger),
) -> None:
    """
    Double-submit CSRF validation for state-changing requests on a session.

    Rules:
    - GET/HEAD/OPTIONS are exempt
    - Requests without a session cookie are exempt; browsers never attach a
      bearer token on their own
    - Otherwise the CSRF cookie and header must both be present and match
    """
    if request.method.upper() in SAFE_METHODS:
        return
    if not request.cookies.get(AuthConfig.SESSION_COOKIE_NAME):
        return
    if csrf_cookie and csrf_header and secrets.compare_digest(csrf_cookie.encode(), csrf_header.encode()):
        return
    await audit.record(
        "CSRF_FAILED",
        None,
        context,
        {"path": request.url.path, "reason": "missing" if not (csrf_cookie and csrf_header) else "mismatch"},
    )
    raise HTTPException(status_code=403, detail="CSRF validation failed")


def extract_session_token(
    request: Request,
    authorization: str | None = Header(default=None),
) -> str | None:
    token = request.cookies.get(AuthConfig.SESSION_COOKIE_NAME)
    if token:
        return token
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


async def get_current_account(
    token: str | None = Depends(extract_session_token),
    tokens: TokenAuthority = Depends(get_token_authority),
) -> Account:
    if not token:
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    try:
        return await tokens.authenticate(token)
    except AuthException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


def raise_http(exc: AuthException) -> NoReturn:
    """Convert a domain error into the HTTP error FastAPI renders."""
    headers = None
    retry_after = getattr(exc, "retry_after", None)
    if retry_after:
        headers = {"Retry-After": str(retry_after)}
    raise HTTPException(status_code=exc.status_code, detail=exc.message, headers=headers) from exc


def set_cookie(
    response: Response,
    key: str,
    value: str,
    max_age: int | None = None,
    http_only: bool | None = None,
) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=max_age,
        httponly=AuthConfig.COOKIE_HTTP_ONLY if http_only is None else http_only,
        secure=AuthConfig.COOKIE_SECURE,
        samesite=AuthConfig.COOKIE_SAMESITE,
        domain=AuthConfig.COOKIE_DOMAIN,
    )


def set_session_cookie(response: Response, token: str) -> None:
    set_cookie(
        response,
        AuthConfig.SESSION_COOKIE_NAME,
        token,
        max_age=AuthConfig.SESSION_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(AuthConfig.SESSION_COOKIE_NAME, domain=AuthConfig.COOKIE_DOMAIN)


def issue_csrf_token(response: Response) -> str:
    """Mint the double-submit token that accompanies a new session."""
    token = secrets.token_hex(24)
    set_cookie(
        response,
        AuthConfig.CSRF_COOKIE_NAME,
        token,
        max_age=AuthConfig.CSRF_TOKEN_EXPIRE_MINUTES * 60,
        http_only=False,
    )
    return token


def clear_csrf_cookie(response: Response) -> None:
    response.delete_cookie(AuthConfig.CSRF_COOKIE_NAME, domain=AuthConfig.COOKIE_DOMAIN)
