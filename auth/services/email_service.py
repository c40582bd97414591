"""Email delivery service."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from auth.config import AuthConfig

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


class EmailService:
    """Mail dispatcher backed by the Resend HTTP API. Every send is best-effort."""

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or AuthConfig.RESEND_API_KEY
        self._timeout = timeout
        self._transport = transport

    async def _send(self, email: str, subject: str, html: str) -> bool:
        if AuthConfig.EMAIL_PROVIDER != "resend":
            return False
        if not self._api_key:
            logger.warning("RESEND_API_KEY not configured; skipping '%s' email", subject)
            return False

        payload = {
            "from": f"{AuthConfig.EMAIL_FROM_NAME} <{AuthConfig.EMAIL_FROM_ADDRESS}>",
            "to": [email],
            "subject": subject,
            "html": html,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(RESEND_URL, headers=headers, json=payload)
        return response.status_code == 200

    async def send_code(self, email: str, code: str) -> bool:
        return await self._send(
            email,
            "Your login verification code",
            f"<p>Your login verification code is <strong>{code}</strong>. It expires in "
            f"{AuthConfig.OTP_EXPIRY_MINUTES} minutes.</p>",
        )

    async def send_verification_code(self, email: str, code: str) -> bool:
        return await self._send(
            email,
            "Verify your email",
            f"<p>Your email verification code is <strong>{code}</strong>.</p>",
        )

    async def send_suspicious_login_notice(self, email: str, details: dict[str, Any]) -> bool:
        reasons = "".join(f"<li>{reason}</li>" for reason in details.get("reasons", []))
        return await self._send(
            email,
            "Suspicious login attempt on your account",
            "<p>We noticed a login that looks unusual.</p>"
            f"<p>IP: {details.get('ip', '')}<br>Location: {details.get('city', '')}, "
            f"{details.get('country', '')}<br>Risk score: {details.get('risk_score', 0)}</p>"
            f"<ul>{reasons}</ul>"
            "<p>If this wasn't you, reset your password and log out of all devices.</p>",
        )

    async def send_new_login_notice(self, email: str, details: dict[str, Any]) -> bool:
        return await self._send(
            email,
            "New device signed in",
            f"<p>A new {details.get('browser', 'browser')} on {details.get('os', 'an unknown OS')} "
            f"signed in from {details.get('city', '')}, {details.get('country', '')} "
            f"({details.get('ip', '')}).</p>",
        )

    async def send_password_reset(self, email: str, reset_url: str) -> bool:
        return await self._send(
            email,
            "Reset your password",
            f'<p>Reset your password using <a href="{reset_url}">this link</a>. '
            f"It expires in {AuthConfig.PASSWORD_RESET_EXPIRY_MINUTES} minutes.</p>",
        )


async def send_best_effort(label: str, send: Callable[[], Awaitable[bool]]) -> bool:
    """Run one dispatcher call; delivery failures are logged and reported as ``False``."""
    try:
        sent = await send()
    except Exception:
        logger.warning("Failed to send %s", label, exc_info=True)
        return False
    if not sent:
        logger.warning("Mail dispatcher did not deliver %s", label)
    return bool(sent)
