"""Cloudflare Turnstile CAPTCHA verification."""

from __future__ import annotations

import logging

import httpx

from auth.config import AuthConfig
from auth.interfaces.captcha_verifier import CaptchaResult

logger = logging.getLogger(__name__)


class TurnstileVerifier:
    def __init__(
        self,
        secret_key: str | None = None,
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._secret_key = secret_key or AuthConfig.TURNSTILE_SECRET_KEY
        self._timeout = timeout
        self._transport = transport

    async def verify(self, token: str | None, ip: str | None) -> CaptchaResult:
        if not self._secret_key or not token:
            return CaptchaResult(ok=False, error_codes=["missing_input"])

        data = {"secret": self._secret_key, "response": token}
        if ip:
            data["remoteip"] = ip

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(AuthConfig.TURNSTILE_VERIFY_URL, data=data)
            body = response.json()
        except (httpx.HTTPError, ValueError):
            logger.warning("Turnstile verification request failed", exc_info=True)
            return CaptchaResult(ok=False, error_codes=["request_failed"])

        if not body.get("success"):
            return CaptchaResult(ok=False, error_codes=list(body.get("error-codes") or []))
        return CaptchaResult(ok=True)
