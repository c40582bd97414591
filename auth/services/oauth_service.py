"""Google sign-in service."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from auth.config import AuthConfig
from auth.exceptions import AuthException

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = {"accounts.google.com", "https://accounts.google.com"}


@dataclass(frozen=True)
class GoogleIdentity:
    subject: str
    email: str
    name: str | None = None


class GoogleIdTokenVerifier:
    """
    Checks a Google ID token (the ``credential`` handed to the browser by
    Google Identity Services) against Google's tokeninfo endpoint.

    The token is accepted only when it was minted for our client id by a Google
    issuer and carries a verified email address.
    """

    def __init__(
        self,
        client_id: str | None = None,
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client_id = client_id or AuthConfig.GOOGLE_CLIENT_ID
        self._timeout = timeout
        self._transport = transport

    async def verify(self, id_token: str) -> GoogleIdentity:
        if not self._client_id:
            raise AuthException("Google sign-in not configured", status_code=500)
        if not id_token:
            raise AuthException("Google token is required", status_code=400)

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(AuthConfig.GOOGLE_TOKENINFO_URL, params={"id_token": id_token})
            claims = response.json() if response.status_code == 200 else None
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Google token verification request failed", exc_info=True)
            raise AuthException("Failed to verify Google token", status_code=401) from exc

        if not claims:
            raise AuthException("Invalid Google token", status_code=401)
        if claims.get("aud") != self._client_id:
            raise AuthException("Google token was issued for another client", status_code=401)
        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise AuthException("Google token has an unexpected issuer", status_code=401)

        email = claims.get("email")
        if not email:
            raise AuthException("Google account missing email", status_code=400)
        if str(claims.get("email_verified", "")).lower() != "true":
            raise AuthException("Google email is not verified", status_code=401)

        return GoogleIdentity(subject=claims.get("sub", ""), email=email, name=claims.get("name"))
