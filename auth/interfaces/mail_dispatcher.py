"""Mail dispatcher interface."""

from __future__ import annotations

from typing import Any, Protocol


class MailDispatcher(Protocol):
    async def send_code(self, email: str, code: str) -> bool:
        ...

    async def send_verification_code(self, email: str, code: str) -> bool:
        ...

    async def send_suspicious_login_notice(self, email: str, details: dict[str, Any]) -> bool:
        ...

    async def send_new_login_notice(self, email: str, details: dict[str, Any]) -> bool:
        ...

    async def send_password_reset(self, email: str, reset_url: str) -> bool:
        ...
