"""CAPTCHA verifier interface."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class CaptchaResult:
    ok: bool
    error_codes: list[str] = field(default_factory=list)


class CaptchaVerifier(Protocol):
    async def verify(self, token: str | None, ip: str | None) -> CaptchaResult:
        ...
