"""Audit sink interface."""

from __future__ import annotations

from typing import Protocol

from auth.models import AuditRecord


class AuditSink(Protocol):
    async def record(self, record: AuditRecord) -> None:
        ...
