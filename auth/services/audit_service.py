"""Fire-and-forget audit logging."""

from __future__ import annotations

import logging
from typing import Any

from auth.interfaces.audit_sink import AuditSink
from auth.models import AuditRecord, RequestContext
from auth.redaction import redact_metadata

logger = logging.getLogger(__name__)


class AuditLogger:
    def __init__(self, sink: AuditSink) -> None:
        self._sink = sink

    async def record(
        self,
        action: str,
        account_id: int | None = None,
        context: RequestContext | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Redact and hand the record to the sink. Never raises into the caller's flow."""
        context = context or RequestContext()
        try:
            await self._sink.record(
                AuditRecord(
                    action=action,
                    account_id=account_id,
                    ip=context.ip,
                    user_agent=context.user_agent,
                    metadata=redact_metadata(metadata or {}),
                )
            )
        except Exception:
            logger.exception("Audit log failed for action %s", action)
