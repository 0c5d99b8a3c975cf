"""Audit trail protocol — append-only event log."""
from typing import Protocol

from ..models import AuditEvent


class AuditTrail(Protocol):
    async def record(self, event: AuditEvent) -> None: ...
