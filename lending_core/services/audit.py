"""Best-effort audit recording shared by the services."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ..interfaces.audit_trail import AuditTrail
from ..models import AuditEvent, serialize

logger = logging.getLogger(__name__)


async def record_audit(
    trail: AuditTrail,
    event_type: str,
    entity_type: str,
    entity_id: str,
    at: datetime,
    details: dict[str, Any] | None = None,
    user_address: str | None = None,
) -> None:
    """Append an audit event; failures are logged, never raised."""
    event = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        created_at=at,
        details=serialize(details or {}),
        user_address=user_address,
    )
    try:
        await trail.record(event)
    except Exception as e:
        logger.error(
            "Failed to record audit event %s for %s %s: %s",
            event_type, entity_type, entity_id, e,
        )
