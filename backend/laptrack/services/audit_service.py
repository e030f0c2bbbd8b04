# Overview: Append-only audit trail for lifecycle actions.

from __future__ import annotations

import json
from typing import Any, Optional
from datetime import datetime

from ..extensions import db
from ..models import AuditEvent
from laptrack.time_utils import utcnow
"""
Audit trail invariants

- Append-only: no updates, no deletes.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back change leaves no event behind.
- occurred_at defaults to utcnow() when not supplied.
"""


def append_audit_event(
    *,
    action: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """Add an audit event to the current session (flushed, not committed)."""
    ev = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at or utcnow(),
        details=json.dumps(details, default=str, sort_keys=True) if details else None,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_audit_events(entity_type: str, entity_id: int) -> list[AuditEvent]:
    """Events for one entity, oldest first."""
    return (
        db.session.query(AuditEvent)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditEvent.occurred_at.asc(), AuditEvent.id.asc())
        .all()
    )
