# Overview: Append-only audit sink for settlement actions.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import AuditEvent
from hirepay.time_utils import utcnow
"""
Audit invariants (authoritative)

- Append-only: events are never updated or deleted.
- No domain logic here.
- Events are written inside the same DB transaction as the change they record.
"""


def append_audit_event(
    *,
    business_id: int,
    action: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    metadata: Optional[dict] = None,
    occurred_at: Optional[datetime] = None,
) -> AuditEvent:
    ev = AuditEvent(
        business_id=business_id,
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=metadata or None,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_audit_events(
    *,
    business_id: int,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 200,
) -> list[AuditEvent]:
    q = db.session.query(AuditEvent).filter(AuditEvent.business_id == business_id)
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditEvent.entity_id == entity_id)
    return q.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc()).limit(limit).all()
