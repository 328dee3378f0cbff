"""Audit trail helper shared by purchasing and role administration."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ..models import AuditEvent
from ..permissions import Subject


def record_audit_event(
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id: UUID,
    entity_name: str | None,
    subject: Subject | None,
    details: dict[str, Any] | None = None,
) -> AuditEvent:
    """Stage an audit row in the caller's transaction (no commit)."""
    event = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        user_id=subject.id if subject is not None else None,
        user_name=(subject.name or subject.email) if subject is not None else None,
        details=details or {},
    )
    db.add(event)
    return event
