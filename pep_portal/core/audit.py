import uuid
from typing import Any

from sqlalchemy.orm import Session

from pep_portal.models.audit_event import AuditEvent
from pep_portal.schemas.auth import TokenClaims


def _actor_id(actor: TokenClaims | None) -> uuid.UUID | None:
    if actor is None:
        return None
    try:
        return uuid.UUID(actor.employee_id)
    except ValueError:
        return None


def log_event(
    *,
    db: Session,
    actor: TokenClaims | None,
    action: str,
    entity_type: str,
    entity_id,
    metadata: dict[str, Any] | None = None,
):
    event = AuditEvent(
        actor_employee_id=_actor_id(actor),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        event_metadata=metadata,
    )
    db.add(event)
