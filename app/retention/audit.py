import json
from typing import Any

from sqlalchemy.orm import Session

from app.retention.models import AuditEvent


def record_event(
    s: Session,
    *,
    actor: str | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    run_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper. Caller commits.
    """
    ev = AuditEvent(
        run_id=run_id,
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True) if metadata else None,
    )
    s.add(ev)
    return ev
