from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic_core import to_jsonable_python
from sqlalchemy.orm import Session

from autoparts.app.models.audit import AuditLog


def log_action(
    db: Session,
    *,
    user_id: UUID | None,
    action: str,
    resource_type: str,
    resource_id: str,
    changes: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction.

    Decimal, UUID, date and enum values in *changes* are stored in their JSON
    form. Nothing is flushed or committed here, so the entry lands or rolls
    back together with the change it describes.
    """
    entry = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        changes=to_jsonable_python(changes) if changes is not None else None,
        ip_address=ip_address,
    )
    db.add(entry)
    return entry


def audit_trail(db: Session, resource_type: str, resource_id: str) -> list[AuditLog]:
    """Entries for one document or product, oldest first."""
    return (
        db.query(AuditLog)
        .filter(AuditLog.resource_type == resource_type, AuditLog.resource_id == resource_id)
        .order_by(AuditLog.created_at, AuditLog.id)
        .all()
    )
