"""Audit logging helper."""

from __future__ import annotations

import uuid
from typing import Any

from flask_login import current_user

from registro_horas.extensions import db
from registro_horas.models import AuditLog


def log_audit(
    action: str,
    entity_type: str,
    entity_id: uuid.UUID | None,
    payload: dict[str, Any] | None = None,
) -> None:
    """Stage an audit row in the current session; the caller commits."""
    actor_user_id: uuid.UUID | None = None
    if getattr(current_user, "is_authenticated", False):
        try:
            actor_user_id = uuid.UUID(current_user.get_id())
        except ValueError:
            actor_user_id = None

    db.session.add(
        AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload_json=payload or {},
        )
    )
