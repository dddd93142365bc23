# backend/meza/services/audit.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from meza.models.audit import AuditLog

logger = logging.getLogger(__name__)


def record_audit(
    db: Session,
    entity_type: str,
    entity_id: Any,
    action: str,
    *,
    tenant_id: Optional[uuid.UUID] = None,
    user_id: Optional[Any] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction (committed with it)."""
    row = AuditLog(
        tenant_id=tenant_id,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        action=action,
        user_id=str(user_id) if user_id is not None else None,
        details=dict(details or {}),
    )
    db.add(row)
    logger.debug("audit %s:%s %s", entity_type, entity_id, action)
    return row
