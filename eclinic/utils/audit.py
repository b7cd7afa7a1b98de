"""
Audit logging for appointment transitions and clinical writes.
"""
import json
import logging
from typing import Any, Optional

from eclinic.extensions import db
from eclinic.models import AuditLog

logger = logging.getLogger(__name__)


def log_audit(
    entity_type: str,
    action: str,
    user_id: Optional[int] = None,
    entity_id: Optional[Any] = None,
    details: Optional[dict] = None,
    commit: bool = True,
) -> None:
    """
    Append an audit log entry.

    With commit=False the entry joins the caller's transaction instead of
    committing on its own.
    """
    try:
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            action=action,
            user_id=user_id,
            details=json.dumps(details, default=str) if details else None,
        )
        db.session.add(entry)
        if commit:
            db.session.commit()
    except Exception as e:
        logger.warning("Audit log failed: %s", e)
        if commit:
            db.session.rollback()
