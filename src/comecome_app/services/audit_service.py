"""
Audit logging service for security events.

Appends write-once entries to the audit_log table and mirrors them to the
application log. Writing is best effort: a store failure is logged and
rolled back, never raised into the operation being audited.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.comecome_app.models.audit_log import AuditLog
from src.comecome_app.utils.time_utils import Clock, utc_now


class AuditAction(str, Enum):
    PIN_LOGIN = "PIN_LOGIN"
    PIN_FAILED = "PIN_FAILED"
    PIN_LOCKED = "PIN_LOCKED"
    PIN_UNLOCKED = "PIN_UNLOCKED"
    PIN_CHANGED = "PIN_CHANGED"
    PIN_SET = "PIN_SET"
    LOGOUT = "LOGOUT"
    UNLOCK_CODE_USED = "UNLOCK_CODE_USED"
    USER_BLOCKED = "USER_BLOCKED"
    USER_UNBLOCKED = "USER_UNBLOCKED"
    TOKEN_CREATED = "TOKEN_CREATED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    MAINTENANCE_CLEANUP = "MAINTENANCE_CLEANUP"


# Actions mirrored to the application log at WARNING instead of INFO
_WARNING_ACTIONS = {
    AuditAction.PIN_FAILED.value,
    AuditAction.PIN_LOCKED.value,
    AuditAction.UNLOCK_CODE_USED.value,
    AuditAction.USER_BLOCKED.value,
}


class AuditLogService:
    """Service for logging security events."""

    def __init__(self, db: Session, enabled: bool = True, clock: Clock = utc_now):
        self.db = db
        self.enabled = enabled
        self.clock = clock

    def log_event(
        self,
        action: Union[AuditAction, str],
        entity_type: str,
        entity_id: Optional[int] = None,
        actor_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Append an entry to the audit log.

        Args:
            action: AuditAction or any domain action string (MEAL_CREATED, ...)
            entity_type: Table/entity the action concerns (users, sessions, ...)
            entity_id: Entity primary key, if any
            actor_id: Acting user, None for unauthenticated requests
            details: Extra context, stored as JSON

        Returns:
            Created AuditLog entry, or None when disabled or the write failed
        """
        if not self.enabled:
            return None

        action_name = action.value if isinstance(action, AuditAction) else str(action)

        details_json = None
        if details:
            try:
                details_json = json.dumps(details, default=str)
            except (TypeError, ValueError) as e:
                logger.warning(f"Failed to serialize audit details for {action_name}: {e}")

        entry = AuditLog(
            timestamp=self.clock(),
            action=action_name,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            details_json=details_json,
        )

        try:
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Audit write failed for {action_name} on {entity_type}:{entity_id}: {e}")
            return None

        log_level = "warning" if action_name in _WARNING_ACTIONS else "info"
        getattr(logger, log_level)(
            f"AUDIT[{action_name}]: {entity_type}:{entity_id if entity_id is not None else 'N/A'} "
            f"| Actor: {actor_id if actor_id is not None else 'N/A'}"
        )
        return entry

    def entries_for(
        self,
        entity_type: str,
        entity_id: Optional[int] = None,
        action: Optional[Union[AuditAction, str]] = None,
    ) -> List[AuditLog]:
        """Entries for an entity, oldest first."""
        query = self.db.query(AuditLog).filter(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.filter(AuditLog.entity_id == entity_id)
        if action is not None:
            action_name = action.value if isinstance(action, AuditAction) else str(action)
            query = query.filter(AuditLog.action == action_name)
        return query.order_by(AuditLog.id.asc()).all()

    @staticmethod
    def parse_details(entry: AuditLog) -> Dict[str, Any]:
        if not entry.details_json:
            return {}
        return json.loads(entry.details_json)
