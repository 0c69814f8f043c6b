"""
Audit logging models for security events.

AuditLog is append-only history. FailedPinAttempt is the separate, mutable
ledger the lockout policy counts against; clearing it never touches history.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

# Import Base from database module
from src.comecome_app.models.database import Base


class AuditLog(Base):
    """
    Audit log for security and domain events.

    Tracks:
    - PIN logins, failures, locks and unlocks
    - PIN changes and resets
    - User block/unblock
    - Guest token creation/revocation
    """

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    action = Column(String(50), nullable=False, index=True)  # PIN_LOGIN, PIN_FAILED, ...
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(Integer, nullable=True, index=True)
    actor_id = Column(Integer, nullable=True)  # null for unauthenticated failures

    details_json = Column(Text, nullable=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action={self.action}, entity={self.entity_type}:{self.entity_id}, time={self.timestamp})>"


class FailedPinAttempt(Base):
    """One row per failed PIN for a lockout-tracked user."""

    __tablename__ = "failed_pin_attempts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    attempted_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<FailedPinAttempt(user_id={self.user_id}, at={self.attempted_at})>"
