"""
Guest (clinician) access tokens.

A guardian issues a short-lived, revocable link granting read-only access to
one child's reports. Guest tokens are independent of PIN sessions.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from src.comecome_app.models.database import Child, GuestSession
from src.comecome_app.services.audit_service import AuditAction, AuditLogService
from src.comecome_app.services.errors import InvalidInputError, NotFoundError
from src.comecome_app.utils.time_utils import Clock, ensure_aware, format_utc, utc_now
from src.comecome_app.utils.token_utils import GUEST_TOKEN_BYTES, generate_token, mask_token

# 30 minutes, 2 hours, 12 hours, 1 day
VALID_DURATIONS = (1800, 7200, 43200, 86400)
LIST_LIMIT = 50


class GuestTokenService:
    def __init__(self, db: Session, audit: AuditLogService, clock: Clock = utc_now):
        self.db = db
        self.audit = audit
        self.clock = clock

    def create_token(self, child_id: int, expires_in: int, guardian_id: int) -> Dict[str, Any]:
        """
        Issue a guest token for a child.

        Args:
            child_id: Child whose reports the token exposes
            expires_in: Lifetime in seconds, one of VALID_DURATIONS
            guardian_id: Issuing guardian's user id

        Returns:
            Dict with token and expires_at
        """
        if expires_in not in VALID_DURATIONS:
            raise InvalidInputError(
                "Invalid expires_in. Must be: " + ", ".join(str(d) for d in VALID_DURATIONS)
            )

        child = self.db.query(Child).filter(Child.id == child_id).first()
        if child is None:
            raise NotFoundError("Child not found")

        now = self.clock()
        expires_at = now + timedelta(seconds=expires_in)
        token = generate_token(GUEST_TOKEN_BYTES)
        self.db.add(
            GuestSession(
                token=token,
                child_id=child_id,
                created_by=guardian_id,
                created_at=now,
                expires_at=expires_at,
            )
        )
        self.db.commit()

        self.audit.log_event(
            AuditAction.TOKEN_CREATED,
            "guest_sessions",
            None,
            guardian_id,
            {"child_id": child_id, "expires_at": format_utc(expires_at)},
        )
        logger.info(f"Guest token {mask_token(token)} issued for child {child_id}")
        return {"token": token, "expires_at": expires_at}

    def validate_token(self, token: Optional[str]) -> Optional[GuestSession]:
        """Live (unexpired, unrevoked) guest session for the token, else None."""
        if not token:
            return None
        return (
            self.db.query(GuestSession)
            .filter(
                GuestSession.token == token,
                GuestSession.expires_at > self.clock(),
                GuestSession.revoked_at.is_(None),
            )
            .first()
        )

    def revoke_token(self, token: str, guardian_id: int) -> None:
        session = self.db.query(GuestSession).filter(GuestSession.token == token).first()
        if session is None:
            raise NotFoundError("Token not found")
        if session.revoked_at is not None:
            logger.debug(f"Guest token {mask_token(token)} already revoked")
            return

        session.revoked_at = self.clock()
        self.db.commit()

        self.audit.log_event(
            AuditAction.TOKEN_REVOKED,
            "guest_sessions",
            None,
            guardian_id,
            {"token": mask_token(token), "child_id": session.child_id},
        )

    def list_tokens(self, guardian_id: int) -> List[Dict[str, Any]]:
        """The guardian's most recent tokens, newest first."""
        rows = (
            self.db.query(GuestSession, Child.name)
            .join(Child, GuestSession.child_id == Child.id)
            .filter(GuestSession.created_by == guardian_id)
            .order_by(GuestSession.created_at.desc(), GuestSession.id.desc())
            .limit(LIST_LIMIT)
            .all()
        )
        return [
            {
                "token": session.token,
                "child_id": session.child_id,
                "child_name": child_name,
                "expires_at": ensure_aware(session.expires_at),
                "created_at": ensure_aware(session.created_at),
                "is_revoked": session.revoked_at is not None,
            }
            for session, child_name in rows
        ]

    def cleanup(self) -> int:
        """Delete expired guest sessions that were never revoked."""
        deleted = (
            self.db.query(GuestSession)
            .filter(
                GuestSession.expires_at < self.clock(),
                GuestSession.revoked_at.is_(None),
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted
