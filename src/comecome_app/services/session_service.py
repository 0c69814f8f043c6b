"""
Login session management.

Tokens are 256-bit random hex strings stored as the primary key of the
sessions table. Validation slides the expiry forward: every successful
check pushes expires_at to now + SESSION_LIFETIME. Expired rows are
ignored until the cleanup sweep removes them. Several sessions per user
are allowed.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.comecome_app.models.database import AuthSession, User
from src.comecome_app.services.errors import AuthError
from src.comecome_app.utils.time_utils import Clock, ensure_aware, utc_now
from src.comecome_app.utils.token_utils import SESSION_TOKEN_BYTES, generate_token, mask_token

MAX_TOKEN_ATTEMPTS = 3


@dataclass
class SessionInfo:
    token: str
    user_id: int
    role: str
    locale: Optional[str]
    expires_at: datetime


class SessionService:
    """Issue, validate and delete session tokens."""

    def __init__(self, db: Session, session_lifetime: int, clock: Clock = utc_now):
        self.db = db
        self.session_lifetime = session_lifetime
        self.clock = clock

    def create_session(self, user_id: int) -> str:
        """
        Create a session row and return its token.

        A token collision (unique key violation) is retried with a fresh token.
        """
        for attempt in range(1, MAX_TOKEN_ATTEMPTS + 1):
            now = self.clock()
            token = generate_token(SESSION_TOKEN_BYTES)
            self.db.add(
                AuthSession(
                    token=token,
                    user_id=user_id,
                    created_at=now,
                    expires_at=now + timedelta(seconds=self.session_lifetime),
                )
            )
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(f"Session token collision on attempt {attempt}; regenerating")
                continue
            logger.debug(f"Session {mask_token(token)} created for user {user_id}")
            return token

        logger.error(f"Could not create a unique session token for user {user_id}")
        raise AuthError("Could not create session")

    def validate_session(self, token: Optional[str]) -> Optional[SessionInfo]:
        """
        Look up a live session and extend it.

        Returns:
            SessionInfo with the new expiry, or None when the token is unknown or expired
        """
        if not token:
            return None

        now = self.clock()
        row = (
            self.db.query(AuthSession, User.role, User.locale)
            .join(User, AuthSession.user_id == User.id)
            .filter(AuthSession.token == token, AuthSession.expires_at > now)
            .first()
        )
        if row is None:
            return None

        session, role, locale = row
        new_expiry = now + timedelta(seconds=self.session_lifetime)
        session.expires_at = new_expiry
        self.db.commit()

        return SessionInfo(
            token=token,
            user_id=session.user_id,
            role=role,
            locale=locale,
            expires_at=ensure_aware(new_expiry),
        )

    def delete_session(self, token: Optional[str]) -> Optional[int]:
        """
        Delete a session by token.

        Returns:
            The owning user id, or None if no such session existed
        """
        if not token:
            return None
        session = self.db.query(AuthSession).filter(AuthSession.token == token).first()
        if session is None:
            return None
        user_id = session.user_id
        self.db.delete(session)
        self.db.commit()
        return user_id

    def delete_user_sessions(self, user_id: int) -> int:
        deleted = (
            self.db.query(AuthSession)
            .filter(AuthSession.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def cleanup(self) -> int:
        """Remove sessions whose expiry has passed."""
        deleted = (
            self.db.query(AuthSession)
            .filter(AuthSession.expires_at < self.clock())
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted:
            logger.info(f"Removed {deleted} expired sessions")
        return deleted
