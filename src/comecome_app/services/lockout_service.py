"""
Account lockout service for failed PIN protection.

Guardians are locked for PIN_LOCKOUT_DURATION after PIN_MAX_ATTEMPTS
failures inside the same window. Children are never locked: their failures
are audited but not counted. Which role gets which treatment is declared
once in ``LockoutService.policy_for``.

Locks are cleared lazily by the next login attempt after they expire.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from src.comecome_app.models.audit_log import FailedPinAttempt
from src.comecome_app.models.database import User
from src.comecome_app.utils.time_utils import Clock, ensure_aware, utc_now
from src.config import AuthSettings


class Role(str, Enum):
    GUARDIAN = "guardian"
    CHILD = "child"

    @classmethod
    def parse(cls, value) -> Optional["Role"]:
        """Exact match only; anything else is None."""
        for role in cls:
            if value == role.value:
                return role
        return None


@dataclass(frozen=True)
class LockoutPolicy:
    tracks_failures: bool
    max_attempts: int = 0
    window_seconds: int = 0
    lockout_seconds: int = 0


NO_LOCKOUT = LockoutPolicy(tracks_failures=False)


class LockoutService:
    """Failed-attempt ledger and timed account locks."""

    def __init__(self, db: Session, settings: AuthSettings, clock: Clock = utc_now):
        self.db = db
        self.settings = settings
        self.clock = clock
        self._policies = {
            Role.GUARDIAN: LockoutPolicy(
                tracks_failures=True,
                max_attempts=settings.pin_max_attempts,
                window_seconds=settings.pin_lockout_duration,
                lockout_seconds=settings.pin_lockout_duration,
            ),
            # Children are never locked; their failures are audited only
            Role.CHILD: NO_LOCKOUT,
        }

    def policy_for(self, role) -> LockoutPolicy:
        parsed = role if isinstance(role, Role) else Role.parse(role)
        return self._policies.get(parsed, NO_LOCKOUT)

    # ------------------------------------------------------------------
    # Failed attempt ledger
    # ------------------------------------------------------------------

    def increment_failed_attempts(self, user_id: int, window_seconds: Optional[int] = None) -> int:
        """
        Record a failure and return the failures inside the window, this one included.

        The row is written before counting so two concurrent failures both
        see each other.
        """
        if window_seconds is None:
            window_seconds = self.settings.pin_lockout_duration
        now = self.clock()
        self.db.add(FailedPinAttempt(user_id=user_id, attempted_at=now))
        self.db.flush()
        count = self._count_since(user_id, now - timedelta(seconds=window_seconds))
        self.db.commit()
        return count

    def failed_attempt_count(self, user_id: int, window_seconds: Optional[int] = None) -> int:
        window = window_seconds if window_seconds is not None else self.settings.pin_lockout_duration
        return self._count_since(user_id, self.clock() - timedelta(seconds=window))

    def _count_since(self, user_id: int, cutoff: datetime) -> int:
        return (
            self.db.query(FailedPinAttempt)
            .filter(
                FailedPinAttempt.user_id == user_id,
                FailedPinAttempt.attempted_at > cutoff,
            )
            .count()
        )

    def reset_failed_attempts(self, user_id: int) -> int:
        """Delete all ledger rows for the user."""
        deleted = (
            self.db.query(FailedPinAttempt)
            .filter(FailedPinAttempt.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted:
            logger.info(f"Reset {deleted} failed PIN attempts for user {user_id}")
        return deleted

    # ------------------------------------------------------------------
    # Policy application
    # ------------------------------------------------------------------

    def register_failure(self, user: User) -> Tuple[Optional[datetime], int]:
        """
        Apply the user's role policy to a wrong PIN.

        Returns:
            Tuple of (locked_until if this failure locked the account, attempt_count).
            attempt_count is 0 for roles that are not tracked.
        """
        policy = self.policy_for(user.role)
        if not policy.tracks_failures:
            return None, 0

        count = self.increment_failed_attempts(user.id, policy.window_seconds)
        if count >= policy.max_attempts:
            locked_until = self.lock_user(user, policy.lockout_seconds)
            logger.warning(
                f"User {user.id} locked after {count} failed PIN attempts. "
                f"Locked until {locked_until}"
            )
            return locked_until, count

        logger.warning(f"Failed PIN for user {user.id} (attempt {count}/{policy.max_attempts})")
        return None, count

    def register_success(self, user: User) -> None:
        if self.policy_for(user.role).tracks_failures:
            self.reset_failed_attempts(user.id)

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def lock_user(self, user: User, duration_seconds: int) -> datetime:
        locked_until = self.clock() + timedelta(seconds=duration_seconds)
        user.locked_until = locked_until
        self.db.commit()
        return locked_until

    def clear_lock(self, user: User) -> None:
        user.locked_until = None
        self.db.commit()

    def lock_remaining(self, user: User) -> Optional[timedelta]:
        """Time left on an active lock, None if unlocked or the lock has lapsed."""
        locked_until = ensure_aware(user.locked_until)
        if locked_until is None:
            return None
        remaining = locked_until - self.clock()
        if remaining.total_seconds() > 0:
            return remaining
        return None

    def has_lapsed_lock(self, user: User) -> bool:
        return user.locked_until is not None and self.lock_remaining(user) is None

    def cleanup(self) -> int:
        """Drop ledger rows older than the lockout window; they no longer count."""
        cutoff = self.clock() - timedelta(seconds=self.settings.pin_lockout_duration)
        deleted = (
            self.db.query(FailedPinAttempt)
            .filter(FailedPinAttempt.attempted_at <= cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted
