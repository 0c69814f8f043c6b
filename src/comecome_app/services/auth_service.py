"""
Authentication service: PIN login, sessions, PIN changes and locks.

The login path runs, in this order: rate limit -> input validation ->
credential lookup -> lock check (lazy unlock) -> PIN verification ->
lockout bookkeeping or session creation -> audit. Each step is a hard gate.
"""

import hmac
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from src.comecome_app.models.database import Child, Guardian, User
from src.comecome_app.services.audit_service import AuditAction, AuditLogService
from src.comecome_app.services.errors import (
    AccountLockedError,
    InvalidCredentialsError,
    InvalidCurrentPinError,
    InvalidInputError,
    InvalidUnlockCodeError,
    NotFoundError,
    RateLimitedError,
)
from src.comecome_app.services.guest_token_service import GuestTokenService
from src.comecome_app.services.lockout_service import LockoutService, Role
from src.comecome_app.services.pin_hashing import hash_pin, is_valid_pin, verify_pin
from src.comecome_app.services.rate_limit_service import RateLimitService
from src.comecome_app.services.session_service import SessionInfo, SessionService
from src.comecome_app.utils.time_utils import Clock, format_utc, minutes_remaining, utc_now
from src.comecome_app.utils.token_utils import mask_token
from src.config import AuthSettings

LOGIN_ENDPOINT = "/auth/login"


class AuthService:
    """Entry point for everything that touches credentials or sessions."""

    def __init__(
        self,
        db: Session,
        settings: Optional[AuthSettings] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.settings = settings or AuthSettings.from_config()
        self.clock = clock
        self.audit = AuditLogService(db, enabled=self.settings.log_audit, clock=clock)
        self.rate_limiter = RateLimitService(db, clock=clock)
        self.lockout = LockoutService(db, self.settings, clock=clock)
        self.sessions = SessionService(db, self.settings.session_lifetime, clock=clock)
        self.guest_tokens = GuestTokenService(db, self.audit, clock=clock)

    # ------------------------------------------------------------------
    # Login / logout / sessions
    # ------------------------------------------------------------------

    def login(self, role: str, user_id: int, pin: str, client_ip: str) -> Dict[str, Any]:
        """
        Authenticate with a PIN and open a session.

        Args:
            role: "child" or "guardian"
            user_id: Credential record id
            pin: 4-digit PIN
            client_ip: Resolved client address, used for rate limiting

        Returns:
            Dict with session_token, user (id, role, locale, profile) and the
            active children list

        Raises:
            RateLimitedError, InvalidInputError, InvalidCredentialsError,
            AccountLockedError
        """
        if not self.rate_limiter.check_rate_limit(
            client_ip,
            LOGIN_ENDPOINT,
            self.settings.rate_limit_auth,
            self.settings.rate_limit_auth_window,
        ):
            raise RateLimitedError()

        parsed_role = Role.parse(role)
        if parsed_role is None:
            raise InvalidInputError("Invalid role")

        if not is_valid_pin(pin):
            raise InvalidInputError("Invalid PIN format")

        user_id = self._coerce_user_id(user_id)

        user = (
            self.db.query(User)
            .filter(User.id == user_id, User.role == parsed_role.value)
            .first()
        )
        if user is None:
            self.audit.log_event(
                AuditAction.PIN_FAILED,
                "users",
                user_id,
                None,
                {"reason": "user_not_found", "role": parsed_role.value},
            )
            raise InvalidCredentialsError()

        remaining = self.lockout.lock_remaining(user)
        if remaining is not None:
            self.audit.log_event(
                AuditAction.PIN_FAILED,
                "users",
                user.id,
                None,
                {"reason": "account_locked", "role": parsed_role.value},
            )
            raise AccountLockedError(minutes_remaining(remaining))

        if self.lockout.has_lapsed_lock(user):
            self.unlock_user(user.id, actor_id=None, reason="lock_expired")

        if not verify_pin(pin, user.pin_hash):
            self._handle_wrong_pin(user, parsed_role)

        self.lockout.register_success(user)
        token = self.sessions.create_session(user.id)

        self.audit.log_event(
            AuditAction.PIN_LOGIN, "users", user.id, user.id, {"role": parsed_role.value}
        )
        logger.info(f"PIN login for user {user.id} ({parsed_role.value})")

        return {
            "session_token": token,
            "user": {
                "id": user.id,
                "role": user.role,
                "locale": user.locale,
                "profile": self._profile_for(user),
            },
            "children": self._active_children(),
        }

    def _handle_wrong_pin(self, user: User, role: Role) -> None:
        locked_until, attempts = self.lockout.register_failure(user)

        details: Dict[str, Any] = {"reason": "invalid_pin", "role": role.value}
        if attempts:
            details["attempts"] = attempts
        self.audit.log_event(AuditAction.PIN_FAILED, "users", user.id, None, details)

        if locked_until is not None:
            self.audit.log_event(
                AuditAction.PIN_LOCKED,
                "users",
                user.id,
                None,
                {"reason": "max_attempts", "locked_until": format_utc(locked_until)},
            )
            minutes = minutes_remaining(locked_until - self.clock())
            raise AccountLockedError(
                minutes,
                f"Account locked due to multiple failed attempts. Try again in {minutes} minutes.",
            )

        raise InvalidCredentialsError()

    def logout(self, session_token: Optional[str]) -> bool:
        """Delete the session. Unknown or already-deleted tokens are a no-op."""
        user_id = self.sessions.delete_session(session_token)
        self.audit.log_event(
            AuditAction.LOGOUT,
            "sessions",
            None,
            user_id,
            {"token": mask_token(session_token or "")},
        )
        return True

    def validate_session(self, token: Optional[str]) -> Optional[SessionInfo]:
        return self.sessions.validate_session(token)

    # ------------------------------------------------------------------
    # PIN management
    # ------------------------------------------------------------------

    def change_pin(self, user_id: int, current_pin: str, new_pin: str) -> bool:
        """Change a PIN, proving knowledge of the current one."""
        if not is_valid_pin(new_pin):
            raise InvalidInputError("New PIN must be exactly 4 digits")

        user = self._get_user(user_id)
        if not verify_pin(current_pin or "", user.pin_hash):
            logger.warning(f"PIN change rejected for user {user.id}: wrong current PIN")
            raise InvalidCurrentPinError()

        self._store_pin(user, new_pin)
        self.audit.log_event(AuditAction.PIN_CHANGED, "users", user.id, user.id)
        return True

    def set_pin(self, user_id: int, new_pin: str, actor_id: Optional[int] = None) -> bool:
        """
        Administrative PIN override; no current PIN needed.

        The caller is responsible for checking that the actor is a guardian.
        """
        if not is_valid_pin(new_pin):
            raise InvalidInputError("PIN must be exactly 4 digits")

        user = self._get_user(user_id)
        self._store_pin(user, new_pin)
        self.audit.log_event(AuditAction.PIN_SET, "users", user.id, actor_id)
        return True

    def _store_pin(self, user: User, pin: str) -> None:
        user.pin_hash = hash_pin(pin, self.settings.pin_hash_cost)
        user.updated_at = self.clock()
        self.db.commit()
        logger.info(f"PIN updated for user {user.id}")

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def unlock_with_code(self, user_id: int, pin: str, unlock_code: str) -> bool:
        """Emergency unlock: needs the static unlock code and the correct PIN."""
        if not hmac.compare_digest(
            str(unlock_code or "").encode("utf-8"),
            self.settings.unlock_code.encode("utf-8"),
        ):
            logger.warning(f"Invalid unlock code presented for user {user_id}")
            raise InvalidUnlockCodeError()

        user = self._get_user(user_id)
        if not verify_pin(pin or "", user.pin_hash):
            logger.warning(f"Unlock with code rejected for user {user.id}: wrong PIN")
            raise InvalidCredentialsError("Invalid PIN")

        self.unlock_user(user.id, actor_id=user.id, reason="unlock_code")
        self.audit.log_event(AuditAction.UNLOCK_CODE_USED, "users", user.id, user.id)
        return True

    def lock_user(self, user_id: int, duration_seconds: int):
        user = self._get_user(user_id)
        return self.lockout.lock_user(user, duration_seconds)

    def unlock_user(
        self, user_id: int, actor_id: Optional[int] = None, reason: Optional[str] = None
    ) -> bool:
        user = self._get_user(user_id)
        self.lockout.clear_lock(user)
        self.lockout.reset_failed_attempts(user.id)
        self.audit.log_event(
            AuditAction.PIN_UNLOCKED,
            "users",
            user.id,
            actor_id,
            {"reason": reason} if reason else None,
        )
        return True

    def block_user(self, user_id: int, actor_id: int) -> bool:
        """Deactivate a child, or lock a guardian for USER_BLOCK_DURATION."""
        user = self._get_user(user_id)
        if user.id == actor_id:
            raise InvalidInputError("Cannot block your own account")

        if user.role == Role.CHILD.value:
            if user.child is not None:
                user.child.active = False
                self.db.commit()
        else:
            self.lockout.lock_user(user, self.settings.user_block_duration)
            self.sessions.delete_user_sessions(user.id)

        self.audit.log_event(
            AuditAction.USER_BLOCKED, "users", user.id, actor_id, {"role": user.role}
        )
        return True

    def unblock_user(self, user_id: int, actor_id: int) -> bool:
        user = self._get_user(user_id)

        if user.role == Role.CHILD.value:
            if user.child is not None:
                user.child.active = True
                self.db.commit()
        else:
            self.unlock_user(user.id, actor_id=actor_id, reason="unblocked")

        self.audit.log_event(
            AuditAction.USER_UNBLOCKED, "users", user.id, actor_id, {"role": user.role}
        )
        return True

    # ------------------------------------------------------------------
    # Maintenance and lookups
    # ------------------------------------------------------------------

    def cleanup(self, actor_id: Optional[int] = None) -> Dict[str, int]:
        """Sweep expired sessions, stale rate limits, guest sessions and ledger rows."""
        cleaned = {
            "expired_sessions": self.sessions.cleanup(),
            "old_rate_limits": self.rate_limiter.cleanup(self.settings.rate_limit_retention),
            "expired_guest_sessions": self.guest_tokens.cleanup(),
            "stale_failed_attempts": self.lockout.cleanup(),
        }
        if actor_id is not None:
            self.audit.log_event(
                AuditAction.MAINTENANCE_CLEANUP, "system", None, actor_id, cleaned
            )
        logger.info(f"Maintenance cleanup: {cleaned}")
        return cleaned

    def list_login_users(self) -> Dict[str, List[Dict[str, Any]]]:
        """Who can log in: active children and all guardians."""
        children = (
            self.db.query(Child)
            .join(User, Child.user_id == User.id)
            .filter(Child.active.is_(True))
            .order_by(Child.name)
            .all()
        )
        guardians = (
            self.db.query(Guardian)
            .join(User, Guardian.user_id == User.id)
            .order_by(Guardian.name)
            .all()
        )
        return {
            "children": [
                {"user_id": c.user_id, "name": c.name, "role": Role.CHILD.value}
                for c in children
            ],
            "guardians": [
                {"user_id": g.user_id, "name": g.name, "role": Role.GUARDIAN.value}
                for g in guardians
            ],
        }

    def whoami(self, session: SessionInfo) -> Dict[str, Any]:
        user = self._get_user(session.user_id)
        response: Dict[str, Any] = {
            "user_id": user.id,
            "role": user.role,
            "locale": user.locale or self.settings.default_locale,
        }
        if user.role == Role.CHILD.value and user.child is not None:
            response["child_id"] = user.child.id
        return response

    def _get_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == self._coerce_user_id(user_id)).first()
        if user is None:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def _coerce_user_id(user_id) -> int:
        """Accept an int or a string of ASCII digits."""
        if isinstance(user_id, int) and not isinstance(user_id, bool):
            return user_id
        if isinstance(user_id, str) and user_id.isascii() and user_id.isdigit():
            return int(user_id)
        raise InvalidInputError("Invalid user id")

    @staticmethod
    def _profile_for(user: User) -> Optional[Dict[str, Any]]:
        if user.role == Role.CHILD.value and user.child is not None:
            return {"id": user.child.id, "name": user.child.name, "active": user.child.active}
        if user.role == Role.GUARDIAN.value and user.guardian is not None:
            return {"id": user.guardian.id, "name": user.guardian.name}
        return None

    def _active_children(self) -> List[Dict[str, Any]]:
        children = self.db.query(Child).filter(Child.active.is_(True)).order_by(Child.id).all()
        return [{"id": c.id, "name": c.name, "active": c.active} for c in children]
