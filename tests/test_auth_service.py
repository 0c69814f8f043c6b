"""
Tests for the AuthService facade: login, logout, PIN management and locks.
"""

from dataclasses import replace

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from src.comecome_app.models.audit_log import AuditLog
from src.comecome_app.models.database import AuthSession, Child
from src.comecome_app.services.audit_service import AuditAction
from src.comecome_app.services.auth_service import AuthService
from src.comecome_app.services.errors import (
    AccountLockedError,
    InvalidCredentialsError,
    InvalidCurrentPinError,
    InvalidInputError,
    InvalidUnlockCodeError,
    NotFoundError,
    RateLimitedError,
)
from src.comecome_app.services.pin_hashing import verify_pin
from tests.auth_helpers import CHILD_PIN, GUARDIAN_PIN, UNLOCK_CODE, make_child


class TestLogin:
    def test_guardian_login_returns_session_and_children(
        self, auth_service, guardian_user, child_user, test_db_session
    ):
        make_child(test_db_session, name="Inactive", active=False)

        result = auth_service.login("guardian", guardian_user.id, GUARDIAN_PIN, "10.0.0.1")

        assert len(result["session_token"]) == 64
        assert result["user"]["id"] == guardian_user.id
        assert result["user"]["role"] == "guardian"
        assert result["user"]["profile"]["name"] == "Alex"
        assert [c["name"] for c in result["children"]] == ["Sam"]

        info = auth_service.validate_session(result["session_token"])
        assert info.user_id == guardian_user.id

        logins = auth_service.audit.entries_for("users", guardian_user.id, AuditAction.PIN_LOGIN)
        assert len(logins) == 1
        assert logins[0].actor_id == guardian_user.id

    def test_child_login(self, auth_service, child_user):
        result = auth_service.login("child", child_user.id, CHILD_PIN, "10.0.0.1")

        assert result["user"]["locale"] == "pt-PT"
        assert result["user"]["profile"]["active"] is True

    def test_wrong_role_is_invalid_credentials(self, auth_service, guardian_user):
        with pytest.raises(InvalidCredentialsError):
            auth_service.login("child", guardian_user.id, GUARDIAN_PIN, "10.0.0.1")

    def test_unknown_user_is_indistinguishable_from_wrong_pin(self, auth_service, guardian_user):
        with pytest.raises(InvalidCredentialsError) as unknown:
            auth_service.login("guardian", 999, "1111", "10.0.0.1")
        with pytest.raises(InvalidCredentialsError) as wrong:
            auth_service.login("guardian", guardian_user.id, "1111", "10.0.0.2")

        assert unknown.value.to_dict() == wrong.value.to_dict()

        entry = auth_service.audit.entries_for("users", 999, AuditAction.PIN_FAILED)[0]
        assert entry.actor_id is None
        assert auth_service.audit.parse_details(entry)["reason"] == "user_not_found"

    @pytest.mark.parametrize("pin", ["123", "12345", "12a4", "", None, 1234])
    def test_bad_pin_format_is_validation_error(self, auth_service, guardian_user, pin):
        with pytest.raises(InvalidInputError):
            auth_service.login("guardian", guardian_user.id, pin, "10.0.0.1")

    def test_bad_role_is_validation_error(self, auth_service, guardian_user):
        with pytest.raises(InvalidInputError):
            auth_service.login("admin", guardian_user.id, GUARDIAN_PIN, "10.0.0.1")

    @pytest.mark.parametrize("user_id", ["abc", "", "1.5", "-1", None, True, 2.0, "١"])
    def test_bad_user_id_is_validation_error(self, auth_service, guardian_user, user_id):
        with pytest.raises(InvalidInputError):
            auth_service.login("guardian", user_id, GUARDIAN_PIN, "10.0.0.1")

        assert auth_service.rate_limiter.request_count("10.0.0.1", "/auth/login", 300) == 1

    def test_digit_string_user_id_logs_in(self, auth_service, guardian_user):
        result = auth_service.login("guardian", str(guardian_user.id), GUARDIAN_PIN, "10.0.0.1")

        assert result["user"]["id"] == guardian_user.id

    def test_validation_failures_touch_nothing_but_the_rate_counter(
        self, auth_service, guardian_user, test_db_session
    ):
        with pytest.raises(InvalidInputError):
            auth_service.login("guardian", guardian_user.id, "12", "10.0.0.1")

        assert test_db_session.query(AuditLog).count() == 0
        assert auth_service.lockout.failed_attempt_count(guardian_user.id) == 0
        assert auth_service.rate_limiter.request_count("10.0.0.1", "/auth/login", 300) == 1

    def test_sixth_attempt_from_same_ip_is_rate_limited(
        self, auth_service, child_user, test_db_session
    ):
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                auth_service.login("child", child_user.id, "0000", "10.0.0.1")
        audit_before = test_db_session.query(AuditLog).count()

        with pytest.raises(RateLimitedError) as exc_info:
            auth_service.login("child", child_user.id, CHILD_PIN, "10.0.0.1")

        assert exc_info.value.status_code == 429
        assert test_db_session.query(AuditLog).count() == audit_before
        assert test_db_session.query(AuthSession).count() == 0

    def test_rate_limit_is_per_ip(self, auth_service, child_user):
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                auth_service.login("child", child_user.id, "0000", "10.0.0.1")

        result = auth_service.login("child", child_user.id, CHILD_PIN, "10.0.0.2")
        assert result["session_token"]

    def test_locked_attempt_is_audited(self, auth_service, guardian_user):
        auth_service.lock_user(guardian_user.id, 600)

        with pytest.raises(AccountLockedError) as exc_info:
            auth_service.login("guardian", guardian_user.id, GUARDIAN_PIN, "10.0.0.1")

        assert exc_info.value.minutes_remaining == 10
        entry = auth_service.audit.entries_for(
            "users", guardian_user.id, AuditAction.PIN_FAILED
        )[-1]
        assert auth_service.audit.parse_details(entry)["reason"] == "account_locked"
        assert auth_service.lockout.failed_attempt_count(guardian_user.id) == 0


class TestLogout:
    def test_logout_deletes_session_and_is_idempotent(self, auth_service, guardian_user):
        token = auth_service.login("guardian", guardian_user.id, GUARDIAN_PIN, "10.0.0.1")[
            "session_token"
        ]

        assert auth_service.logout(token) is True
        assert auth_service.validate_session(token) is None
        assert auth_service.logout(token) is True

        entries = auth_service.audit.entries_for("sessions", action=AuditAction.LOGOUT)
        assert entries[0].actor_id == guardian_user.id
        assert auth_service.audit.parse_details(entries[0])["token"] == token[:8] + "..."
        assert entries[1].actor_id is None

    def test_logout_leaves_other_sessions(self, auth_service, guardian_user):
        first = auth_service.login("guardian", guardian_user.id, GUARDIAN_PIN, "10.0.0.1")
        second = auth_service.login("guardian", guardian_user.id, GUARDIAN_PIN, "10.0.0.2")

        auth_service.logout(first["session_token"])

        assert auth_service.validate_session(second["session_token"]) is not None


class TestPinManagement:
    def test_change_pin_round_trip(self, auth_service, guardian_user):
        assert auth_service.change_pin(guardian_user.id, GUARDIAN_PIN, "4321") is True

        with pytest.raises(InvalidCredentialsError):
            auth_service.login("guardian", guardian_user.id, GUARDIAN_PIN, "10.0.0.1")
        assert auth_service.login("guardian", guardian_user.id, "4321", "10.0.0.2")

        entry = auth_service.audit.entries_for("users", guardian_user.id, AuditAction.PIN_CHANGED)[0]
        assert entry.actor_id == guardian_user.id

    def test_change_pin_wrong_current(self, auth_service, guardian_user):
        with pytest.raises(InvalidCurrentPinError) as exc_info:
            auth_service.change_pin(guardian_user.id, "0000", "4321")
        assert exc_info.value.status_code == 401

    def test_change_pin_invalid_new(self, auth_service, guardian_user):
        with pytest.raises(InvalidInputError):
            auth_service.change_pin(guardian_user.id, GUARDIAN_PIN, "43210")

    def test_change_pin_unknown_user(self, auth_service):
        with pytest.raises(NotFoundError):
            auth_service.change_pin(404, GUARDIAN_PIN, "4321")

    def test_set_pin_overrides_without_current(self, auth_service, guardian_user, child_user):
        auth_service.set_pin(child_user.id, "2468", actor_id=guardian_user.id)

        assert verify_pin("2468", child_user.pin_hash)
        entry = auth_service.audit.entries_for("users", child_user.id, AuditAction.PIN_SET)[0]
        assert entry.actor_id == guardian_user.id

    def test_set_pin_validates(self, auth_service, child_user):
        with pytest.raises(InvalidInputError):
            auth_service.set_pin(child_user.id, "abcd")
        with pytest.raises(NotFoundError):
            auth_service.set_pin(404, "2468")


class TestUnlock:
    def _lock(self, auth_service, user):
        auth_service.lock_user(user.id, 300)
        for _ in range(3):
            auth_service.lockout.increment_failed_attempts(user.id)

    def test_unlock_with_code(self, auth_service, guardian_user):
        self._lock(auth_service, guardian_user)

        assert auth_service.unlock_with_code(guardian_user.id, GUARDIAN_PIN, UNLOCK_CODE)

        assert guardian_user.locked_until is None
        assert auth_service.lockout.failed_attempt_count(guardian_user.id) == 0
        assert auth_service.audit.entries_for(
            "users", guardian_user.id, AuditAction.UNLOCK_CODE_USED
        )
        assert auth_service.login("guardian", guardian_user.id, GUARDIAN_PIN, "10.0.0.1")

    def test_unlock_with_wrong_code(self, auth_service, guardian_user):
        self._lock(auth_service, guardian_user)

        with pytest.raises(InvalidUnlockCodeError):
            auth_service.unlock_with_code(guardian_user.id, GUARDIAN_PIN, "00000000")
        assert guardian_user.locked_until is not None

    def test_unlock_with_code_needs_correct_pin(self, auth_service, guardian_user):
        self._lock(auth_service, guardian_user)

        with pytest.raises(InvalidCredentialsError):
            auth_service.unlock_with_code(guardian_user.id, "0000", UNLOCK_CODE)
        assert guardian_user.locked_until is not None

    def test_unlock_user_clears_lock_and_ledger(self, auth_service, guardian_user):
        self._lock(auth_service, guardian_user)

        auth_service.unlock_user(guardian_user.id, actor_id=None)

        assert guardian_user.locked_until is None
        assert auth_service.lockout.failed_attempt_count(guardian_user.id) == 0

    def test_lock_user_unknown(self, auth_service):
        with pytest.raises(NotFoundError):
            auth_service.lock_user(404, 300)


class TestBlocking:
    def test_block_child_deactivates_profile(self, auth_service, guardian_user, child_user, test_db_session):
        auth_service.block_user(child_user.id, actor_id=guardian_user.id)

        child = test_db_session.query(Child).filter_by(user_id=child_user.id).one()
        assert child.active is False
        assert auth_service.list_login_users()["children"] == []

        auth_service.unblock_user(child_user.id, actor_id=guardian_user.id)
        assert child.active is True

    def test_block_guardian_locks_and_ends_sessions(self, auth_service, guardian_user, test_db_session):
        from tests.auth_helpers import make_guardian

        other = make_guardian(test_db_session, name="Jo", pin="2222")
        token = auth_service.login("guardian", other.id, "2222", "10.0.0.1")["session_token"]

        auth_service.block_user(other.id, actor_id=guardian_user.id)

        assert auth_service.validate_session(token) is None
        with pytest.raises(AccountLockedError):
            auth_service.login("guardian", other.id, "2222", "10.0.0.2")

        auth_service.unblock_user(other.id, actor_id=guardian_user.id)
        assert auth_service.login("guardian", other.id, "2222", "10.0.0.3")

    def test_cannot_block_self(self, auth_service, guardian_user):
        with pytest.raises(InvalidInputError):
            auth_service.block_user(guardian_user.id, actor_id=guardian_user.id)


class TestMaintenance:
    def test_cleanup_reports_counts_and_audits(self, auth_service, guardian_user, clock):
        auth_service.login("guardian", guardian_user.id, GUARDIAN_PIN, "10.0.0.1")
        clock.advance(8 * 24 * 3600)

        counts = auth_service.cleanup(actor_id=guardian_user.id)

        assert counts["expired_sessions"] == 1
        assert counts["old_rate_limits"] == 1
        assert auth_service.audit.entries_for("system", action=AuditAction.MAINTENANCE_CLEANUP)

    def test_audit_store_failure_does_not_block_login(
        self, auth_service, guardian_user, test_db_session
    ):
        def fail_insert(mapper, connection, target):
            raise OperationalError("INSERT INTO audit_log", {}, Exception("disk I/O error"))

        event.listen(AuditLog, "before_insert", fail_insert)
        try:
            result = auth_service.login("guardian", guardian_user.id, GUARDIAN_PIN, "10.0.0.1")
        finally:
            event.remove(AuditLog, "before_insert", fail_insert)

        info = auth_service.validate_session(result["session_token"])
        assert info is not None
        assert info.user_id == guardian_user.id
        assert test_db_session.query(AuditLog).count() == 0

    def test_audit_disabled_still_authenticates(self, test_db_session, settings, clock, guardian_user):
        auth = AuthService(test_db_session, replace(settings, log_audit=False), clock)

        assert auth.login("guardian", guardian_user.id, GUARDIAN_PIN, "10.0.0.1")
        assert test_db_session.query(AuditLog).count() == 0


def test_whoami_includes_child_id(auth_service, child_user):
    token = auth_service.login("child", child_user.id, CHILD_PIN, "10.0.0.1")["session_token"]

    me = auth_service.whoami(auth_service.validate_session(token))

    assert me["user_id"] == child_user.id
    assert me["role"] == "child"
    assert me["child_id"] == child_user.child.id
