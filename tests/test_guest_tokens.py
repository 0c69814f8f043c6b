"""
Tests for guest (clinician) access tokens.
"""

import pytest

from src.comecome_app.models.database import GuestSession
from src.comecome_app.services.audit_service import AuditAction
from src.comecome_app.services.errors import InvalidInputError, NotFoundError
from src.comecome_app.utils.time_utils import ensure_aware


@pytest.fixture
def guest_tokens(auth_service):
    return auth_service.guest_tokens


def test_create_and_validate(guest_tokens, guardian_user, child_user, clock):
    child_id = child_user.child.id

    created = guest_tokens.create_token(child_id, 1800, guardian_user.id)

    assert len(created["token"]) == 64
    guest = guest_tokens.validate_token(created["token"])
    assert guest.child_id == child_id

    clock.advance(1801)
    assert guest_tokens.validate_token(created["token"]) is None


def test_invalid_duration_and_unknown_child(guest_tokens, guardian_user, child_user):
    with pytest.raises(InvalidInputError):
        guest_tokens.create_token(child_user.child.id, 60, guardian_user.id)
    with pytest.raises(NotFoundError):
        guest_tokens.create_token(999, 1800, guardian_user.id)


def test_revoke(guest_tokens, auth_service, guardian_user, child_user):
    token = guest_tokens.create_token(child_user.child.id, 7200, guardian_user.id)["token"]

    guest_tokens.revoke_token(token, guardian_user.id)

    assert guest_tokens.validate_token(token) is None
    entry = auth_service.audit.entries_for("guest_sessions", action=AuditAction.TOKEN_REVOKED)[0]
    assert auth_service.audit.parse_details(entry)["token"] == token[:8] + "..."

    with pytest.raises(NotFoundError):
        guest_tokens.revoke_token("0" * 64, guardian_user.id)


def test_revoke_twice_keeps_first_revocation(
    guest_tokens, auth_service, guardian_user, child_user, clock, test_db_session
):
    token = guest_tokens.create_token(child_user.child.id, 7200, guardian_user.id)["token"]
    guest_tokens.revoke_token(token, guardian_user.id)
    row = test_db_session.query(GuestSession).filter(GuestSession.token == token).one()
    first_revoked_at = row.revoked_at

    clock.advance(60)
    guest_tokens.revoke_token(token, guardian_user.id)

    test_db_session.refresh(row)
    assert ensure_aware(row.revoked_at) == ensure_aware(first_revoked_at)
    entries = auth_service.audit.entries_for("guest_sessions", action=AuditAction.TOKEN_REVOKED)
    assert len(entries) == 1


def test_list_tokens_newest_first(guest_tokens, guardian_user, child_user, clock):
    first = guest_tokens.create_token(child_user.child.id, 1800, guardian_user.id)["token"]
    clock.advance(10)
    second = guest_tokens.create_token(child_user.child.id, 86400, guardian_user.id)["token"]
    guest_tokens.revoke_token(first, guardian_user.id)

    listed = guest_tokens.list_tokens(guardian_user.id)

    assert [t["token"] for t in listed] == [second, first]
    assert listed[0]["child_name"] == "Sam"
    assert listed[1]["is_revoked"] is True


def test_cleanup_keeps_revoked_history(guest_tokens, guardian_user, child_user, clock):
    expired = guest_tokens.create_token(child_user.child.id, 1800, guardian_user.id)["token"]
    revoked = guest_tokens.create_token(child_user.child.id, 1800, guardian_user.id)["token"]
    guest_tokens.revoke_token(revoked, guardian_user.id)
    clock.advance(3600)

    assert guest_tokens.cleanup() == 1
    assert [t["token"] for t in guest_tokens.list_tokens(guardian_user.id)] == [revoked]
    assert expired
