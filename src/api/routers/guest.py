from typing import List

from fastapi import APIRouter, Depends

from src.api import schemas
from src.api.dependencies import get_auth_service, require_guardian
from src.api.limiter import api_rate_limit, guest_rate_limit
from src.comecome_app.services.auth_service import AuthService
from src.comecome_app.services.errors import NotAuthenticatedError
from src.comecome_app.services.session_service import SessionInfo
from src.comecome_app.utils.time_utils import ensure_aware

router = APIRouter()


@router.post(
    "/token",
    response_model=schemas.GuestTokenCreated,
    dependencies=[Depends(api_rate_limit)],
)
def create_guest_token(
    data: schemas.GuestTokenCreate,
    guardian: SessionInfo = Depends(require_guardian),
    auth: AuthService = Depends(get_auth_service),
):
    """Issue a time-limited read-only link for one child's reports."""
    return auth.guest_tokens.create_token(data.child_id, data.expires_in, guardian.user_id)


@router.get(
    "/tokens",
    response_model=List[schemas.GuestTokenInfo],
    dependencies=[Depends(api_rate_limit)],
)
def list_guest_tokens(
    guardian: SessionInfo = Depends(require_guardian),
    auth: AuthService = Depends(get_auth_service),
):
    return auth.guest_tokens.list_tokens(guardian.user_id)


@router.delete(
    "/token/{token}",
    response_model=schemas.SuccessResponse,
    dependencies=[Depends(api_rate_limit)],
)
def revoke_guest_token(
    token: str,
    guardian: SessionInfo = Depends(require_guardian),
    auth: AuthService = Depends(get_auth_service),
):
    auth.guest_tokens.revoke_token(token, guardian.user_id)
    return {"success": True, "message": "Token revoked"}


@router.get(
    "/{token}",
    response_model=schemas.GuestAccessResponse,
    dependencies=[Depends(guest_rate_limit)],
)
def validate_guest_token(token: str, auth: AuthService = Depends(get_auth_service)):
    """Resolve a guest link to the child it grants access to."""
    guest = auth.guest_tokens.validate_token(token)
    if guest is None:
        raise NotAuthenticatedError("Invalid or expired guest token")
    return {"child_id": guest.child_id, "expires_at": ensure_aware(guest.expires_at)}
