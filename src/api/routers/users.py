from fastapi import APIRouter, Depends
from loguru import logger

from src.api import schemas
from src.api.dependencies import get_auth_service, require_guardian
from src.api.limiter import api_rate_limit
from src.comecome_app.services.auth_service import AuthService
from src.comecome_app.services.session_service import SessionInfo

router = APIRouter(dependencies=[Depends(api_rate_limit)])


@router.post("/{user_id}/reset-pin", response_model=schemas.SuccessResponse)
def reset_pin(
    user_id: int,
    data: schemas.SetPinRequest,
    guardian: SessionInfo = Depends(require_guardian),
    auth: AuthService = Depends(get_auth_service),
):
    """Set a user's PIN without knowing the current one (guardian only)."""
    auth.set_pin(user_id, data.new_pin, actor_id=guardian.user_id)
    logger.info(f"Guardian {guardian.user_id} reset PIN for user {user_id}")
    return {"success": True, "message": "PIN reset"}


@router.post("/{user_id}/block", response_model=schemas.SuccessResponse)
def block_user(
    user_id: int,
    guardian: SessionInfo = Depends(require_guardian),
    auth: AuthService = Depends(get_auth_service),
):
    auth.block_user(user_id, actor_id=guardian.user_id)
    return {"success": True, "message": "User blocked"}


@router.post("/{user_id}/unblock", response_model=schemas.SuccessResponse)
def unblock_user(
    user_id: int,
    guardian: SessionInfo = Depends(require_guardian),
    auth: AuthService = Depends(get_auth_service),
):
    auth.unblock_user(user_id, actor_id=guardian.user_id)
    return {"success": True, "message": "User unblocked"}


@router.post("/{user_id}/unlock", response_model=schemas.SuccessResponse)
def unlock_user(
    user_id: int,
    guardian: SessionInfo = Depends(require_guardian),
    auth: AuthService = Depends(get_auth_service),
):
    """Clear a PIN lockout and the user's failed-attempt history."""
    auth.unlock_user(user_id, actor_id=guardian.user_id, reason="guardian")
    return {"success": True, "message": "User unlocked"}
