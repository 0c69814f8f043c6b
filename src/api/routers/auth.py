from typing import Optional

from fastapi import APIRouter, Depends, Response
from loguru import logger

from src import config
from src.api import schemas
from src.api.dependencies import (
    get_auth_service,
    get_client_ip,
    get_current_session,
    get_session_token,
    get_settings,
)
from src.api.limiter import auth_rate_limit, roster_rate_limit
from src.comecome_app.services.auth_service import AuthService
from src.comecome_app.services.session_service import SessionInfo
from src.config import AuthSettings

router = APIRouter()


def _set_session_cookie(response: Response, token: str, max_age: int) -> None:
    response.set_cookie(
        key=config.SESSION_COOKIE_NAME,
        value=token,
        max_age=max_age,
        httponly=True,
        samesite="lax",
        secure=config.SECURE_COOKIES,
        path="/",
    )


@router.post("/login", response_model=schemas.LoginResponse)
def login(
    credentials: schemas.LoginRequest,
    response: Response,
    client_ip: str = Depends(get_client_ip),
    auth: AuthService = Depends(get_auth_service),
    settings: AuthSettings = Depends(get_settings),
):
    """
    PIN login for a child or guardian.

    Rate limited per client IP (RATE_LIMIT_AUTH per RATE_LIMIT_AUTH_WINDOW).
    Guardians are locked after PIN_MAX_ATTEMPTS wrong PINs; children never are.
    The session token is returned in the body and set as an httponly cookie.
    """
    logger.info(f"Login attempt for {credentials.role} {credentials.user_id} from {client_ip}")
    result = auth.login(credentials.role, credentials.user_id, credentials.pin, client_ip)
    _set_session_cookie(response, result["session_token"], settings.session_lifetime)
    return result


@router.post("/logout", response_model=schemas.SuccessResponse)
def logout(
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    auth: AuthService = Depends(get_auth_service),
):
    """End the current session. Logging out twice is not an error."""
    auth.logout(token)
    response.delete_cookie(config.SESSION_COOKIE_NAME, path="/")
    return {"success": True, "message": "Logged out"}


@router.get("/whoami", response_model=schemas.WhoAmIResponse)
def whoami(
    session: SessionInfo = Depends(get_current_session),
    auth: AuthService = Depends(get_auth_service),
):
    return auth.whoami(session)


@router.get(
    "/users",
    response_model=schemas.RosterResponse,
    dependencies=[Depends(roster_rate_limit)],
)
def list_login_users(auth: AuthService = Depends(get_auth_service)):
    """Profiles shown on the login screen."""
    return auth.list_login_users()


@router.post("/change-pin", response_model=schemas.SuccessResponse)
def change_pin(
    data: schemas.ChangePinRequest,
    session: SessionInfo = Depends(get_current_session),
    auth: AuthService = Depends(get_auth_service),
):
    auth.change_pin(session.user_id, data.current_pin, data.new_pin)
    return {"success": True, "message": "PIN changed"}


@router.post(
    "/unlock",
    response_model=schemas.SuccessResponse,
    dependencies=[Depends(auth_rate_limit)],
)
def unlock_with_code(
    data: schemas.UnlockRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Emergency unlock with the installation unlock code and the user's PIN."""
    auth.unlock_with_code(data.user_id, data.pin, data.unlock_code)
    return {"success": True, "message": "Account unlocked"}
