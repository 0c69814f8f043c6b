from fastapi import APIRouter, Depends

from src.api import schemas
from src.api.dependencies import get_auth_service, require_guardian
from src.api.limiter import api_rate_limit
from src.comecome_app.services.auth_service import AuthService
from src.comecome_app.services.session_service import SessionInfo

router = APIRouter(dependencies=[Depends(api_rate_limit)])


@router.post("/cleanup", response_model=schemas.CleanupResponse)
def run_cleanup(
    guardian: SessionInfo = Depends(require_guardian),
    auth: AuthService = Depends(get_auth_service),
):
    """Purge expired sessions, stale rate-limit counters and expired guest links."""
    return auth.cleanup(actor_id=guardian.user_id)
