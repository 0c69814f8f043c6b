import threading
from typing import Generator, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from loguru import logger
from sqlalchemy.orm import Session

from src import config
from src.comecome_app.models.database import (
    create_engine_instance,
    create_session_factory,
    create_tables,
)
from src.comecome_app.services.auth_service import AuthService
from src.comecome_app.services.errors import NotAuthenticatedError, PermissionDeniedError
from src.comecome_app.services.lockout_service import Role
from src.comecome_app.services.rate_limit_service import RateLimitService
from src.comecome_app.services.session_service import SessionInfo
from src.comecome_app.utils.time_utils import Clock, utc_now
from src.config import AuthSettings

# Bearer header is accepted as an alternative to the session cookie
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

_tables_initialized_url: Optional[str] = None
_tables_initialized_engine_id: Optional[int] = None
_tables_init_lock = threading.Lock()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get a database session.
    Auto-commits on success, rolls back on exception.
    """
    global _tables_initialized_url, _tables_initialized_engine_id
    engine = create_engine_instance()
    engine_url = str(engine.url)
    engine_id = id(engine)
    if (
        _tables_initialized_url != engine_url
        or _tables_initialized_engine_id != engine_id
    ):
        with _tables_init_lock:
            if (
                _tables_initialized_url != engine_url
                or _tables_initialized_engine_id != engine_id
            ):
                create_tables()
                _tables_initialized_url = engine_url
                _tables_initialized_engine_id = engine_id

    session_local = create_session_factory()
    db = session_local()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_settings() -> AuthSettings:
    return AuthSettings.from_config()


def get_clock() -> Clock:
    return utc_now


def get_auth_service(
    db: Session = Depends(get_db),
    settings: AuthSettings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> AuthService:
    return AuthService(db, settings, clock)


def get_client_ip(request: Request) -> str:
    """Client address used as the rate-limit key."""
    peer = request.client.host if request.client else None
    return RateLimitService.resolve_client_ip(request.headers.get("x-forwarded-for"), peer)


def get_session_token(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
) -> Optional[str]:
    """Session token from the session cookie, falling back to the Bearer header."""
    return request.cookies.get(config.SESSION_COOKIE_NAME) or bearer


def get_current_session(
    token: Optional[str] = Depends(get_session_token),
    auth: AuthService = Depends(get_auth_service),
) -> SessionInfo:
    """
    Validate the presented session token and slide its expiry.

    Raises:
        NotAuthenticatedError: 401 when the token is missing, unknown or expired
    """
    if not token:
        logger.debug("No session token provided in request")
        raise NotAuthenticatedError()

    session = auth.validate_session(token)
    if session is None:
        logger.debug("Session validation failed")
        raise NotAuthenticatedError()

    return session


def require_guardian(session: SessionInfo = Depends(get_current_session)) -> SessionInfo:
    if session.role != Role.GUARDIAN.value:
        logger.warning(f"User {session.user_id} ({session.role}) denied guardian-only route")
        raise PermissionDeniedError("Guardian access required")
    return session
