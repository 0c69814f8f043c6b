from fastapi import Depends

from src.api.dependencies import get_client_ip, get_clock, get_db, get_settings
from src.comecome_app.services.errors import RateLimitedError
from src.comecome_app.services.rate_limit_service import RateLimitService
from src.comecome_app.utils.time_utils import Clock
from src.config import AuthSettings


class RateLimit:
    """
    Route dependency applying a fixed-window limit per client IP.

    ``limit_setting`` and ``window_setting`` name AuthSettings fields, so
    limits follow configuration at request time.
    """

    def __init__(self, endpoint: str, limit_setting: str, window_setting: str):
        self.endpoint = endpoint
        self.limit_setting = limit_setting
        self.window_setting = window_setting

    def __call__(
        self,
        client_ip: str = Depends(get_client_ip),
        db=Depends(get_db),
        settings: AuthSettings = Depends(get_settings),
        clock: Clock = Depends(get_clock),
    ) -> None:
        allowed = RateLimitService(db, clock=clock).check_rate_limit(
            client_ip,
            self.endpoint,
            getattr(settings, self.limit_setting),
            getattr(settings, self.window_setting),
        )
        if not allowed:
            raise RateLimitedError()


api_rate_limit = RateLimit("/api", "rate_limit_api", "rate_limit_api_window")
guest_rate_limit = RateLimit("/guest", "rate_limit_guest", "rate_limit_api_window")
auth_rate_limit = RateLimit("/auth/unlock", "rate_limit_auth", "rate_limit_auth_window")
roster_rate_limit = RateLimit("/auth/users", "rate_limit_auth", "rate_limit_auth_window")
