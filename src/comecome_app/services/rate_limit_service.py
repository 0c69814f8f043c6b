"""
Fixed-window rate limiting backed by the rate_limits table.

Windows are aligned to floor(now / window) * window, so a client can spend
its limit at the end of one window and again at the start of the next.
Counters are bumped with a conditional UPDATE so concurrent requests
cannot push a window past its limit.
"""

from datetime import timedelta
from typing import Optional

from loguru import logger
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.comecome_app.models.database import RateLimit
from src.comecome_app.utils.time_utils import Clock, fixed_window_start, utc_now

UNKNOWN_CLIENT_IP = "0.0.0.0"


class RateLimitService:
    """Per (client IP, endpoint) request counter."""

    def __init__(self, db: Session, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    @staticmethod
    def resolve_client_ip(forwarded_for: Optional[str], peer: Optional[str]) -> str:
        """
        First X-Forwarded-For address if present, else the peer address.

        The forwarded value is trusted as-is; restrict it at the proxy.
        """
        if forwarded_for:
            first = forwarded_for.split(",")[0].strip()
            if first:
                return first
        return peer or UNKNOWN_CLIENT_IP

    def check_rate_limit(
        self, client_ip: str, endpoint: str, limit: int, window_seconds: int
    ) -> bool:
        """
        Count a request and report whether it is allowed.

        Args:
            client_ip: Resolved client address
            endpoint: Logical endpoint key, e.g. "/auth/login"
            limit: Requests allowed per window
            window_seconds: Window size

        Returns:
            True if allowed, False if the window is already at its limit
            (the rejected request is not counted)
        """
        window_start = fixed_window_start(self.clock(), window_seconds)

        if self._increment(client_ip, endpoint, window_start, limit):
            return True

        if self._window_exists(client_ip, endpoint, window_start):
            self.db.commit()
            logger.warning(
                f"Rate limit exceeded for {client_ip} on {endpoint} "
                f"({limit}/{window_seconds}s)"
            )
            return False

        try:
            self.db.add(
                RateLimit(
                    ip_address=client_ip,
                    endpoint=endpoint,
                    window_start=window_start,
                    request_count=1,
                )
            )
            self.db.commit()
            return True
        except IntegrityError:
            # A concurrent request opened the window first
            self.db.rollback()
            if self._increment(client_ip, endpoint, window_start, limit):
                return True
            logger.warning(f"Rate limit exceeded for {client_ip} on {endpoint}")
            return False

    def _window_exists(self, client_ip: str, endpoint: str, window_start: int) -> bool:
        row = (
            self.db.query(RateLimit.id)
            .filter(
                RateLimit.ip_address == client_ip,
                RateLimit.endpoint == endpoint,
                RateLimit.window_start == window_start,
            )
            .first()
        )
        return row is not None

    def _increment(self, client_ip: str, endpoint: str, window_start: int, limit: int) -> bool:
        result = self.db.execute(
            update(RateLimit)
            .where(
                RateLimit.ip_address == client_ip,
                RateLimit.endpoint == endpoint,
                RateLimit.window_start == window_start,
                RateLimit.request_count < limit,
            )
            .values(request_count=RateLimit.request_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            self.db.commit()
            return True
        return False

    def request_count(self, client_ip: str, endpoint: str, window_seconds: int) -> int:
        """Requests counted so far in the current window."""
        window_start = fixed_window_start(self.clock(), window_seconds)
        count = (
            self.db.query(RateLimit.request_count)
            .filter(
                RateLimit.ip_address == client_ip,
                RateLimit.endpoint == endpoint,
                RateLimit.window_start == window_start,
            )
            .scalar()
        )
        return count or 0

    def cleanup(self, retention_seconds: int = 3600) -> int:
        """Delete counters for windows that started before the retention period."""
        cutoff = int((self.clock() - timedelta(seconds=retention_seconds)).timestamp())
        deleted = (
            self.db.query(RateLimit)
            .filter(RateLimit.window_start < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted:
            logger.info(f"Removed {deleted} stale rate limit counters")
        return deleted
