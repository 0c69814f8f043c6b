"""
ComeCome Utilities Package

Contains clock and token helpers shared by the auth services.
"""

from .time_utils import (
    Clock,
    ensure_aware,
    fixed_window_start,
    format_utc,
    minutes_remaining,
    utc_now,
)
from .token_utils import (
    GUEST_TOKEN_BYTES,
    SESSION_TOKEN_BYTES,
    generate_token,
    mask_token,
)

__all__ = [
    "Clock",
    "utc_now",
    "ensure_aware",
    "fixed_window_start",
    "format_utc",
    "minutes_remaining",
    "generate_token",
    "mask_token",
    "SESSION_TOKEN_BYTES",
    "GUEST_TOKEN_BYTES",
]
