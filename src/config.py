"""
Centralized configuration module for ComeCome.
Reads configuration from env.properties file.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.absolute()

CONFIG_FILE = PROJECT_ROOT / "env.properties"

_config_cache: dict = {}


def _load_config() -> dict:
    """Load configuration from env.properties file."""
    global _config_cache
    if _config_cache:
        return _config_cache

    config = {}
    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    config[key.strip()] = value.strip()

    _config_cache = config
    return config


def get(key: str, default: Optional[str] = None) -> str:
    """Get a configuration value by key."""
    config = _load_config()
    # Environment variables take precedence
    env_value = os.environ.get(key)
    if env_value is not None:
        return env_value
    return config.get(key, default or "")


def get_int(key: str, default: int = 0) -> int:
    """Get a configuration value as integer."""
    value = get(key, str(default))
    try:
        return int(value)
    except ValueError:
        return default


def get_bool(key: str, default: bool = False) -> bool:
    """Get a configuration value as boolean."""
    value = get(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


# Server Configuration
BACKEND_HOST = get("BACKEND_HOST", "0.0.0.0")
BACKEND_PORT = get_int("BACKEND_PORT", 8080)

# Database Configuration
DATABASE_NAME = get("DATABASE_NAME", "comecome.db")
DATA_DIR = PROJECT_ROOT / get("DATA_DIR", "data")
DATABASE_PATH = DATA_DIR / DATABASE_NAME

# Logging Configuration
LOGS_DIR = PROJECT_ROOT / get("LOGS_DIR", "logs")

# Application Settings
APP_NAME = get("APP_NAME", "ComeCome")
APP_VERSION = get("APP_VERSION", "0.170")
ENVIRONMENT = get("ENVIRONMENT", "production")  # production, development, testing
DEFAULT_LOCALE = get("DEFAULT_LOCALE", "en-UK")

# Session cookie transport
SESSION_COOKIE_NAME = get("SESSION_COOKIE_NAME", "COMECOME_SESSION")
SECURE_COOKIES = get_bool("SECURE_COOKIES", False)

# Emergency unlock code shipped with fresh installs (change after install!)
DEFAULT_UNLOCK_CODE = "12345678"

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class AuthSettings:
    """Snapshot of the settings consumed by the auth core."""

    session_lifetime: int = 60 * 60 * 24 * 7
    rate_limit_auth: int = 5
    rate_limit_auth_window: int = 300
    rate_limit_api: int = 100
    rate_limit_api_window: int = 60
    rate_limit_guest: int = 50
    rate_limit_retention: int = 3600
    pin_hash_cost: int = 12
    pin_max_attempts: int = 5
    pin_lockout_duration: int = 300
    user_block_duration: int = 365 * 24 * 3600
    unlock_code: str = DEFAULT_UNLOCK_CODE
    log_audit: bool = True
    default_locale: str = "en-UK"

    # Durations, windows and limits; a zero window would break fixed-window bucketing.
    _POSITIVE_FIELDS = (
        "session_lifetime",
        "rate_limit_auth",
        "rate_limit_auth_window",
        "rate_limit_api",
        "rate_limit_api_window",
        "rate_limit_guest",
        "rate_limit_retention",
        "pin_max_attempts",
        "pin_lockout_duration",
        "user_block_duration",
    )

    def __post_init__(self):
        for name in self._POSITIVE_FIELDS:
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} must be at least 1, got {value}")
        # bcrypt accepts log rounds 4..31
        if not 4 <= self.pin_hash_cost <= 31:
            raise ValueError(f"pin_hash_cost must be between 4 and 31, got {self.pin_hash_cost}")

    @classmethod
    def from_config(cls) -> "AuthSettings":
        """Build settings from env.properties / environment, read at call time."""
        return cls(
            session_lifetime=get_int("SESSION_LIFETIME", cls.session_lifetime),
            rate_limit_auth=get_int("RATE_LIMIT_AUTH", cls.rate_limit_auth),
            rate_limit_auth_window=get_int(
                "RATE_LIMIT_AUTH_WINDOW", cls.rate_limit_auth_window
            ),
            rate_limit_api=get_int("RATE_LIMIT_API", cls.rate_limit_api),
            rate_limit_api_window=get_int(
                "RATE_LIMIT_API_WINDOW", cls.rate_limit_api_window
            ),
            rate_limit_guest=get_int("RATE_LIMIT_GUEST", cls.rate_limit_guest),
            rate_limit_retention=get_int(
                "RATE_LIMIT_RETENTION", cls.rate_limit_retention
            ),
            pin_hash_cost=get_int("PIN_HASH_COST", cls.pin_hash_cost),
            pin_max_attempts=get_int("PIN_MAX_ATTEMPTS", cls.pin_max_attempts),
            pin_lockout_duration=get_int(
                "PIN_LOCKOUT_DURATION", cls.pin_lockout_duration
            ),
            user_block_duration=get_int(
                "USER_BLOCK_DURATION", cls.user_block_duration
            ),
            unlock_code=get("UNLOCK_CODE", cls.unlock_code),
            log_audit=get_bool("LOG_AUDIT", cls.log_audit),
            default_locale=get("DEFAULT_LOCALE", cls.default_locale),
        )

