"""
PIN hashing and verification.

Uses bcrypt directly for salted one-way hashing of 4-digit PINs.
"""

import re

import bcrypt
from loguru import logger

PIN_PATTERN = re.compile(r"[0-9]{4}")


def is_valid_pin(pin) -> bool:
    """True for exactly four ASCII digits."""
    return isinstance(pin, str) and PIN_PATTERN.fullmatch(pin) is not None


def hash_pin(pin: str, cost: int = 12) -> str:
    """
    Hash a PIN using bcrypt with automatic salt generation.

    Args:
        pin: 4-digit PIN
        cost: bcrypt work factor (log2 rounds)

    Returns:
        Bcrypt hash string (includes salt and algorithm info)
    """
    if not is_valid_pin(pin):
        raise ValueError("PIN must be exactly 4 digits")

    salt = bcrypt.gensalt(rounds=cost)
    hashed = bcrypt.hashpw(pin.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_pin(pin: str, pin_hash: str) -> bool:
    """
    Verify a PIN against a bcrypt hash.

    Args:
        pin: PIN to verify
        pin_hash: Bcrypt hash to verify against

    Returns:
        True if PIN matches, False otherwise
    """
    if not pin or not pin_hash:
        return False
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError as e:
        logger.warning(f"PIN verification failed on malformed hash: {e}")
        return False
