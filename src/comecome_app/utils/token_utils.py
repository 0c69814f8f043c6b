"""
Opaque token helpers for sessions and guest links.

Tokens are random bytes, hex-encoded, and used directly as lookup keys.
"""

import secrets

SESSION_TOKEN_BYTES = 32  # 256 bits -> 64 hex chars
GUEST_TOKEN_BYTES = 32


def generate_token(num_bytes: int = SESSION_TOKEN_BYTES) -> str:
    """
    Generate a cryptographically secure hex token.

    Args:
        num_bytes: Number of random bytes (hex output is twice as long)

    Returns:
        Lowercase hex string
    """
    return secrets.token_hex(num_bytes)


def mask_token(token: str) -> str:
    """Shorten a token for logs and audit details."""
    if not token:
        return ""
    return f"{token[:8]}..."
