"""PII utilities for safe logging of LINE user identifiers."""

import hashlib
import hmac

from app.core.config import settings


def hash_pii(value: str) -> str:
    """
    Hash a LINE user id (or any PII) for logs and span attributes.

    HMAC-SHA256 keyed with PII_HASH_SECRET: stable across processes so log
    lines for the same user can be correlated, but not reversible without
    the secret.

    Args:
        value: Value to hash

    Returns:
        64-character lowercase hexadecimal digest

    Raises:
        ValueError: If PII_HASH_SECRET is not configured
    """
    if not settings.PII_HASH_SECRET:
        msg = "PII_HASH_SECRET must be configured and non-empty"
        raise ValueError(msg)
    secret = settings.PII_HASH_SECRET.encode()
    return hmac.new(secret, value.encode(), hashlib.sha256).hexdigest()
