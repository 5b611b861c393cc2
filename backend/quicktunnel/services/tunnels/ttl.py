"""
TTL parsing and formatting.

A TTL is an integer followed by h, m or s, or one of the literals
forever / none / 0 meaning the tunnel never expires.
"""

import re
import time
from typing import Optional

from .exceptions import InvalidTTL
from .schemas import ExpiryPolicy

_DURATION = re.compile(r"^([0-9]+)([hms])$")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}
_NO_EXPIRY = {"forever", "none", "0"}


def parse_ttl(ttl: str) -> Optional[int]:
    """
    Convert a TTL string into seconds.

    Returns:
        Number of seconds, or None for a tunnel that never expires

    Raises:
        InvalidTTL: If the value does not match the TTL grammar
    """
    if ttl is None:
        raise InvalidTTL("")
    value = str(ttl).strip()
    if value in _NO_EXPIRY:
        return None

    match = _DURATION.match(value)
    if not match:
        raise InvalidTTL(ttl)

    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


def format_remaining(expiry: Optional[ExpiryPolicy], now: Optional[float] = None) -> str:
    """Human readable remaining lifetime of a tunnel."""
    if expiry is None:
        return "unknown"
    if expiry.is_forever:
        return "forever"

    now = time.time() if now is None else now
    remaining = expiry.remaining(now)
    if remaining <= 0:
        return "expired"
    if remaining >= 3600:
        return f"{remaining // 3600}h {remaining % 3600 // 60}m remaining"
    return f"{remaining // 60}m remaining"
