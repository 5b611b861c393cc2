"""
Schemas for Quick Tunnel Management

Data classes for persisted tunnel state.
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

FOREVER = "forever"


@dataclass(frozen=True)
class ExpiryPolicy:
    """Absolute expiry of a tunnel; expires_at of None means forever."""
    expires_at: Optional[float] = None

    @property
    def is_forever(self) -> bool:
        return self.expires_at is None

    @classmethod
    def forever(cls) -> "ExpiryPolicy":
        return cls(None)

    @classmethod
    def from_ttl(cls, ttl_seconds: Optional[int], now: Optional[float] = None) -> "ExpiryPolicy":
        """Turn a relative TTL (None for forever) into an absolute deadline."""
        if ttl_seconds is None:
            return cls.forever()
        now = time.time() if now is None else now
        return cls(float(int(now) + ttl_seconds))

    def remaining(self, now: Optional[float] = None) -> Optional[int]:
        """Seconds until expiry, or None when the tunnel never expires."""
        if self.expires_at is None:
            return None
        now = time.time() if now is None else now
        return int(self.expires_at - now)

    def serialize(self) -> str:
        if self.expires_at is None:
            return FOREVER
        return str(int(self.expires_at))

    @classmethod
    def parse(cls, text: str) -> "ExpiryPolicy":
        """Inverse of serialize; raises ValueError on garbage."""
        value = text.strip()
        if value == FOREVER:
            return cls.forever()
        try:
            return cls(float(int(value)))
        except OverflowError:
            raise ValueError(f"expiry out of range: {value[:32]}") from None


@dataclass
class TunnelRecord:
    """Durable per-port state of one tunnel."""
    port: int
    session_id: str
    log_path: Path
    process_id: Optional[int] = None
    public_endpoint: Optional[str] = None
    expiry: Optional[ExpiryPolicy] = None
