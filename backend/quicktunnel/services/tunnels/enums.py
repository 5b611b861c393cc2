"""
Enums for Quick Tunnel Management

Defines protocol, status and error-kind enumerations used throughout the tunnel system.
"""

from enum import Enum


class Protocol(str, Enum):
    """Scheme of the local service exposed through the tunnel."""
    HTTP = "http"
    HTTPS = "https"


class TunnelStatus(str, Enum):
    """Observed state of a persisted tunnel record."""
    LIVE = "LIVE"
    STALE = "STALE"


class ErrorKind(str, Enum):
    """Every outcome kind an operation can report besides plain success."""
    INVALID_ARGUMENT = "InvalidArgument"
    INVALID_TTL = "InvalidTTL"
    NOT_FOUND = "NotFound"
    ALREADY_RUNNING = "AlreadyRunning"
    CONCURRENCY_LIMIT_EXCEEDED = "ConcurrencyLimitExceeded"
    SESSION_START_FAILED = "SessionStartFailed"
    PROCESS_EXITED_DURING_STARTUP = "ProcessExitedDuringStartup"
    ENDPOINT_DISCOVERY_TIMEOUT = "EndpointDiscoveryTimeout"
