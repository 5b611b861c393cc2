"""
Exceptions raised by tunnel lifecycle operations.
"""

from typing import List, Optional

from .enums import ErrorKind


class TunnelError(Exception):
    """Base exception for all tunnel operation failures."""
    kind: ErrorKind = ErrorKind.INVALID_ARGUMENT


class InvalidArgument(TunnelError):
    """Raised for a missing or malformed port, protocol or option."""
    kind = ErrorKind.INVALID_ARGUMENT


class InvalidTTL(TunnelError):
    """Raised when a TTL does not match N[h|m|s] or forever."""
    kind = ErrorKind.INVALID_TTL

    def __init__(self, ttl: str):
        self.ttl = ttl
        super().__init__(f"Invalid TTL: {ttl}. Use e.g. 2h, 30m, 90s, forever.")


class NotFound(TunnelError):
    """Raised when no tunnel state exists for a port."""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, port: int, what: str = "tunnel"):
        self.port = port
        if what == "logs":
            message = f"No logs found for port {port}."
        else:
            message = f"No tunnel found on port {port}."
        super().__init__(message)


class ConcurrencyLimitExceeded(TunnelError):
    """Raised when starting another tunnel would exceed the configured cap."""
    kind = ErrorKind.CONCURRENCY_LIMIT_EXCEEDED

    def __init__(self, limit: int, active: Optional[List] = None):
        self.limit = limit
        self.active = list(active or [])
        super().__init__(
            f"Maximum of {limit} concurrent tunnels reached. "
            f"Stop a tunnel first."
        )


class SessionStartFailed(TunnelError):
    """Raised when the hosting session never reported a tunnel process."""
    kind = ErrorKind.SESSION_START_FAILED

    def __init__(self, session_id: str, reason: str = "process id not reported"):
        self.session_id = session_id
        super().__init__(f"Failed to start tunnel in session {session_id} ({reason}).")


class ProcessExitedDuringStartup(TunnelError):
    """Raised when the tunnel process dies before publishing its endpoint."""
    kind = ErrorKind.PROCESS_EXITED_DURING_STARTUP

    def __init__(self, port: int, log_output: str = ""):
        self.port = port
        self.log_output = log_output
        super().__init__(f"Tunnel process for port {port} exited unexpectedly.")


class SessionHostError(Exception):
    """Raised by a session host when it cannot carry out a command."""
    pass
