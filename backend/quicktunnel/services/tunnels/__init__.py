"""
Quick Tunnel Management Package

Building blocks of the tunnel lifecycle: persisted records, liveness,
session hosting and process control. The orchestrating TunnelService lives
in quicktunnel.services.tunnels.tunnel_service.
"""

from .enums import ErrorKind, Protocol, TunnelStatus
from .exceptions import (
    ConcurrencyLimitExceeded,
    InvalidArgument,
    InvalidTTL,
    NotFound,
    ProcessExitedDuringStartup,
    SessionHostError,
    SessionStartFailed,
    TunnelError,
)
from .liveness import LivenessProber
from .process_manager import ProcessManager
from .record_store import RecordStore
from .schemas import ExpiryPolicy, TunnelRecord
from .session_host import SessionHost, TmuxSessionHost
from .ttl import format_remaining, parse_ttl

__all__ = [
    'ErrorKind',
    'Protocol',
    'TunnelStatus',
    'TunnelError',
    'InvalidArgument',
    'InvalidTTL',
    'NotFound',
    'ConcurrencyLimitExceeded',
    'SessionStartFailed',
    'ProcessExitedDuringStartup',
    'SessionHostError',
    'LivenessProber',
    'ProcessManager',
    'RecordStore',
    'ExpiryPolicy',
    'TunnelRecord',
    'SessionHost',
    'TmuxSessionHost',
    'format_remaining',
    'parse_ttl',
]
