"""
Liveness Prober

The only place that decides whether a tunnel record is real.
"""

from quicktunnel.core.logging import tunnel_logger
from .process_manager import ProcessManager
from .schemas import TunnelRecord
from .session_host import SessionHost


class LivenessProber:
    """A record is live iff its session and its process both exist."""

    def __init__(self, session_host: SessionHost, process_manager: ProcessManager):
        self.session_host = session_host
        self.process_manager = process_manager

    def is_live(self, record: TunnelRecord) -> bool:
        if record.process_id is None:
            tunnel_logger.debug(f"Port {record.port}: no usable process id")
            return False

        session_alive = self.session_host.has_session(record.session_id)
        process_alive = self.process_manager.process_exists(record.process_id)

        if not (session_alive and process_alive):
            tunnel_logger.debug(
                f"Port {record.port} is stale: session_alive={session_alive}, "
                f"process_alive={process_alive}"
            )
            return False
        return True
