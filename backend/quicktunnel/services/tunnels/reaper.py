"""
Reaper

Reconciles drift between the record store, the session host and the OS
process table. Every pass is idempotent and skips ports whose lock is held
by an operation in progress, so it can run next to start/stop calls.
"""

from typing import List, Optional

from quicktunnel.core.logging import gc_logger
from quicktunnel.schemas.tunnel import GCResponse
from .liveness import LivenessProber
from .process_manager import ProcessManager
from .record_store import RecordStore
from .schemas import TunnelRecord
from .session_host import SessionHost


class Reaper:
    """Garbage collector for stale records, orphaned sessions and processes."""

    def __init__(
        self,
        store: RecordStore,
        prober: LivenessProber,
        session_host: SessionHost,
        process_manager: ProcessManager,
        process_name: str = "cloudflared",
    ):
        self.store = store
        self.prober = prober
        self.session_host = session_host
        self.process_manager = process_manager
        self.process_name = process_name

    def teardown(self, port: int, record: Optional[TunnelRecord] = None) -> bool:
        """
        Remove everything belonging to a port: process, session and files.

        Callers must hold the port lock. Returns True if a running tunnel
        process was terminated.
        """
        record = record or self.store.get(port)
        was_running = False
        if record is not None and record.process_id is not None:
            was_running = self.process_manager.terminate_process(
                record.process_id, name=self.process_name
            )
        self.session_host.kill_session(self.store.session_id(port))
        self.store.delete(port)
        return was_running

    def run(self) -> GCResponse:
        gc_logger.info("Running garbage collection")
        actions: List[str] = []
        actions.extend(self.reap_stale_records())
        actions.extend(self.reap_untracked_sessions())
        actions.extend(self.reap_untracked_processes())
        actions.extend(self.reap_leftover_artifacts())

        if actions:
            message = f"Cleaned up {len(actions)} orphaned resource(s)."
        else:
            message = "Nothing to clean. No orphans found."
        gc_logger.info(message)
        return GCResponse(cleaned=len(actions), actions=actions, message=message)

    def reap_stale_records(self) -> List[str]:
        actions = []
        for port in sorted(self.store.list_ports()):
            with self.store.lock(port, blocking=False) as acquired:
                if not acquired:
                    gc_logger.debug(f"Port {port} is busy, skipping")
                    continue
                record = self.store.get(port)
                if record is None or self.prober.is_live(record):
                    continue
                self.teardown(port, record)
                actions.append(f"Removed stale tunnel state for port {port}")
        return actions

    def reap_untracked_sessions(self) -> List[str]:
        actions = []
        for session_id in self.session_host.list_sessions():
            port = self.store.port_from_session(session_id)
            if port is None or self.store.get(port) is not None:
                continue
            with self.store.lock(port, blocking=False) as acquired:
                # a start in progress owns a session before its record exists
                if not acquired or self.store.get(port) is not None:
                    continue
                for pid in self.session_host.child_processes(session_id):
                    self.process_manager.terminate_process(pid, name=self.process_name)
                if self.session_host.kill_session(session_id):
                    actions.append(f"Killed orphaned session: {session_id}")
        return actions

    def reap_untracked_processes(self) -> List[str]:
        actions = []
        for port in sorted(self.store.list_ports()):
            with self.store.lock(port, blocking=False) as acquired:
                if not acquired:
                    continue
                record = self.store.get(port)
                if record is None or not self.prober.is_live(record):
                    continue
                for pid in self.session_host.child_processes(record.session_id):
                    if pid == record.process_id:
                        continue
                    if self.process_manager.terminate_process(pid, name=self.process_name):
                        actions.append(
                            f"Killed orphaned tunnel process: PID {pid} "
                            f"(session: {record.session_id})"
                        )
        return actions

    def reap_leftover_artifacts(self) -> List[str]:
        actions = []
        for port in sorted(self.store.artifact_ports() - self.store.list_ports()):
            with self.store.lock(port, blocking=False) as acquired:
                if not acquired or self.store.get(port) is not None:
                    continue
                if self.session_host.has_session(self.store.session_id(port)):
                    continue
                self.store.delete(port)
                actions.append(f"Removed orphaned state files for port {port}")
        return actions
