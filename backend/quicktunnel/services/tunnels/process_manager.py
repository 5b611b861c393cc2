"""
Process Manager for Quick Tunnels

Existence checks, termination and child enumeration of OS processes.
Operates independently of the record store and of the session host.
"""

from typing import List, Optional

import psutil

from quicktunnel.core.logging import tunnel_logger


class ProcessManager:
    """
    Thin psutil wrapper used by the liveness prober, the lifecycle manager
    and the reaper.

    It never decides what should be killed - callers do that.
    """

    def __init__(self, terminate_timeout: float = 5.0):
        self.terminate_timeout = terminate_timeout

    def process_exists(self, pid: int) -> bool:
        """
        Check whether a process with the given PID exists.

        A process we are not allowed to inspect still exists; a zombie does not.
        """
        if pid is None or pid <= 0:
            return False
        if not psutil.pid_exists(pid):
            return False
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            return True

    def terminate_process(self, pid: int, name: Optional[str] = None) -> bool:
        """
        Best-effort termination of a process.

        Args:
            pid: Process ID to terminate
            name: If given, only a process with this executable name is touched,
                which protects against PIDs recycled by unrelated programs

        Returns:
            True if a running process was terminated
        """
        try:
            process = psutil.Process(pid)
            if name is not None and process.name() != name:
                tunnel_logger.warning(
                    f"Not terminating PID {pid}: it is {process.name()!r}, not {name!r}"
                )
                return False

            # Try graceful termination first
            process.terminate()

            try:
                process.wait(timeout=self.terminate_timeout)
                tunnel_logger.info(f"Process {pid} terminated gracefully")
            except psutil.TimeoutExpired:
                # Force kill if graceful termination failed
                process.kill()
                process.wait(timeout=2)
                tunnel_logger.warning(f"Process {pid} force killed")
            return True

        except psutil.NoSuchProcess:
            tunnel_logger.debug(f"Process {pid} already dead")
            return False
        except (psutil.AccessDenied, psutil.TimeoutExpired) as e:
            tunnel_logger.error(f"Failed to terminate process {pid}: {e}")
            return False

    def child_processes(self, parent_pid: int, name: Optional[str] = None) -> List[int]:
        """Direct children of a process, oldest first, optionally filtered by name."""
        try:
            children = psutil.Process(parent_pid).children()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return []

        matching = []
        for child in children:
            try:
                if name is not None and child.name() != name:
                    continue
                matching.append((child.create_time(), child.pid))
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return [pid for _, pid in sorted(matching)]
