"""
Session Host Adapter

One isolated tmux session per tunnel. The session runs a single shell line
that starts the tunnel binary in the background, optionally arms a
self-expiry timer next to it, and waits for it.
"""

import shlex
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from quicktunnel.core.logging import log_command, session_logger
from .exceptions import SessionHostError
from .process_manager import ProcessManager


def build_tunnel_command(
    binary: str,
    target_url: str,
    log_path: Path,
    ttl_seconds: Optional[int] = None,
) -> str:
    """
    Shell line run inside the session.

    The tunnel binary is backgrounded so the shell can wait on it; with a
    finite TTL a sleeping subshell kills it when the TTL elapses, whether or
    not the manager is still around.
    """
    launch = (
        f"{shlex.quote(binary)} tunnel --url {shlex.quote(target_url)} "
        f"> {shlex.quote(str(log_path))} 2>&1 & TUNNEL_PID=$!; "
    )
    if ttl_seconds is None:
        return launch + "wait $TUNNEL_PID"
    return (
        launch
        + f"(sleep {int(ttl_seconds)} && kill $TUNNEL_PID 2>/dev/null) & "
        + "wait $TUNNEL_PID"
    )


class SessionHost(ABC):
    """Capability interface over whatever provides per-tunnel isolation."""

    @abstractmethod
    def create_session(self, session_id: str, command: str) -> None:
        """Start a detached session running one shell command line."""

    @abstractmethod
    def has_session(self, session_id: str) -> bool:
        """Whether a session with exactly this name exists."""

    @abstractmethod
    def kill_session(self, session_id: str) -> bool:
        """Destroy a session by name; returns False if there was none."""

    @abstractmethod
    def list_sessions(self) -> List[str]:
        """Names of all existing sessions."""

    @abstractmethod
    def child_processes(self, session_id: str) -> List[int]:
        """Live tunnel-binary processes inside a session, oldest first."""

    def spawned_pid(self, session_id: str) -> Optional[int]:
        """First tunnel process spawned by the session, once it exists."""
        children = self.child_processes(session_id)
        return children[0] if children else None


class TmuxSessionHost(SessionHost):
    """SessionHost backed by the tmux CLI."""

    def __init__(
        self,
        tmux_binary: str = "tmux",
        process_name: str = "cloudflared",
        process_manager: Optional[ProcessManager] = None,
    ):
        self.tmux_binary = tmux_binary
        self.process_name = Path(process_name).name
        self.process_manager = process_manager or ProcessManager()

    def _tmux(self, *args: str) -> Optional[subprocess.CompletedProcess]:
        cmd = [self.tmux_binary, *args]
        log_command(session_logger, " ".join(cmd))
        try:
            return subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            session_logger.error(f"Could not run {self.tmux_binary}: {e}")
            return None

    @staticmethod
    def _target(session_id: str) -> str:
        # "=" makes tmux match the name exactly instead of by prefix
        return f"={session_id}"

    def create_session(self, session_id: str, command: str) -> None:
        result = self._tmux("new-session", "-d", "-s", session_id, command)
        if result is None:
            raise SessionHostError(f"{self.tmux_binary} is not available")
        if result.returncode != 0:
            raise SessionHostError(
                f"tmux new-session failed for {session_id}: {result.stderr.strip()}"
            )
        session_logger.info(f"Created session {session_id}")

    def has_session(self, session_id: str) -> bool:
        result = self._tmux("has-session", "-t", self._target(session_id))
        return result is not None and result.returncode == 0

    def kill_session(self, session_id: str) -> bool:
        result = self._tmux("kill-session", "-t", self._target(session_id))
        killed = result is not None and result.returncode == 0
        if killed:
            session_logger.info(f"Killed session {session_id}")
        return killed

    def list_sessions(self) -> List[str]:
        result = self._tmux("list-sessions", "-F", "#{session_name}")
        # no server running means no sessions
        if result is None or result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def pane_pids(self, session_id: str) -> List[int]:
        result = self._tmux(
            "list-panes", "-s", "-t", self._target(session_id), "-F", "#{pane_pid}"
        )
        if result is None or result.returncode != 0:
            return []
        pids = []
        for line in result.stdout.splitlines():
            line = line.strip()
            if line.isdigit():
                pids.append(int(line))
        return pids

    def child_processes(self, session_id: str) -> List[int]:
        children: List[int] = []
        for pane_pid in self.pane_pids(session_id):
            children.extend(
                self.process_manager.child_processes(pane_pid, name=self.process_name)
            )
        return children
