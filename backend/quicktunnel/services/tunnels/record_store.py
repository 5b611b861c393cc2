"""
Record Store for Quick Tunnels

Keeps one small file per fact and per port inside a single state directory:

    tunnel-<port>.pid   process id of the tunnel binary
    tunnel-<port>.url   discovered public endpoint
    tunnel-<port>.ttl   absolute expiry (epoch seconds) or "forever"
    tunnel-<port>.log   combined output of the tunnel binary
    tunnel-<port>.lock  per-port mutex, never removed

A record exists iff its pid file exists. Every other artifact is optional
and readers treat a missing or unreadable one as "not known yet".

Lock files outlive their records: any port that was ever started, stopped,
probed or swept keeps an empty tunnel-<port>.lock. They hold no state and are
bounded by the port range; deleting one while another process waits on it
would split the mutex.
"""

import fcntl
import os
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Set

from quicktunnel.core.logging import tunnel_logger
from .schemas import ExpiryPolicy, TunnelRecord

ARTIFACTS = ("pid", "url", "ttl", "log")
_ARTIFACT_NAME = re.compile(r"^tunnel-(\d+)\.(pid|url|ttl|log)$")


class RecordStore:
    """Filesystem-backed per-port tunnel state."""

    def __init__(self, state_dir: str, session_prefix: str = "cftunnel"):
        self.state_dir = Path(state_dir).expanduser()
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.session_prefix = session_prefix
        self._session_name = re.compile(rf"^{re.escape(session_prefix)}-(\d+)$")

    # -- naming ---------------------------------------------------------

    def path(self, port: int, artifact: str) -> Path:
        return self.state_dir / f"tunnel-{port}.{artifact}"

    def log_path(self, port: int) -> Path:
        return self.path(port, "log")

    def session_id(self, port: int) -> str:
        return f"{self.session_prefix}-{port}"

    def port_from_session(self, session_id: str) -> Optional[int]:
        """Port encoded in a session name, or None if the name is not ours."""
        match = self._session_name.match(session_id)
        return int(match.group(1)) if match else None

    # -- records --------------------------------------------------------

    def get(self, port: int) -> Optional[TunnelRecord]:
        pid_text = self._read(port, "pid")
        if pid_text is None:
            return None

        try:
            process_id = int(pid_text.strip())
        except ValueError:
            tunnel_logger.warning(f"Unreadable pid file for port {port}")
            process_id = None

        expiry = None
        ttl_text = self._read(port, "ttl")
        if ttl_text is not None:
            try:
                expiry = ExpiryPolicy.parse(ttl_text)
            except ValueError:
                tunnel_logger.warning(f"Unreadable ttl file for port {port}")

        endpoint = self._read(port, "url")
        endpoint = endpoint.strip() if endpoint else None

        return TunnelRecord(
            port=port,
            session_id=self.session_id(port),
            log_path=self.log_path(port),
            process_id=process_id,
            public_endpoint=endpoint or None,
            expiry=expiry,
        )

    def put(self, record: TunnelRecord) -> None:
        """Persist a record; the pid file is written last so it marks completeness."""
        if record.public_endpoint:
            self._write(record.port, "url", record.public_endpoint + "\n")
        if record.expiry is not None:
            self._write(record.port, "ttl", record.expiry.serialize() + "\n")
        if record.process_id is not None:
            self._write(record.port, "pid", f"{record.process_id}\n")

    def delete(self, port: int) -> None:
        """Remove every artifact of a port; missing ones are ignored."""
        # pid first, so a concurrent reader stops seeing a record before its details go
        for artifact in ARTIFACTS:
            try:
                self.path(port, artifact).unlink()
            except FileNotFoundError:
                pass

    def list_ports(self) -> Set[int]:
        """Ports that currently have a record (a pid file)."""
        return {
            port for port, artifact in self._scan() if artifact == "pid"
        }

    def artifact_ports(self) -> Set[int]:
        """Ports that have any artifact at all."""
        return {port for port, _ in self._scan()}

    def has_state(self, port: int) -> bool:
        return any(self.path(port, artifact).exists() for artifact in ARTIFACTS)

    # -- logs -----------------------------------------------------------

    def reset_log(self, port: int) -> Path:
        """Create an empty log file for a fresh start."""
        log_path = self.log_path(port)
        log_path.write_text("")
        return log_path

    def read_log(self, port: int) -> Optional[str]:
        return self._read(port, "log")

    # -- locking --------------------------------------------------------

    @contextmanager
    def lock(self, port: int, blocking: bool = True) -> Iterator[bool]:
        """
        Exclusive per-port lock shared across processes.

        Yields True when the lock is held. With blocking=False a port that is
        busy in another operation yields False immediately.
        """
        flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
        with open(self.path(port, "lock"), "a") as handle:
            try:
                fcntl.flock(handle.fileno(), flags)
            except BlockingIOError:
                yield False
                return
            try:
                yield True
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    # -- internals ------------------------------------------------------

    def _scan(self):
        for entry in self.state_dir.iterdir():
            match = _ARTIFACT_NAME.match(entry.name)
            if match:
                yield int(match.group(1)), match.group(2)

    def _read(self, port: int, artifact: str) -> Optional[str]:
        try:
            return self.path(port, artifact).read_text(errors="replace")
        except (FileNotFoundError, IsADirectoryError):
            return None

    def _write(self, port: int, artifact: str, content: str) -> None:
        # write to temp file first, then rename (atomic operation)
        target = self.path(port, artifact)
        temp_path = target.with_name(f".{target.name}.{os.getpid()}.tmp")
        try:
            temp_path.write_text(content)
            os.replace(temp_path, target)
        finally:
            if temp_path.exists():
                temp_path.unlink()
