from typing import Callable, Dict, List, Optional

import pytest

from quicktunnel.core.config import Settings
from quicktunnel.services.tunnels.exceptions import SessionHostError
from quicktunnel.services.tunnels.record_store import RecordStore
from quicktunnel.services.tunnels.session_host import SessionHost
from quicktunnel.services.tunnels.tunnel_service import TunnelService

NOW = 1_700_000_000.0


class FakeProcessManager:
    """In-memory process table."""

    def __init__(self):
        self.alive = set()
        self.terminated: List[int] = []

    def process_exists(self, pid):
        return pid in self.alive

    def terminate_process(self, pid, name=None):
        self.terminated.append(pid)
        if pid in self.alive:
            self.alive.discard(pid)
            return True
        return False

    def child_processes(self, parent_pid, name=None):
        return []


class FakeSessionHost(SessionHost):
    """
    Sessions are a name -> child pid list mapping. Creating a session spawns
    one tunnel process unless spawn is turned off.
    """

    def __init__(self, processes: FakeProcessManager):
        self.processes = processes
        self.sessions: Dict[str, List[int]] = {}
        self.commands: Dict[str, str] = {}
        self.created: List[str] = []
        self.killed: List[str] = []
        self.next_pid = 4000
        self.spawn = True
        self.fail_create = False
        self.on_create: Optional[Callable[[str, List[int]], None]] = None

    def add_process(self, session_id: str) -> int:
        pid = self.next_pid
        self.next_pid += 1
        self.processes.alive.add(pid)
        self.sessions.setdefault(session_id, []).append(pid)
        return pid

    def create_session(self, session_id, command):
        if self.fail_create:
            raise SessionHostError("tmux is not available")
        self.created.append(session_id)
        self.commands[session_id] = command
        self.sessions[session_id] = []
        if self.spawn:
            self.add_process(session_id)
        if self.on_create:
            self.on_create(session_id, self.sessions[session_id])

    def has_session(self, session_id):
        return session_id in self.sessions

    def kill_session(self, session_id):
        children = self.sessions.pop(session_id, None)
        if children is None:
            return False
        self.killed.append(session_id)
        for pid in children:
            self.processes.alive.discard(pid)
        return True

    def list_sessions(self):
        return list(self.sessions)

    def child_processes(self, session_id):
        return [pid for pid in self.sessions.get(session_id, []) if pid in self.processes.alive]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        TUNNEL_STATE_DIR=str(tmp_path / "state"),
        TUNNEL_MAX_CONCURRENT=2,
    )


@pytest.fixture
def processes():
    return FakeProcessManager()


@pytest.fixture
def host(processes):
    return FakeSessionHost(processes)


@pytest.fixture
def store(settings):
    return RecordStore(settings.TUNNEL_STATE_DIR, settings.TUNNEL_SESSION_PREFIX)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(settings, store, host, processes, sleeps):
    return TunnelService(
        config=settings,
        store=store,
        session_host=host,
        process_manager=processes,
        sleep=sleeps.append,
        clock=lambda: NOW,
    )


@pytest.fixture
def publish_url(store):
    """Make every new session print a public URL into its log."""

    def install(host: FakeSessionHost, label: str = "quiet-river") -> None:
        def write_url(session_id, children):
            port = store.port_from_session(session_id)
            store.log_path(port).write_text(
                "INF Requesting new quick Tunnel on trycloudflare.com...\n"
                f"INF |  https://{label}-{port}.trycloudflare.com  |\n"
            )

        host.on_create = write_url

    return install
