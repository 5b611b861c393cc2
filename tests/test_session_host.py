import subprocess
from pathlib import Path

import pytest

from quicktunnel.services.tunnels import session_host as session_host_module
from quicktunnel.services.tunnels.exceptions import SessionHostError
from quicktunnel.services.tunnels.session_host import TmuxSessionHost, build_tunnel_command


class FakeTmux:
    """Records tmux invocations and answers from a canned table."""

    def __init__(self):
        self.calls = []
        self.responses = {}

    def __call__(self, cmd, capture_output=False, text=False):
        self.calls.append(cmd)
        returncode, stdout, stderr = self.responses.get(cmd[1], (0, "", ""))
        return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)


class StubProcessManager:
    def __init__(self, children):
        self.children = children
        self.asked = []

    def child_processes(self, parent_pid, name=None):
        self.asked.append((parent_pid, name))
        return self.children.get(parent_pid, [])


@pytest.fixture
def tmux(monkeypatch):
    fake = FakeTmux()
    monkeypatch.setattr(session_host_module.subprocess, "run", fake)
    return fake


def test_build_command_with_ttl():
    command = build_tunnel_command(
        "cloudflared", "http://localhost:3000", Path("/tmp/tunnel-3000.log"), 7200
    )
    assert command == (
        "cloudflared tunnel --url http://localhost:3000 "
        "> /tmp/tunnel-3000.log 2>&1 & TUNNEL_PID=$!; "
        "(sleep 7200 && kill $TUNNEL_PID 2>/dev/null) & "
        "wait $TUNNEL_PID"
    )


def test_build_command_quotes_paths():
    command = build_tunnel_command(
        "cloudflared", "http://localhost:3000", Path("/tmp/my tunnels/t.log")
    )
    assert "> '/tmp/my tunnels/t.log' 2>&1" in command
    assert "sleep" not in command


def test_create_session(tmux):
    host = TmuxSessionHost("tmux", "cloudflared", StubProcessManager({}))

    host.create_session("cftunnel-3000", "echo hi")

    assert tmux.calls == [["tmux", "new-session", "-d", "-s", "cftunnel-3000", "echo hi"]]


def test_create_session_failure(tmux):
    tmux.responses["new-session"] = (1, "", "duplicate session: cftunnel-3000\n")
    host = TmuxSessionHost("tmux", "cloudflared", StubProcessManager({}))

    with pytest.raises(SessionHostError) as exc_info:
        host.create_session("cftunnel-3000", "echo hi")
    assert "duplicate session" in str(exc_info.value)


def test_missing_tmux_binary(monkeypatch):
    def missing(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(session_host_module.subprocess, "run", missing)
    host = TmuxSessionHost("tmux", "cloudflared", StubProcessManager({}))

    with pytest.raises(SessionHostError):
        host.create_session("cftunnel-3000", "echo hi")
    assert host.has_session("cftunnel-3000") is False
    assert host.list_sessions() == []


def test_targets_match_exact_names(tmux):
    host = TmuxSessionHost("tmux", "cloudflared", StubProcessManager({}))

    assert host.has_session("cftunnel-30")
    assert host.kill_session("cftunnel-30")

    assert tmux.calls == [
        ["tmux", "has-session", "-t", "=cftunnel-30"],
        ["tmux", "kill-session", "-t", "=cftunnel-30"],
    ]


def test_has_session_false_on_error(tmux):
    tmux.responses["has-session"] = (1, "", "can't find session\n")
    host = TmuxSessionHost("tmux", "cloudflared", StubProcessManager({}))
    assert host.has_session("cftunnel-30") is False


def test_list_sessions(tmux):
    tmux.responses["list-sessions"] = (0, "cftunnel-3000\nwork\n\n", "")
    host = TmuxSessionHost("tmux", "cloudflared", StubProcessManager({}))
    assert host.list_sessions() == ["cftunnel-3000", "work"]


def test_list_sessions_without_server(tmux):
    tmux.responses["list-sessions"] = (1, "", "no server running on /tmp/tmux-0/default\n")
    host = TmuxSessionHost("tmux", "cloudflared", StubProcessManager({}))
    assert host.list_sessions() == []


def test_child_processes_filter_by_binary_name(tmux):
    tmux.responses["list-panes"] = (0, "100\n", "")
    processes = StubProcessManager({100: [201, 205]})
    host = TmuxSessionHost("tmux", "/usr/local/bin/cloudflared", processes)

    assert host.child_processes("cftunnel-3000") == [201, 205]
    assert host.spawned_pid("cftunnel-3000") == 201
    assert processes.asked[0] == (100, "cloudflared")
    assert tmux.calls[0] == [
        "tmux", "list-panes", "-s", "-t", "=cftunnel-3000", "-F", "#{pane_pid}"
    ]


def test_spawned_pid_none_without_panes(tmux):
    tmux.responses["list-panes"] = (1, "", "can't find session\n")
    host = TmuxSessionHost("tmux", "cloudflared", StubProcessManager({}))
    assert host.spawned_pid("cftunnel-3000") is None
