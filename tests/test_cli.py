import json

from quicktunnel.cli import main
from quicktunnel.services.tunnels.schemas import ExpiryPolicy, TunnelRecord


def _lines(capsys):
    return capsys.readouterr().out.splitlines()


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage: quicktunnel" in capsys.readouterr().out


def test_usage_error_exits_2(service, capsys):
    assert main(["start"], service=service) == 2
    assert main(["bogus"], service=service) == 2


def test_start(service, host, capsys, publish_url):
    publish_url(host)

    assert main(["start", "9100"], service=service) == 0

    assert _lines(capsys) == [
        "Starting tunnel to http://localhost:9100 (TTL: 2h)...",
        "Tunnel running!",
        "  URL: https://quiet-river-9100.trycloudflare.com",
        "  PID: 4000",
        "  Port: 9100",
        "  Session: cftunnel-9100",
        "  TTL: 2h",
    ]


def test_start_already_running(service, host, capsys, publish_url):
    publish_url(host)
    main(["start", "9100"], service=service)
    capsys.readouterr()

    assert main(["start", "9100", "--ttl", "30m"], service=service) == 0

    lines = _lines(capsys)
    assert "Tunnel already running on port 9100 (PID: 4000)" in lines
    assert "URL: https://quiet-river-9100.trycloudflare.com" in lines


def test_start_endpoint_timeout(service, store, capsys):
    assert main(["start", "9100"], service=service) == 0

    lines = _lines(capsys)
    assert lines[1].startswith("Warning: Could not detect tunnel URL within 15s")
    assert f"Check logs: {store.log_path(9100)}" in lines


def test_start_invalid_ttl(service, host, capsys):
    assert main(["start", "9100", "--ttl", "banana"], service=service) == 1
    assert _lines(capsys)[-1] == "Error: Invalid TTL: banana. Use e.g. 2h, 30m, 90s, forever."
    assert host.created == []


def test_start_over_limit(service, host, capsys, publish_url):
    publish_url(host)
    main(["start", "9100"], service=service)
    main(["start", "9101"], service=service)
    capsys.readouterr()

    assert main(["start", "9102"], service=service) == 1

    lines = _lines(capsys)
    assert "Error: Maximum of 2 concurrent tunnels reached." in lines
    assert lines[-1] == "Stop a tunnel first: quicktunnel stop <port>"
    assert sum(line.startswith("Port 91") for line in lines) == 2


def test_stop_and_not_found(service, host, capsys, publish_url):
    publish_url(host)
    main(["start", "9100"], service=service)
    capsys.readouterr()

    assert main(["stop", "9100"], service=service) == 0
    assert _lines(capsys) == ["Stopped tunnel on port 9100 (PID: 4000)"]

    assert main(["stop", "9100"], service=service) == 1
    assert _lines(capsys) == ["No tunnel found on port 9100."]


def test_stop_all_empty(service, capsys):
    assert main(["stop"], service=service) == 0
    assert _lines(capsys) == ["No active tunnels found."]


def test_list(service, host, capsys, publish_url):
    assert main(["list"], service=service) == 0
    assert _lines(capsys) == ["No active tunnels."]

    publish_url(host)
    main(["start", "9100", "--ttl", "forever"], service=service)
    capsys.readouterr()

    assert main(["list"], service=service) == 0
    assert _lines(capsys) == [
        "Port 9100 | PID 4000 | Session cftunnel-9100 | TTL forever | "
        "URL https://quiet-river-9100.trycloudflare.com"
    ]


def test_status_stale(service, store, capsys):
    store.put(
        TunnelRecord(
            port=2222,
            session_id=store.session_id(2222),
            log_path=store.log_path(2222),
            process_id=99999999,
            expiry=ExpiryPolicy.forever(),
        )
    )

    assert main(["status", "2222"], service=service) == 0
    assert _lines(capsys) == ["Tunnel on port 2222 is not running (stale entry). Cleaned up."]


def test_logs_verbatim(service, store, capsys):
    store.log_path(9100).write_text("[INF] line one\n[ERR] line two\n")

    assert main(["logs", "9100"], service=service) == 0
    assert capsys.readouterr().out == "[INF] line one\n[ERR] line two\n"


def test_gc_alias(service, host, capsys):
    host.add_process("cftunnel-55555")

    assert main(["cleanup"], service=service) == 0

    assert _lines(capsys) == [
        "Running garbage collection...",
        "  Killed orphaned session: cftunnel-55555",
        "Cleaned up 1 orphaned resource(s).",
    ]


def test_json_output(service, host, capsys, publish_url):
    publish_url(host)

    assert main(["--json", "start", "9100"], service=service) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["tunnel"]["url"] == "https://quiet-river-9100.trycloudflare.com"
    assert payload["notices"] == []

    assert main(["--json", "status", "1234"], service=service) == 1
    error = json.loads(capsys.readouterr().out)
    assert error["kind"] == "NotFound"
