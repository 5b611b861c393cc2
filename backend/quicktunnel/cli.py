"""
Command line entry point.

    quicktunnel start <port> [--protocol http|https] [--ttl 2h|30m|forever]
    quicktunnel stop [port]
    quicktunnel list
    quicktunnel status <port>
    quicktunnel logs <port>
    quicktunnel gc

Exit status is 0 on success, 1 when the operation failed and 2 on usage errors.
"""

import argparse
import sys
from typing import List, Optional

from pydantic import BaseModel
from rich.markup import escape

from quicktunnel.core.logging import console
from quicktunnel.schemas.tunnel import ErrorResponse, TunnelInfo
from quicktunnel.services.tunnels.enums import ErrorKind
from quicktunnel.services.tunnels.exceptions import (
    ConcurrencyLimitExceeded,
    NotFound,
    ProcessExitedDuringStartup,
    TunnelError,
)
from quicktunnel.services.tunnels.tunnel_service import TunnelService

PROG = "quicktunnel"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG, description="Manage Cloudflare quick tunnels running in tmux sessions."
    )
    parser.add_argument(
        "--json", action="store_true", help="print structured JSON instead of text"
    )
    commands = parser.add_subparsers(dest="command", metavar="<command>")

    start = commands.add_parser("start", help="start a quick tunnel")
    start.add_argument("port", help="local port to expose")
    start.add_argument("--protocol", default="http", help="http or https (default: http)")
    start.add_argument("--ttl", default=None, help="2h, 30m, 90s or forever (default: 2h)")

    stop = commands.add_parser("stop", help="stop a tunnel (or all)")
    stop.add_argument("port", nargs="?", default=None)

    commands.add_parser("list", help="list active tunnels")

    status = commands.add_parser("status", help="check tunnel status")
    status.add_argument("port")

    logs = commands.add_parser("logs", help="show tunnel logs")
    logs.add_argument("port")

    commands.add_parser("gc", aliases=["cleanup"], help="clean up orphaned tunnels")
    commands.add_parser("help", help="show this help")
    return parser


def _echo(text: str = "") -> None:
    console.print(text, highlight=False, soft_wrap=True)


def _emit_json(payload: BaseModel) -> None:
    console.print_json(payload.model_dump_json())


def _tunnel_line(info: TunnelInfo) -> str:
    return (
        f"Port {info.port} | PID {info.pid} | Session {info.session} | "
        f"TTL {info.ttl} | URL {info.url or 'unknown'}"
    )


def _cmd_start(service: TunnelService, args, as_json: bool) -> int:
    if not as_json:
        protocol = escape(str(args.protocol))
        ttl = escape(args.ttl or service.settings.TUNNEL_DEFAULT_TTL)
        _echo(f"Starting tunnel to {protocol}://localhost:{escape(str(args.port))} (TTL: {ttl})...")

    result = service.start(args.port, protocol=args.protocol, ttl=args.ttl)
    if as_json:
        _emit_json(result)
        return 0

    info = result.tunnel
    if result.already_running:
        _echo(f"Tunnel already running on port {info.port} (PID: {info.pid})")
        _echo(f"URL: {info.url or 'unknown'}")
        _echo(f"Session: {info.session}")
    elif ErrorKind.ENDPOINT_DISCOVERY_TIMEOUT in result.notices:
        _echo(f"[warning]Warning:[/warning] {escape(result.warning)}")
        _echo(f"PID: {info.pid}")
        _echo(f"Session: {info.session}")
        _echo(f"Check logs: {info.log_file}")
    else:
        _echo("[tunnel]Tunnel running![/tunnel]")
        _echo(f"  URL: {info.url}")
        _echo(f"  PID: {info.pid}")
        _echo(f"  Port: {info.port}")
        _echo(f"  Session: {info.session}")
        _echo(f"  TTL: {escape(result.requested_ttl)}")
    return 0


def _cmd_stop(service: TunnelService, args, as_json: bool) -> int:
    result = service.stop(args.port)
    if as_json:
        _emit_json(result)
        return 0
    if result.message:
        _echo(result.message)
    for stopped in result.stopped:
        if stopped.was_running:
            _echo(f"Stopped tunnel on port {stopped.port} (PID: {stopped.pid})")
        else:
            _echo(
                f"Tunnel on port {stopped.port} was not running "
                f"(stale PID: {stopped.pid or 'unknown'})"
            )
    return 0


def _cmd_list(service: TunnelService, args, as_json: bool) -> int:
    result = service.list_tunnels()
    if as_json:
        _emit_json(result)
        return 0
    for info in result.tunnels:
        _echo(_tunnel_line(info))
    if result.message:
        _echo(result.message)
    return 0


def _cmd_status(service: TunnelService, args, as_json: bool) -> int:
    result = service.status(args.port)
    if as_json:
        _emit_json(result)
        return 0
    if not result.running:
        _echo(f"Tunnel on port {result.port} is not running (stale entry). Cleaned up.")
        return 0

    info = result.tunnel
    ttl = "expired (shutting down soon)" if info.ttl == "expired" else info.ttl
    _echo(f"Tunnel on port {info.port} is running.")
    _echo(f"  PID: {info.pid}")
    _echo(f"  URL: {info.url or 'unknown'}")
    _echo(f"  Session: {info.session}")
    _echo(f"  TTL: {ttl}")
    return 0


def _cmd_logs(service: TunnelService, args, as_json: bool) -> int:
    output = service.logs(args.port)
    # verbatim, no markup or wrapping
    sys.stdout.write(output)
    sys.stdout.flush()
    return 0


def _cmd_gc(service: TunnelService, args, as_json: bool) -> int:
    if not as_json:
        _echo("Running garbage collection...")
    result = service.gc()
    if as_json:
        _emit_json(result)
        return 0
    for action in result.actions:
        _echo(f"  {escape(action)}")
    _echo(result.message)
    return 0


COMMANDS = {
    "start": _cmd_start,
    "stop": _cmd_stop,
    "list": _cmd_list,
    "status": _cmd_status,
    "logs": _cmd_logs,
    "gc": _cmd_gc,
    "cleanup": _cmd_gc,
}


def _report_error(exc: TunnelError, as_json: bool) -> None:
    if as_json:
        _emit_json(
            ErrorResponse(
                kind=exc.kind,
                message=str(exc),
                active=getattr(exc, "active", []),
                log=getattr(exc, "log_output", None),
            )
        )
        return

    if isinstance(exc, NotFound):
        _echo(escape(str(exc)))
    elif isinstance(exc, ConcurrencyLimitExceeded):
        _echo(f"[error]Error:[/error] Maximum of {exc.limit} concurrent tunnels reached.")
        _echo("Active tunnels:")
        for info in exc.active:
            _echo(_tunnel_line(info))
        _echo()
        _echo(f"Stop a tunnel first: {PROG} stop <port>")
    elif isinstance(exc, ProcessExitedDuringStartup):
        _echo("[error]Error:[/error] tunnel process exited unexpectedly. Check logs:")
        sys.stdout.write(exc.log_output)
        sys.stdout.flush()
    else:
        _echo(f"[error]Error:[/error] {escape(str(exc))}")


def main(argv: Optional[List[str]] = None, service: Optional[TunnelService] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 2

    if args.command in (None, "help"):
        parser.print_help()
        return 0

    service = service or TunnelService()
    try:
        return COMMANDS[args.command](service, args, args.json)
    except TunnelError as e:
        _report_error(e, args.json)
        return 1


if __name__ == "__main__":
    sys.exit(main())
