"""
Quick Tunnel Service

Orchestrates the tunnel lifecycle on top of the record store, the liveness
prober and the session host. This is the main service class used by the CLI
and the HTTP router.
"""

import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Union

from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_fixed

from quicktunnel.core.config import Settings, settings as default_settings
from quicktunnel.core.logging import log_tunnel_event, tunnel_logger
from quicktunnel.schemas.tunnel import (
    GCResponse,
    StartResponse,
    StatusResponse,
    StopResponse,
    StopResult,
    TunnelInfo,
    TunnelListResponse,
)
from .enums import ErrorKind, Protocol, TunnelStatus
from .exceptions import (
    ConcurrencyLimitExceeded,
    InvalidArgument,
    NotFound,
    ProcessExitedDuringStartup,
    SessionHostError,
    SessionStartFailed,
)
from .liveness import LivenessProber
from .process_manager import ProcessManager
from .reaper import Reaper
from .record_store import RecordStore
from .schemas import ExpiryPolicy, TunnelRecord
from .session_host import SessionHost, TmuxSessionHost, build_tunnel_command
from .ttl import format_remaining, parse_ttl


class TunnelService:
    """
    Lifecycle manager for quick tunnels.

    Every operation runs to completion synchronously. Operations that mutate
    a port hold that port's lock; cleanups of other ports seen along the way
    only happen when their lock is free.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        store: Optional[RecordStore] = None,
        session_host: Optional[SessionHost] = None,
        process_manager: Optional[ProcessManager] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = config or default_settings
        self.store = store or RecordStore(
            self.settings.TUNNEL_STATE_DIR, self.settings.TUNNEL_SESSION_PREFIX
        )
        self.process_manager = process_manager or ProcessManager(
            self.settings.TUNNEL_TERMINATE_TIMEOUT
        )
        self.process_name = Path(self.settings.TUNNEL_BINARY).name
        self.session_host = session_host or TmuxSessionHost(
            self.settings.TMUX_BINARY, self.process_name, self.process_manager
        )
        self.prober = LivenessProber(self.session_host, self.process_manager)
        self.reaper = Reaper(
            self.store,
            self.prober,
            self.session_host,
            self.process_manager,
            self.process_name,
        )
        self._sleep = sleep
        self._clock = clock
        self._endpoint_pattern = re.compile(
            r"https://[a-zA-Z0-9-]+\." + re.escape(self.settings.TUNNEL_PUBLIC_SUFFIX)
        )

    # -- operations -----------------------------------------------------

    def start(
        self,
        port: Union[int, str],
        protocol: Union[Protocol, str] = Protocol.HTTP,
        ttl: Optional[str] = None,
    ) -> StartResponse:
        """
        Start a tunnel for a local port, or return the one already running.

        Raises:
            InvalidArgument, InvalidTTL, ConcurrencyLimitExceeded,
            SessionStartFailed, ProcessExitedDuringStartup
        """
        port = self._validate_port(port)
        protocol = self._validate_protocol(protocol)
        ttl = ttl or self.settings.TUNNEL_DEFAULT_TTL
        ttl_seconds = parse_ttl(ttl)
        target = f"{protocol.value}://localhost:{port}"
        session_id = self.store.session_id(port)

        with self.store.lock(port):
            self._sweep_stale(exclude=port)

            existing = self.store.get(port)
            if existing is not None and self.prober.is_live(existing):
                tunnel_logger.info(
                    f"Tunnel already running on port {port} (PID: {existing.process_id})"
                )
                return StartResponse(
                    tunnel=self._to_info(existing),
                    target=target,
                    requested_ttl=ttl,
                    already_running=True,
                    notices=[ErrorKind.ALREADY_RUNNING],
                )
            if existing is not None or self.store.has_state(port) or \
                    self.session_host.has_session(session_id):
                tunnel_logger.info(f"Clearing leftover state for port {port}")
                self.reaper.teardown(port, existing)

            active = self._live_records(exclude=port)
            if len(active) >= self.settings.TUNNEL_MAX_CONCURRENT:
                raise ConcurrencyLimitExceeded(
                    self.settings.TUNNEL_MAX_CONCURRENT,
                    [self._to_info(record) for record in active],
                )

            expiry = ExpiryPolicy.from_ttl(ttl_seconds, self._clock())
            log_path = self.store.reset_log(port)
            command = build_tunnel_command(
                self.settings.TUNNEL_BINARY, target, log_path, ttl_seconds
            )

            tunnel_logger.info(f"Starting tunnel to {target} (TTL: {ttl})")
            try:
                self.session_host.create_session(session_id, command)
            except SessionHostError as e:
                self.store.delete(port)
                raise SessionStartFailed(session_id, str(e)) from e

            pid = self._poll(
                self.session_host.spawned_pid,
                session_id,
                timeout=self.settings.TUNNEL_PID_WAIT_TIMEOUT,
                interval=self.settings.TUNNEL_PID_POLL_INTERVAL,
            )
            if pid is None:
                tunnel_logger.error(f"No tunnel process appeared in session {session_id}")
                self.session_host.kill_session(session_id)
                self.store.delete(port)
                raise SessionStartFailed(session_id)

            record = TunnelRecord(
                port=port,
                session_id=session_id,
                log_path=log_path,
                process_id=pid,
                expiry=expiry,
            )
            self.store.put(record)

            endpoint = self._poll(
                self._discover_endpoint,
                record,
                timeout=self.settings.TUNNEL_URL_WAIT_TIMEOUT,
                interval=self.settings.TUNNEL_URL_POLL_INTERVAL,
            )

            if endpoint is None:
                warning = (
                    f"Could not detect tunnel URL within "
                    f"{self.settings.TUNNEL_URL_WAIT_TIMEOUT:g}s. "
                    f"Tunnel may still be starting."
                )
                tunnel_logger.warning(f"Port {port}: {warning}")
                return StartResponse(
                    tunnel=self._to_info(record),
                    target=target,
                    requested_ttl=ttl,
                    notices=[ErrorKind.ENDPOINT_DISCOVERY_TIMEOUT],
                    warning=warning,
                )

            record.public_endpoint = endpoint
            self.store.put(record)

        log_tunnel_event(
            "Tunnel running",
            {"URL": endpoint, "PID": pid, "Port": port, "Session": session_id, "TTL": ttl},
        )
        return StartResponse(
            tunnel=self._to_info(record), target=target, requested_ttl=ttl
        )

    def stop(self, port: Optional[Union[int, str]] = None) -> StopResponse:
        """Stop one tunnel, or every known tunnel when no port is given."""
        if port is not None:
            return StopResponse(stopped=[self._stop_one(self._validate_port(port))])

        ports = sorted(self.store.list_ports())
        if not ports:
            return StopResponse(message="No active tunnels found.")

        stopped = []
        for known_port in ports:
            try:
                stopped.append(self._stop_one(known_port))
            except NotFound:
                # stopped concurrently by someone else
                continue
        return StopResponse(stopped=stopped)

    def status(self, port: Union[int, str]) -> StatusResponse:
        port = self._validate_port(port)
        record = self.store.get(port)
        if record is None:
            raise NotFound(port)

        if self._observe(record) is TunnelStatus.LIVE:
            return StatusResponse(port=port, running=True, tunnel=self._to_info(record))
        return StatusResponse(port=port, running=False, stale=True)

    def list_tunnels(self) -> TunnelListResponse:
        tunnels: List[TunnelInfo] = []
        for port in sorted(self.store.list_ports()):
            record = self.store.get(port)
            if record is not None and self._observe(record) is TunnelStatus.LIVE:
                tunnels.append(self._to_info(record))

        return TunnelListResponse(
            tunnels=tunnels,
            count=len(tunnels),
            message=None if tunnels else "No active tunnels.",
        )

    def logs(self, port: Union[int, str]) -> str:
        port = self._validate_port(port)
        output = self.store.read_log(port)
        if output is None:
            raise NotFound(port, what="logs")
        return output

    def gc(self) -> GCResponse:
        return self.reaper.run()

    # -- helpers --------------------------------------------------------

    def _stop_one(self, port: int) -> StopResult:
        session_id = self.store.session_id(port)
        with self.store.lock(port):
            record = self.store.get(port)
            if record is None and not self.store.has_state(port) and \
                    not self.session_host.has_session(session_id):
                raise NotFound(port)

            pid = record.process_id if record else None
            was_running = self.reaper.teardown(port, record)

        if was_running:
            tunnel_logger.info(f"Stopped tunnel on port {port} (PID: {pid})")
        else:
            tunnel_logger.info(f"Tunnel on port {port} was not running (stale PID: {pid})")
        return StopResult(port=port, pid=pid, was_running=was_running)

    def _observe(self, record: TunnelRecord) -> TunnelStatus:
        """Probe a record and delete it if stale, unless its port is busy."""
        if self.prober.is_live(record):
            return TunnelStatus.LIVE

        with self.store.lock(record.port, blocking=False) as acquired:
            if acquired:
                current = self.store.get(record.port)
                if current is not None and not self.prober.is_live(current):
                    tunnel_logger.info(f"Cleaning up stale tunnel state for port {record.port}")
                    self.reaper.teardown(record.port, current)
        return TunnelStatus.STALE

    def _sweep_stale(self, exclude: Optional[int] = None) -> None:
        for port in sorted(self.store.list_ports()):
            if port == exclude:
                continue
            record = self.store.get(port)
            if record is not None:
                self._observe(record)

    def _live_records(self, exclude: Optional[int] = None) -> List[TunnelRecord]:
        live = []
        for port in sorted(self.store.list_ports()):
            if port == exclude:
                continue
            record = self.store.get(port)
            if record is not None and self.prober.is_live(record):
                live.append(record)
        return live

    def _discover_endpoint(self, record: TunnelRecord) -> Optional[str]:
        if not self.prober.is_live(record):
            output = self.store.read_log(record.port) or ""
            tunnel_logger.error(f"Tunnel process for port {record.port} exited during startup")
            self.reaper.teardown(record.port, record)
            raise ProcessExitedDuringStartup(record.port, output)

        match = self._endpoint_pattern.search(self.store.read_log(record.port) or "")
        return match.group(0) if match else None

    def _poll(self, fn: Callable, *args, timeout: float, interval: float):
        """Call fn until it returns something other than None, within a bounded number of attempts."""
        attempts = max(1, int(round(timeout / interval))) if interval > 0 else 1
        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(interval),
            retry=retry_if_result(lambda value: value is None),
            retry_error_callback=lambda retry_state: None,
            sleep=self._sleep,
        )
        return retrying(fn, *args)

    def _to_info(self, record: TunnelRecord) -> TunnelInfo:
        expires_at = None
        if record.expiry is not None and not record.expiry.is_forever:
            try:
                expires_at = datetime.fromtimestamp(record.expiry.expires_at, tz=timezone.utc)
            except (OverflowError, ValueError, OSError):
                # beyond what datetime can represent
                expires_at = None
        return TunnelInfo(
            port=record.port,
            pid=record.process_id,
            session=record.session_id,
            url=record.public_endpoint,
            ttl=format_remaining(record.expiry, self._clock()),
            expires_at=expires_at,
            log_file=str(record.log_path),
        )

    @staticmethod
    def _validate_port(port: Union[int, str]) -> int:
        if isinstance(port, bool):
            raise InvalidArgument(f"Invalid port: {port!r}")
        try:
            value = int(port)
        except (TypeError, ValueError):
            raise InvalidArgument(f"Invalid port: {port!r}. Expected an integer.") from None
        if not 1 <= value <= 65535:
            raise InvalidArgument(f"Invalid port: {value}. Expected 1-65535.")
        return value

    @staticmethod
    def _validate_protocol(protocol: Union[Protocol, str]) -> Protocol:
        try:
            return Protocol(str(getattr(protocol, "value", protocol)).lower())
        except ValueError:
            raise InvalidArgument(
                f"Invalid protocol: {protocol}. Use http or https."
            ) from None
