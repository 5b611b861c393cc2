from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse

from quicktunnel.core.logging import logger
from quicktunnel.dependencies.tunnel_service import get_tunnel_service
from quicktunnel.schemas.tunnel import (
    ErrorResponse,
    GCResponse,
    StartRequest,
    StartResponse,
    StatusResponse,
    StopResponse,
    TunnelListResponse,
)
from quicktunnel.services.tunnels.enums import ErrorKind
from quicktunnel.services.tunnels.exceptions import TunnelError
from quicktunnel.services.tunnels.tunnel_service import TunnelService

router = APIRouter()

HTTP_STATUS_BY_KIND = {
    ErrorKind.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_TTL: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONCURRENCY_LIMIT_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.SESSION_START_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.PROCESS_EXITED_DURING_STARTUP: status.HTTP_502_BAD_GATEWAY,
}


def _http_error(exc: TunnelError) -> HTTPException:
    """Translate a tunnel failure into an HTTP error carrying a structured payload."""
    detail = ErrorResponse(
        kind=exc.kind,
        message=str(exc),
        active=getattr(exc, "active", []),
        log=getattr(exc, "log_output", None),
    )
    status_code = HTTP_STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error(f"{exc.kind.value}: {exc}")
    return HTTPException(status_code=status_code, detail=detail.model_dump(mode="json"))


@router.get("/", response_model=TunnelListResponse)
def list_tunnels(service: TunnelService = Depends(get_tunnel_service)):
    """List live tunnels; stale entries are cleaned up on the way."""
    return service.list_tunnels()


@router.delete("/", response_model=StopResponse)
def stop_all_tunnels(service: TunnelService = Depends(get_tunnel_service)):
    return service.stop()


@router.post("/gc", response_model=GCResponse)
def collect_garbage(service: TunnelService = Depends(get_tunnel_service)):
    """Remove stale state, orphaned sessions and untracked tunnel processes."""
    return service.gc()


@router.post("/{port}", response_model=StartResponse)
def start_tunnel(
    port: int,
    request: StartRequest = StartRequest(),
    service: TunnelService = Depends(get_tunnel_service),
):
    """
    Start a quick tunnel for a local port.

    Returns the existing tunnel when one is already running on the port.
    """
    try:
        return service.start(port, protocol=request.protocol, ttl=request.ttl)
    except TunnelError as e:
        raise _http_error(e) from e


@router.get("/{port}", response_model=StatusResponse)
def tunnel_status(port: int, service: TunnelService = Depends(get_tunnel_service)):
    try:
        return service.status(port)
    except TunnelError as e:
        raise _http_error(e) from e


@router.delete("/{port}", response_model=StopResponse)
def stop_tunnel(port: int, service: TunnelService = Depends(get_tunnel_service)):
    try:
        return service.stop(port)
    except TunnelError as e:
        raise _http_error(e) from e


@router.get("/{port}/logs", response_class=PlainTextResponse)
def tunnel_logs(port: int, service: TunnelService = Depends(get_tunnel_service)):
    try:
        return service.logs(port)
    except TunnelError as e:
        raise _http_error(e) from e
