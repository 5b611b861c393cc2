import os
import shutil
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from quicktunnel import __version__
from quicktunnel.dependencies.tunnel_service import get_tunnel_service
from quicktunnel.services.tunnels.tunnel_service import TunnelService

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    state_dir_writable: bool
    tunnel_binary_found: bool
    version: str
    details: Dict[str, Any] = {}


@router.get("/", response_model=HealthResponse)
def health_check(service: TunnelService = Depends(get_tunnel_service)):
    """
    Report whether the manager can do its job: a writable state directory,
    plus the tunnel and session binaries on PATH.
    """
    state_dir = service.store.state_dir
    writable = state_dir.is_dir() and os.access(state_dir, os.W_OK)
    binary_found = shutil.which(service.settings.TUNNEL_BINARY) is not None
    tmux_found = shutil.which(service.settings.TMUX_BINARY) is not None

    details = {"state_dir": str(state_dir), "tmux_found": tmux_found}
    return HealthResponse(
        status="ok" if writable and binary_found and tmux_found else "degraded",
        state_dir_writable=writable,
        tunnel_binary_found=binary_found,
        version=__version__,
        details=details,
    )
