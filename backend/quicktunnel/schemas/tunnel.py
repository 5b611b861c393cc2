from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from quicktunnel.services.tunnels.enums import ErrorKind, Protocol


class TunnelInfo(BaseModel):
    port: int = Field(..., description="Local port exposed through the tunnel")
    pid: Optional[int] = Field(None, description="PID of the tunnel process")
    session: str = Field(..., description="Name of the hosting session")
    url: Optional[str] = Field(None, description="Public endpoint, once discovered")
    ttl: str = Field(..., description="Remaining lifetime, e.g. '1h 59m remaining' or 'forever'")
    expires_at: Optional[datetime] = Field(None, description="Absolute expiry, absent for forever/unknown")
    log_file: str = Field(..., description="Path of the captured output")


class StartRequest(BaseModel):
    protocol: Protocol = Field(default=Protocol.HTTP, description="Scheme of the local service")
    ttl: Optional[str] = Field(default=None, description="2h, 30m, 90s or forever; server default when omitted")


class StartResponse(BaseModel):
    tunnel: TunnelInfo
    target: str = Field(..., description="Local address the tunnel forwards to")
    requested_ttl: str
    already_running: bool = False
    notices: List[ErrorKind] = []
    warning: Optional[str] = None


class StopResult(BaseModel):
    port: int
    pid: Optional[int] = None
    was_running: bool


class StopResponse(BaseModel):
    stopped: List[StopResult] = []
    message: Optional[str] = None


class StatusResponse(BaseModel):
    port: int
    running: bool
    stale: bool = False
    tunnel: Optional[TunnelInfo] = None


class TunnelListResponse(BaseModel):
    tunnels: List[TunnelInfo] = []
    count: int = 0
    message: Optional[str] = None


class GCResponse(BaseModel):
    cleaned: int = 0
    actions: List[str] = []
    message: str


class ErrorResponse(BaseModel):
    kind: ErrorKind
    message: str
    active: List[TunnelInfo] = []
    log: Optional[str] = None
