"""
Dependency injection for Tunnel Service
"""

from functools import lru_cache
from quicktunnel.services.tunnels.tunnel_service import TunnelService


@lru_cache()
def get_tunnel_service() -> TunnelService:
    """
    Dependency injection for TunnelService.

    Returns a singleton instance that will be reused across requests.
    All state lives on disk, so the instance itself only caches configuration.
    """
    return TunnelService()
