from pydantic_settings import BaseSettings
import os


class Settings(BaseSettings):
    # Debug settings
    DEBUG: bool = False
    LOG_LEVEL: str = "WARNING"

    # API settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "quicktunnel"

    # State directory - one set of files per port lives here
    TUNNEL_STATE_DIR: str = os.path.expanduser("~/.cloudflare-tunnels")
    TUNNEL_SESSION_PREFIX: str = "cftunnel"

    # Lifecycle limits
    TUNNEL_MAX_CONCURRENT: int = 5
    TUNNEL_DEFAULT_TTL: str = "2h"

    # External collaborators
    TUNNEL_BINARY: str = "cloudflared"
    TUNNEL_PUBLIC_SUFFIX: str = "trycloudflare.com"
    TMUX_BINARY: str = "tmux"

    # Polling (seconds)
    TUNNEL_PID_WAIT_TIMEOUT: float = 4.0
    TUNNEL_PID_POLL_INTERVAL: float = 0.2
    TUNNEL_URL_WAIT_TIMEOUT: float = 15.0
    TUNNEL_URL_POLL_INTERVAL: float = 0.5
    TUNNEL_TERMINATE_TIMEOUT: float = 5.0

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
