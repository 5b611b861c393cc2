import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme
from rich.traceback import install as install_rich_traceback

from quicktunnel.core.config import settings

# Install rich traceback handling
install_rich_traceback(show_locals=False)

theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "red",
        "debug": "grey50",
        "tunnel": "green",
        "session": "magenta",
        "gc": "blue",
    }
)

# User-facing output (CLI results) goes to stdout
console = Console(theme=theme)

# Diagnostics go to stderr so they never mix with scriptable output
log_console = Console(theme=theme, stderr=True)

rich_handler = RichHandler(
    console=log_console,
    rich_tracebacks=True,
    markup=True,
    show_time=True,
    show_path=settings.DEBUG,
)


def _level() -> int:
    if settings.DEBUG:
        return logging.DEBUG
    return getattr(logging, settings.LOG_LEVEL.upper(), logging.WARNING)


logger = logging.getLogger("quicktunnel")
logger.setLevel(_level())
logger.handlers = []
logger.addHandler(rich_handler)
logger.propagate = False


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance with rich formatting."""
    logger_name = name or "quicktunnel"
    named = logging.getLogger(logger_name)

    if not named.handlers:
        named.setLevel(_level())
        named.addHandler(rich_handler)
        named.propagate = False

    return named


# Component loggers
tunnel_logger = get_logger("quicktunnel.tunnel")
session_logger = get_logger("quicktunnel.session")
gc_logger = get_logger("quicktunnel.gc")


def log_command(logger: logging.Logger, command: str) -> None:
    """Log an external command execution with proper formatting."""
    logger.debug(f"[bold]Executing command:[/bold] {command}")


def log_tunnel_event(event: str, details: dict) -> None:
    """Log a tunnel lifecycle event with its details."""
    tunnel_logger.info(
        f"[bold]{event}[/bold]\n"
        + "\n".join(f"  [cyan]{k}:[/cyan] {v}" for k, v in details.items())
    )
