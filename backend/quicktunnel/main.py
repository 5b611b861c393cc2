from fastapi import FastAPI

from quicktunnel.core.config import settings
from quicktunnel.core.logging import logger, console
from quicktunnel.routers import health, tunnels

app = FastAPI(
    title=settings.PROJECT_NAME, openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

app.include_router(
    tunnels.router, prefix=f"{settings.API_V1_STR}/tunnels", tags=["tunnels"]
)
app.include_router(health.router, prefix="/health", tags=["health"])


@app.on_event("startup")
async def startup_event():
    """Log the effective configuration at startup."""
    logger.info(f"[bold green]Starting {settings.PROJECT_NAME}[/bold green]")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info("Configuration loaded:")
    logger.info(f"  [cyan]State directory:[/cyan] {settings.TUNNEL_STATE_DIR}")
    logger.info(f"  [cyan]Session prefix:[/cyan] {settings.TUNNEL_SESSION_PREFIX}")
    logger.info(f"  [cyan]Max concurrent tunnels:[/cyan] {settings.TUNNEL_MAX_CONCURRENT}")
    logger.info(f"  [cyan]Default TTL:[/cyan] {settings.TUNNEL_DEFAULT_TTL}")


@app.get("/")
def read_root():
    return {"message": f"Welcome to the {settings.PROJECT_NAME} API"}


if __name__ == "__main__":
    import uvicorn

    console.print("[bold green]Starting development server...[/bold green]")
    uvicorn.run(
        "quicktunnel.main:app",
        host="127.0.0.1",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
