"""
FastAPI server for the realtime agent proxy.

This module builds the FastAPI application that exposes the proxy endpoint.
Voice-agent clients connect to it over WebSocket; each connection is paired
with its own OpenAI Realtime session and translated in both directions by
the ConnectionOrchestrator.
"""

from pathlib import Path
from typing import Optional

import dotenv
from fastapi import FastAPI, WebSocket

from agent_proxy import __version__
from agent_proxy.config.logging_config import ProxyLogger, configure_logging
from agent_proxy.config.settings import ProxySettings
from agent_proxy.proxy.orchestrator import ConnectionOrchestrator, UpstreamFactory

APP_NAME = "Realtime Agent Proxy"
APP_DESCRIPTION = "Voice-agent protocol proxy in front of the OpenAI Realtime API"


def create_app(
    settings: Optional[ProxySettings] = None,
    proxy_logger: Optional[ProxyLogger] = None,
    upstream_factory: Optional[UpstreamFactory] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Process settings (defaults to the environment)
        proxy_logger: Emitter for connection logs (defaults to a new ProxyLogger)
        upstream_factory: Builds the upstream client for each connection

    Returns:
        FastAPI: The application with the proxy, health and root endpoints
    """
    settings = settings or ProxySettings.from_env()
    orchestrator = ConnectionOrchestrator(settings, proxy_logger, upstream_factory=upstream_factory)

    app = FastAPI(
        title=APP_NAME,
        description=APP_DESCRIPTION,
        version=__version__,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    @app.websocket(settings.path)
    async def proxy_endpoint(websocket: WebSocket):
        """WebSocket endpoint for voice-agent clients.

        An optional ``traceId`` query parameter sets the correlation id carried
        by every log record of the connection.
        """
        await orchestrator.handle_websocket(websocket)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring system status.

        Returns:
            dict: Status information indicating the server is operational.
        """
        return {
            "status": "healthy",
            "openai_api_key_configured": bool(settings.openai_api_key),
            "active_connections": len(orchestrator.registry),
        }

    @app.get("/")
    async def root():
        """Root endpoint to display basic information about the API."""
        return {
            "name": APP_NAME,
            "description": APP_DESCRIPTION,
            "version": __version__,
            "endpoints": {
                settings.path: "WebSocket endpoint for voice-agent clients",
                "/health": "Health check endpoint",
            },
        }

    return app


# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

settings = ProxySettings.from_env()
logger = configure_logging(settings.log_level, settings.debug)
app = create_app(settings, logger)


if __name__ == "__main__":
    import uvicorn

    logger.emit("info", f"Starting proxy on ws://{settings.host}:{settings.port}{settings.path}")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        websocket_ping_interval=20,
        websocket_max_size=16777216,  # 16MB - large enough for audio frames
        http="h11",
    )
