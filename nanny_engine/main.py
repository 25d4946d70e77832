"""
Sync Engine - Main Entry Point.

Starts the dashboard sync engine that:
1. Polls the grow controller for status and history
2. Reconciles measurement timestamps and aggregates statistics
3. Serves the view-model and operator commands over HTTP
"""
import asyncio
import logging
import sys
from typing import Optional

import uvicorn

from .api.app import create_app
from .config import EngineSettings, get_engine_settings
from .engine import DashboardEngine

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


async def serve(settings: Optional[EngineSettings] = None) -> None:
    """
    Run the engine and its HTTP surface until interrupted.

    uvicorn installs the SIGINT/SIGTERM handlers; the engine is stopped
    by the application lifespan on shutdown.
    """
    settings = settings or get_engine_settings()
    engine = DashboardEngine(settings=settings)
    app = create_app(engine)

    config = uvicorn.Config(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)

    logger.info(
        f"Serving {settings.app_name} on {settings.api.host}:{settings.api.port} "
        f"for device {settings.device.base_url}"
    )
    await server.serve()


def main() -> None:
    """Console script entry point."""
    settings = get_engine_settings()
    configure_logging(settings.log_level)

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
