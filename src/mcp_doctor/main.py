"""FastAPI application entry point for MCP Doctor."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mcp_doctor import __version__
from mcp_doctor.api.routes import router
from mcp_doctor.config import get_settings

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    logger.info(f"Starting MCP Doctor v{__version__}")
    logger.info(
        f"Project dir: {settings.project_dir or '(cwd)'}, "
        f"home dir: {settings.home_dir or '(user home)'}, "
        f"probe timeout: {settings.probe_timeout_ms}ms"
    )

    yield

    logger.info("Shutting down MCP Doctor")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="MCP Doctor",
        description="Validation and capability probing for MCP tool servers",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.include_router(router)

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "mcp_doctor.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
