"""FastAPI application factory.

Run with:
    uvicorn reccord.main:app --host 0.0.0.0 --port 8000
or:
    python -m reccord.main
"""

import uvicorn
from fastapi import FastAPI

from reccord.api import api_router, register_exception_handlers
from reccord.api.routers import health
from reccord.config import get_settings
from reccord.infrastructure.lifecycle import lifespan
from reccord.infrastructure.observability import RequestLoggingMiddleware


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title="Reccord",
        description="Keeps music lists in sync with Spotify and Apple Music",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(api_router, prefix="/api")
    app.include_router(health.router, prefix="/health", tags=["Health"])
    return app


app = create_app()


def main() -> None:
    """Console entry point (``reccord-server``)."""
    settings = get_settings()
    uvicorn.run(
        "reccord.main:app",
        host=settings.api.host,
        port=settings.api.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
