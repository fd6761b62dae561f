"""FastAPI application entrypoint and configuration.

This module provides the main FastAPI application factory that sets up
logging, CORS middleware, includes the annotation API router, and exposes
a health check endpoint for monitoring.

Example:
    The application can be run with uvicorn:
        $ uvicorn maphub.main:app --reload

    Or imported and used programmatically:
        >>> from maphub.main import app
        >>> # Use app in ASGI server
"""

import fastapi
from fastapi.middleware import cors

from maphub.api import annotations
from maphub.core import config, logs


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Configures logging, sets up CORS middleware, includes the annotation
    router, and adds a health check endpoint. CORS origins are configured
    from settings.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = config.get_settings()
    logs.configure_logging(settings)
    app = fastapi.FastAPI(title="MapHub Annotations", version="0.1.0")

    app.include_router(annotations.router)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
