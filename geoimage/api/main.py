"""FastAPI entrypoint and HTTP routes."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from prometheus_client import make_asgi_app

from geoimage.api import auth, routes
from geoimage.api.context import AppContext, build_context
from geoimage.config.settings import get_settings
from geoimage.monitoring.logging import configure_logging


def create_app(context: AppContext | None = None) -> FastAPI:
    """
    Initialise the FastAPI application.

    A prebuilt ``context`` is used as-is (tests pass one with stubbed
    collaborators); otherwise the real clients are created on startup.
    """

    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        if app.state.context is None:
            app.state.context = build_context(settings)
        try:
            yield
        finally:
            await app.state.context.close()

    app = FastAPI(
        title="Geo Image Generator API",
        version="0.1.0",
        docs_url="/docs" if settings.environment != "prod" else None,
        redoc_url="/redoc" if settings.environment != "prod" else None,
        lifespan=lifespan,
    )
    app.state.context = context

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Simple health endpoint used for readiness checks."""

        return {"status": "ok"}

    app.include_router(auth.router)
    app.include_router(routes.collaborators)
    app.include_router(routes.session)
    app.mount("/metrics", make_asgi_app())

    return app


app = create_app()
