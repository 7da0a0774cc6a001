"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pixel_embedder.api.control import router as control_router
from pixel_embedder.app_logging import configure_logging
from pixel_embedder.containers import AppContainer


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        record = app.state.container.controller.check_session()
        if record is not None and record.queue:
            logger.info(
                "Found incomplete session %s: %s placed, %s remaining",
                record.session_id,
                record.placed_count,
                len(record.queue),
            )
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(control_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
