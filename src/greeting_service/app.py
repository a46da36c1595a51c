"""
FastAPI application serving the static greeting.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from greeting_service.config import ServiceSettings

logger = logging.getLogger(__name__)


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Build the app around an explicit, immutable settings value."""
    settings = settings or ServiceSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("App running on port %d", settings.port)
        yield

    app = FastAPI(title="Greeting Service", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        """Root endpoint returning the configured greeting."""
        return PlainTextResponse(settings.greeting)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for the load balancer target group."""
        return {"status": "healthy", "service": settings.service_name}

    return app
