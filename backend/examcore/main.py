"""
Exam Session Engine - FastAPI Application
Main application entry point with middleware and route configuration
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from examcore.api.v1 import api_router
from examcore.core.config import settings
from examcore.core.database import init_db
from examcore.core.logging_config import configure_logging
from examcore.services.attempts import AttemptRepository
from examcore.services.drafts import DraftStore
from examcore.services.session_manager import SessionManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    await init_db()
    logger.info("[Startup] Database tables initialized")

    app.state.session_manager = SessionManager(AttemptRepository(), DraftStore())
    logger.info(f"[Startup] Drafts stored via {settings.DRAFT_BACKEND} backend")

    yield

    # Shutdown
    await app.state.session_manager.shutdown()
    logger.info("[Shutdown] Open sessions saved as drafts")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Timed test sessions, scoring and post-submission analysis",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "examcore.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
