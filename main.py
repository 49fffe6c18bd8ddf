"""
FastAPI application entry point for the bubble overlay service.
"""

# Load .env before anything reads the environment
from dotenv import load_dotenv
load_dotenv()

import logging
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bubble_overlay.api.overlay import router as overlay_router
from bubble_overlay.config import get_settings
from bubble_overlay.logging_config import setup_logging

settings = get_settings()
setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description=(
            "Detects comic speech bubbles, reads and translates their text, "
            "and letters the translation back onto the page."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS middleware
    cors_origins = [o.strip() for o in settings.BACKEND_CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins if cors_origins else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(overlay_router)

    @app.on_event("startup")
    async def startup_event():
        """Pre-load the detector so the first request does not pay for it."""
        try:
            logger.info("Pre-loading detector model...")
            from bubble_overlay.services.overlay_service import get_overlay_service
            get_overlay_service()._get_detector()._get_session()
            logger.info("Detector ready.")
        except Exception as e:
            logger.warning(f"Pre-loading failed (will retry on first request): {e}")

    return app


# Application instance
app = create_app()


def run():
    """Run the application with uvicorn."""
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    run()
