"""Communication Triage: Main FastAPI Application.

Turns incoming Gmail messages and Slack direct messages into pending
action cards for a browser extension, across many connected users.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .api import api_router
from .core import close_db, configure_logging, get_settings, init_db
from .schemas import ErrorResponse, HealthResponse

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    configure_logging()
    logger.info(f"Starting {settings.app_name} v{settings.app_version} ({settings.environment})")

    # Startup - skip init_db in production (tables already exist)
    if settings.environment != "production":
        try:
            await init_db()
        except SQLAlchemyError as e:
            logger.warning(f"Could not initialize database: {e}")
    yield
    # Shutdown
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Communication Triage API

    Ingests messages from connected accounts and files them as pending actions.

    - **Gmail**: OAuth connect, Pub/Sub push webhook, on-demand sync, watch activation
    - **Slack**: OAuth install, Events API webhook for direct messages

    Webhooks authenticate the provider (Slack request signing, Pub/Sub
    verification token); tenants are resolved from stored credentials.
    """,
    lifespan=lifespan,
)

# The browser extension calls from arbitrary origins and sends no cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}")
    if settings.debug:
        logger.error(traceback.format_exc())

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="internal_error",
            message=f"An unexpected error occurred: {str(exc)[:200]}",
            details=[],
        ).model_dump(),
    )


# Health check endpoint
@app.get("/health", tags=["health"], response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check with configuration readiness flags."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        database=settings.database_configured,
        gmail_oauth=settings.gmail_enabled,
        slack_oauth=settings.slack_enabled,
    )


# Include API routes
app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "comms_triage.main:app",
        host="0.0.0.0",
        port=3000,
        reload=settings.debug,
    )
