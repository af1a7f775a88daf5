"""
Module: main.py
Description: FastAPI application entry point for the Push Queue API.

Initializes the FastAPI application with the queue routes, middleware,
and error handlers, and exposes the Mangum handler for API Gateway.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi import status as status_codes
from fastapi.responses import JSONResponse
from mangum import Mangum

from push_queue.config.settings import settings
from push_queue.handlers.queue import router as queue_router
from push_queue.utils.logger import configure_logging, get_logger

configure_logging(settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info(
        "Starting Push Queue API",
        version=settings.app_version,
        stage=settings.stage,
        region=settings.aws_region
    )
    yield
    logger.info("Shutting down Push Queue API")


# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Reliable delivery queue for score and note push webhooks",
    version=settings.app_version,
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan
)

# Include routers
app.include_router(queue_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns basic application health information without touching
    the queue table.
    """
    logger.info("Health check requested")

    return {
        "status": "ok",
        "message": "Push Queue API is healthy",
        "version": settings.app_version,
        "environment": settings.stage
    }


def _error_response(status_code: int, message: str, error_type: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {
                "code": status_code,
                "message": message,
                "type": error_type
            }
        },
        headers=headers
    )


# Global exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Global HTTP exception handler.

    Logs HTTP exceptions and returns structured error responses.
    """
    logger.warning(
        "HTTP exception occurred",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method
    )

    return _error_response(exc.status_code, str(exc.detail), "http_exception", exc.headers)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors.

    Logs unexpected exceptions and returns generic error responses.
    """
    logger.error(
        "Unhandled exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method
    )

    return _error_response(
        status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        "internal_error"
    )


# Lambda handler
handler = Mangum(app, lifespan="off")
