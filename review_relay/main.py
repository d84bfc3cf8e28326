"""FastAPI application factory with lifespan context manager."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from review_relay.config import settings
from review_relay.dependencies import close_http_client, init_http_client
from review_relay.exceptions import AuthenticationError, ConfigurationError, EventPayloadError
from review_relay.logging_config import configure_logging
from review_relay.routers import health, notifications, webhooks


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan: create and close the shared HTTP client."""
    configure_logging(json_logs=not settings.debug, log_level=settings.log_level)
    init_http_client(settings.http_timeout_seconds)

    if settings.review_engine == "gemini" and settings.gcp_project:
        from review_relay.dependencies import init_production_deps

        init_production_deps(
            gcp_project=settings.gcp_project,
            gcp_location=settings.gcp_location,
            gemini_model=settings.gemini_model,
        )

    structlog.get_logger().info(
        "service_started",
        review_engine=settings.review_engine,
        notification_mode=settings.notification_mode,
        test_mode=settings.test_mode,
    )
    yield
    await close_http_client()


app = FastAPI(title=settings.app_name, lifespan=lifespan)


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    """Reject webhook calls whose token does not match."""
    structlog.get_logger().warning("webhook_rejected", path=request.url.path, reason=str(exc))
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": str(exc)})


@app.exception_handler(EventPayloadError)
async def payload_error_handler(request: Request, exc: EventPayloadError) -> JSONResponse:
    """Reject bodies that are not GitLab push payloads."""
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    """Report missing configuration as a structured server error."""
    structlog.get_logger().error("configuration_missing", path=request.url.path, reason=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": str(exc), "review_count": 0},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a JSON 500 response for any unhandled exception."""
    logger = structlog.get_logger()
    logger.exception("unhandled_exception", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(health.router)
app.include_router(webhooks.router)
app.include_router(notifications.router)


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run("review_relay.main:app", host=settings.host, port=settings.port, workers=1)
