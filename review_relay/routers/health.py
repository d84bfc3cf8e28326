"""Health check and service info endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter

from review_relay.config import settings
from review_relay.schemas.health import HealthResponse, InfoResponse

router = APIRouter(tags=["health"])

SERVICE_VERSION = "1.0.0"


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Report liveness. The service holds no backing store, so there is nothing else to probe."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(UTC).isoformat(),
        service=settings.app_name,
    )


@router.get("/info", response_model=InfoResponse)
async def info() -> InfoResponse:
    """Describe the service, its active configuration choices and its endpoints."""
    return InfoResponse(
        service=settings.app_name,
        version=SERVICE_VERSION,
        description="Reviews commits from GitLab push events and reports to DingTalk",
        review_engine=settings.review_engine,
        notification_mode=settings.notification_mode,
        endpoints=[
            "POST /webhook/gitlab",
            "POST /test/dingtalk",
            "GET /health",
            "GET /info",
        ],
    )
