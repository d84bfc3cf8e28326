"""GitLab push webhook router."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request

from review_relay.config import settings
from review_relay.dependencies import get_pipeline
from review_relay.schemas.notifications import PipelineResult
from review_relay.services.pipeline import ReviewPipeline

logger = structlog.get_logger()

router = APIRouter(prefix="/webhook", tags=["webhooks"])


@router.post("/gitlab", response_model=PipelineResult)
async def gitlab_webhook(
    request: Request,
    pipeline: Annotated[ReviewPipeline, Depends(get_pipeline)],
) -> PipelineResult:
    """Receive a GitLab push hook and review every pushed commit.

    The raw body is handed to the pipeline, which verifies the
    ``X-Gitlab-Token`` header before parsing.  Per-commit failures are
    reported in the response body; token mismatches, malformed payloads and
    missing configuration are mapped to error responses in ``main``.
    """
    body = await request.body()
    logger.info(
        "webhook_received",
        gitlab_event=request.headers.get("x-gitlab-event"),
        has_token="x-gitlab-token" in request.headers,
    )

    host = settings.require_code_host_config()
    chat = settings.require_chat_config()
    return await pipeline.run(request.headers, body, host, chat)
