"""Manual DingTalk delivery check.

Sends a canned review report (or a plain text message) to the configured
robot so operators can verify the webhook URL and signing secret without
pushing a commit.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from review_relay.config import settings
from review_relay.dependencies import get_notifier
from review_relay.exceptions import ConfigurationError
from review_relay.schemas.notifications import CommitInfo, NotifyResult, SampleNotifyRequest
from review_relay.schemas.review import Issue, ReviewResult
from review_relay.services.dingtalk import DingTalkNotifier

router = APIRouter(prefix="/test", tags=["test"])

SAMPLE_REVIEW = ReviewResult(
    overall_score=9,
    summary="This is a test message used to verify DingTalk notifications.",
    issues=[
        Issue(
            severity="low",
            type="style",
            file="test.js",
            message="This is a sample issue",
            suggestion="This is a sample suggestion",
        )
    ],
    positives=["Notifications are working", "Report layout renders"],
    recommendations=["Keep up the good coding habits"],
)


@router.post("/dingtalk", response_model=NotifyResult)
async def send_sample_notification(
    notifier: Annotated[DingTalkNotifier, Depends(get_notifier)],
    body: SampleNotifyRequest | None = None,
) -> NotifyResult:
    """Send a sample report to the configured DingTalk robot.

    Returns 400 when no DingTalk webhook URL is configured.
    """
    try:
        chat = settings.require_chat_config()
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None

    body = body or SampleNotifyRequest()
    text = body.message or "Sample commit message"

    if body.mode == "text":
        return await notifier.notify_text(chat, text)

    commit = CommitInfo(
        id="test123456789",
        short_id="test1234",
        message=text,
        author="Test User",
        url="https://gitlab.com/test/project/-/commit/test123456789",
        branch="main",
    )
    return await notifier.notify_commit(chat, "Test Project", commit, SAMPLE_REVIEW)
