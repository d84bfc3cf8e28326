"""Models for DingTalk notifications and pipeline results."""

from typing import Literal

from pydantic import BaseModel, Field

from review_relay.schemas.review import ReviewResult


class CommitInfo(BaseModel):
    """Commit header shown at the top of a single-commit report."""

    id: str
    short_id: str
    message: str
    author: str
    url: str
    branch: str = ""


class PushInfo(BaseModel):
    """Push header shown at the top of a batch report."""

    branch: str
    total_commits: int
    author: str


class CommitReview(BaseModel):
    """A commit paired with its review, one entry of a batch report."""

    commit: CommitInfo
    review: ReviewResult


class NotifyResult(BaseModel):
    """Outcome of one DingTalk delivery attempt."""

    success: bool
    message: str


class SampleNotifyRequest(BaseModel):
    """Body of ``POST /test/dingtalk``."""

    message: str | None = None
    mode: Literal["report", "text"] = "report"


class PipelineResult(BaseModel):
    """Aggregate outcome of one webhook run, returned to the HTTP caller."""

    success: bool
    message: str
    review_count: int = 0
    attempted: int = 0
    errors: list[str] = Field(default_factory=list)
