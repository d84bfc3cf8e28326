"""Diff and review result models.

``ReviewResult`` is the shape every review engine must return.  The
``LLMReview*`` models are the structured output schema handed to Gemini and
intentionally have NO default values for compatibility with google-genai
``response_schema``.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

Severity = Literal["low", "medium", "high", "critical"]
IssueType = Literal["bug", "security", "performance", "style", "maintainability", "documentation"]
ContentStatus = Literal["fetched", "deleted", "unsupported_type", "unavailable"]

# Ordinal rank, most severe last.
SEVERITY_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2, "critical": 3}


class FileDiff(BaseModel):
    """Unified diff for one file, plus its content at the commit when available."""

    file_path: str
    diff: str
    content: str | None = None
    content_status: ContentStatus = Field(
        default="unavailable",
        description="Why content is present or absent",
    )


class CommitDiff(BaseModel):
    """All file diffs of one commit, in the order returned by the code host."""

    commit_id: str
    diff: str
    files: list[FileDiff] = Field(default_factory=list)


class Issue(BaseModel):
    """A single finding raised by a review engine."""

    severity: Severity
    type: IssueType
    file: str
    line: int | None = None
    message: str
    suggestion: str | None = None


class ReviewResult(BaseModel):
    """Structured quality assessment of a commit."""

    overall_score: float
    summary: str
    issues: list[Issue] = Field(default_factory=list)
    positives: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    @field_validator("overall_score")
    @classmethod
    def _clamp_score(cls, value: float) -> float:
        return max(0.0, min(10.0, value))


class LLMIssue(BaseModel):
    """Issue as returned by the LLM (simple, no defaults)."""

    severity: Severity
    type: IssueType
    file: str
    line: int | None
    message: str
    suggestion: str | None


class LLMReview(BaseModel):
    """Structured output schema for the Gemini API."""

    overall_score: float
    summary: str
    issues: list[LLMIssue]
    positives: list[str]
    recommendations: list[str]
