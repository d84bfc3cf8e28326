"""Review engines that turn a commit's file diffs into a ``ReviewResult``.

``HeuristicReviewEngine`` is the default: a deterministic keyword scan that
starts every commit at 8/10 and adjusts the score per finding.
``LLMReviewEngine`` asks an ``LLMClient`` for the same structured result.
Both satisfy the ``ReviewEngine`` protocol, so the pipeline does not care
which one it is given.
"""

from __future__ import annotations

import re
from typing import Protocol

import structlog
from pydantic import ValidationError

from review_relay.exceptions import AnalysisError
from review_relay.schemas.review import FileDiff, Issue, LLMReview, ReviewResult
from review_relay.services.gemini_client import LLMClient

logger = structlog.get_logger()

BASE_SCORE = 8.0
MAX_CONTENT_CHARS = 5000
LARGE_DIFF_LINES = 100
MIN_MESSAGE_LENGTH = 10

CREDENTIAL_MARKERS = ("password", "secret", "token")
DEBUG_PRINT_MARKERS = ("console.log", "print(")
TODO_MARKERS = ("todo", "fixme")
TEST_MARKERS = ("test", "spec")
COMMENT_MARKERS = ("/**", "//")
CONVENTIONAL_COMMIT = re.compile(r"^(feat|fix|docs|style|refactor|test|chore):")

RECOMMEND_ALL_GOOD = "Code quality looks good, keep it up!"
RECOMMEND_LINT = "Run linters and static checks before committing"
RECOMMEND_AUDIT = "Audit the code base for security issues regularly"
RECOMMEND_STANDARDS = "Follow the project's coding standards and best practices"
RECOMMEND_MANUAL = "Please review this commit manually"


class ReviewEngine(Protocol):
    """Protocol for producing a structured review of one commit."""

    async def review(
        self,
        commit_message: str,
        author: str,
        files: list[FileDiff],
        project_name: str,
        commit_url: str,
    ) -> ReviewResult:
        """Review the commit's file diffs.

        Raises ``AnalysisError`` when no result can be produced.
        """
        ...


def truncate_content(files: list[FileDiff], limit: int = MAX_CONTENT_CHARS) -> list[FileDiff]:
    """Return copies of *files* whose content is cut to at most *limit* characters."""
    return [
        f.model_copy(update={"content": f.content[:limit]}) if f.content is not None else f
        for f in files
    ]


def fallback_review(error: Exception | str) -> ReviewResult:
    """Neutral result used when an engine fails, so the commit is still reported."""
    return ReviewResult(
        overall_score=5.0,
        summary=f"An error occurred during review: {error}",
        recommendations=[RECOMMEND_MANUAL],
    )


def build_recommendations(issues: list[Issue]) -> list[str]:
    """Derive recommendations from which issue categories are present."""
    if not issues:
        return [RECOMMEND_ALL_GOOD]
    recommendations = [RECOMMEND_LINT]
    types = {issue.type for issue in issues}
    if "security" in types:
        recommendations.append(RECOMMEND_AUDIT)
    if "maintainability" in types:
        recommendations.append(RECOMMEND_STANDARDS)
    return recommendations


class HeuristicReviewEngine:
    """Keyword-scan reviewer.

    Scores are not normalized by file count: one flagged file in a ten-file
    commit costs the same as in a one-file commit.
    """

    async def review(
        self,
        commit_message: str,
        author: str,
        files: list[FileDiff],
        project_name: str,
        commit_url: str,
    ) -> ReviewResult:
        try:
            return self._score(commit_message, files)
        except (AttributeError, TypeError, ValueError) as exc:
            raise AnalysisError(f"Code review analysis failed: {exc}") from exc

    def _score(self, commit_message: str, files: list[FileDiff]) -> ReviewResult:
        issues: list[Issue] = []
        positives: list[str] = []
        score = BASE_SCORE

        for file in files:
            diff = file.diff.lower()

            if any(marker in diff for marker in CREDENTIAL_MARKERS):
                issues.append(
                    Issue(
                        severity="high",
                        type="security",
                        file=file.file_path,
                        message="The change may contain sensitive data (password, secret, token)",
                        suggestion="Load credentials from environment variables or a secret store",
                    )
                )
                score -= 2

            if any(marker in diff for marker in DEBUG_PRINT_MARKERS):
                issues.append(
                    Issue(
                        severity="low",
                        type="style",
                        file=file.file_path,
                        message="The change contains debug output statements",
                        suggestion="Remove them or use a proper logging framework",
                    )
                )
                score -= 0.5

            if any(marker in diff for marker in TODO_MARKERS):
                issues.append(
                    Issue(
                        severity="medium",
                        type="maintainability",
                        file=file.file_path,
                        message="The change contains TODO/FIXME comments",
                        suggestion="Resolve them or track them in the issue tracker",
                    )
                )

            if len(file.diff.split("\n")) > LARGE_DIFF_LINES:
                issues.append(
                    Issue(
                        severity="medium",
                        type="maintainability",
                        file=file.file_path,
                        message="This file has a large change set",
                        suggestion="Split large changes into smaller, logically related commits",
                    )
                )
                score -= 1

            if any(marker in diff for marker in TEST_MARKERS):
                positives.append(f"Includes test code in {file.file_path}")
                score += 0.5

            if any(marker in diff for marker in COMMENT_MARKERS):
                positives.append(f"{file.file_path} is well commented")

        if len(commit_message) < MIN_MESSAGE_LENGTH:
            issues.append(
                Issue(
                    severity="low",
                    type="documentation",
                    file="commit",
                    message="The commit message is too short",
                    suggestion="Describe what the change does and why",
                )
            )
            score -= 0.5

        if CONVENTIONAL_COMMIT.match(commit_message):
            positives.append("Uses the conventional commit message format")
            score += 0.5

        summary = f"The commit changes {len(files)} file(s). "
        if issues:
            summary += f"Found {len(issues)} issue(s) that need attention."
        else:
            summary += "Code quality looks good."
        if positives:
            summary += f" {len(positives)} positive aspect(s) noted."

        return ReviewResult(
            overall_score=score,
            summary=summary,
            issues=issues,
            positives=positives,
            recommendations=build_recommendations(issues),
        )


def build_review_prompt(
    commit_message: str,
    author: str,
    files: list[FileDiff],
    project_name: str,
    commit_url: str,
) -> str:
    """Format commit metadata and file diffs into the LLM user content."""
    parts = [
        f"Project: {project_name}",
        f"Author: {author}",
        f"Commit message: {commit_message}",
        f"Commit URL: {commit_url}",
        "",
        "Changed files:",
    ]
    for file in truncate_content(files):
        section = f"File: {file.file_path}\nDiff:\n{file.diff}"
        if file.content is not None:
            section += f"\n\nContent excerpt:\n{file.content}"
        parts.append(section)
        parts.append("---")
    return "\n".join(parts)


class LLMReviewEngine:
    """Reviewer that delegates the assessment to an ``LLMClient``."""

    def __init__(self, llm_client: LLMClient) -> None:
        self._llm = llm_client

    async def review(
        self,
        commit_message: str,
        author: str,
        files: list[FileDiff],
        project_name: str,
        commit_url: str,
    ) -> ReviewResult:
        """Ask the LLM for a review and validate it into a ``ReviewResult``.

        Raises:
            AnalysisError: If the LLM call fails or returns an invalid review.
        """
        prompt = build_review_prompt(commit_message, author, files, project_name, commit_url)
        try:
            raw = await self._llm.generate_review(prompt)
        except Exception as exc:
            raise AnalysisError(f"LLM review request failed: {exc}") from exc

        try:
            parsed = LLMReview.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("llm_review_invalid", errors=exc.error_count())
            raise AnalysisError("LLM returned an invalid review") from exc

        return ReviewResult(
            overall_score=parsed.overall_score,
            summary=parsed.summary,
            issues=[Issue.model_validate(issue.model_dump()) for issue in parsed.issues],
            positives=parsed.positives,
            recommendations=parsed.recommendations,
        )
