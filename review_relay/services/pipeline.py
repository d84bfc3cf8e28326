"""Review pipeline orchestration.

Sequences one push event through: validate -> for each commit {fetch diff ->
review -> notify} -> aggregate.  Failures are isolated per commit: an error
while handling one commit is recorded in the result and the remaining
commits are still processed.  Only request-level errors raised by
validation (bad token, malformed payload) escape ``run``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

import structlog

from review_relay.exceptions import AnalysisError, ReviewRelayError
from review_relay.schemas.config import ChatConfig, CodeHostConfig
from review_relay.schemas.notifications import CommitInfo, CommitReview, PipelineResult, PushInfo
from review_relay.schemas.webhooks import CommitRecord, ValidatedPush
from review_relay.services.dingtalk import Notifier
from review_relay.services.event_validator import validate_push_event
from review_relay.services.gitlab_client import DiffFetcher
from review_relay.services.review_engine import ReviewEngine, fallback_review, truncate_content

logger = structlog.get_logger()

NotificationMode = Literal["per_commit", "batch"]


@dataclass
class CommitOutcome:
    """What happened to one commit; ``status`` is notified, reviewed, skipped or failed."""

    commit: CommitRecord
    status: str
    review: CommitReview | None = None
    error: str | None = None


def _commit_info(commit: CommitRecord, branch: str) -> CommitInfo:
    return CommitInfo(
        id=commit.id,
        short_id=commit.short_id,
        message=commit.message,
        author=commit.author,
        url=commit.url,
        branch=branch,
    )


def summarize(outcomes: list[CommitOutcome], notified: int) -> PipelineResult:
    """Aggregate per-commit outcomes into the result returned to the caller."""
    attempted = sum(1 for o in outcomes if o.status != "skipped")
    errors = [f"{o.commit.short_id}: {o.error}" for o in outcomes if o.error]

    message = f"Reviewed {notified}/{attempted} commits"
    if errors:
        message += f". Errors: {'; '.join(errors)}"

    return PipelineResult(
        success=notified > 0,
        message=message,
        review_count=notified,
        attempted=attempted,
        errors=errors,
    )


class ReviewPipeline:
    """Runs the validate/fetch/review/notify pipeline for one push at a time.

    Collaborators are injected already constructed, so the pipeline never
    reads configuration or environment state itself.
    """

    def __init__(
        self,
        fetcher: DiffFetcher,
        engine: ReviewEngine,
        notifier: Notifier,
        *,
        expected_token: str | None = None,
        notification_mode: NotificationMode = "per_commit",
        max_concurrency: int = 1,
    ) -> None:
        self._fetcher = fetcher
        self._engine = engine
        self._notifier = notifier
        self._expected_token = expected_token or None
        self._mode = notification_mode
        self._max_concurrency = max(1, max_concurrency)

    async def run(
        self,
        headers: Mapping[str, str],
        body: bytes | str | Mapping[str, Any],
        host: CodeHostConfig,
        chat: ChatConfig,
    ) -> PipelineResult:
        """Process one inbound push event end to end.

        Raises:
            AuthenticationError: If the webhook token does not match.
            EventPayloadError: If the body is not a push payload.
        """
        push = validate_push_event(headers, body, self._expected_token)
        if not push.is_valid_push:
            return PipelineResult(success=True, message="Not a reviewable push event", review_count=0)

        log = logger.bind(project=push.project_name, branch=push.branch)
        log.info("push_received", commits=len(push.commits), mode=self._mode)

        notify = self._mode == "per_commit"
        outcomes = await self._map_commits(push, host, chat, notify=notify)

        if notify:
            notified = sum(1 for o in outcomes if o.status == "notified")
        else:
            notified = await self._notify_batch(push, chat, outcomes)

        result = summarize(outcomes, notified)
        log.info("push_processed", review_count=result.review_count, attempted=result.attempted)
        return result

    async def _map_commits(
        self,
        push: ValidatedPush,
        host: CodeHostConfig,
        chat: ChatConfig,
        *,
        notify: bool,
    ) -> list[CommitOutcome]:
        if self._max_concurrency == 1:
            return [await self._guarded(push, c, host, chat, notify=notify) for c in push.commits]

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _bounded(commit: CommitRecord) -> CommitOutcome:
            async with semaphore:
                return await self._guarded(push, commit, host, chat, notify=notify)

        # gather preserves input order
        return list(await asyncio.gather(*(_bounded(c) for c in push.commits)))

    async def _guarded(
        self,
        push: ValidatedPush,
        commit: CommitRecord,
        host: CodeHostConfig,
        chat: ChatConfig,
        *,
        notify: bool,
    ) -> CommitOutcome:
        try:
            return await self._process_commit(push, commit, host, chat, notify=notify)
        except ReviewRelayError as exc:
            logger.warning("commit_failed", commit=commit.short_id, error=str(exc))
            return CommitOutcome(commit=commit, status="failed", error=str(exc) or type(exc).__name__)
        except Exception as exc:
            logger.exception("commit_failed", commit=commit.short_id)
            return CommitOutcome(commit=commit, status="failed", error=str(exc) or type(exc).__name__)

    async def _process_commit(
        self,
        push: ValidatedPush,
        commit: CommitRecord,
        host: CodeHostConfig,
        chat: ChatConfig,
        *,
        notify: bool,
    ) -> CommitOutcome:
        log = logger.bind(commit=commit.short_id)

        diff = await self._fetcher.fetch_diff(host, commit)
        if not diff.files:
            log.info("commit_skipped", reason="no_file_diffs")
            return CommitOutcome(commit=commit, status="skipped")

        try:
            review = await self._engine.review(
                commit.message, commit.author, truncate_content(diff.files), push.project_name, commit.url
            )
        except AnalysisError as exc:
            log.warning("review_fallback", error=str(exc))
            review = fallback_review(exc)
        log.info("commit_reviewed", score=review.overall_score, issues=len(review.issues))

        entry = CommitReview(commit=_commit_info(commit, push.branch), review=review)
        if not notify:
            return CommitOutcome(commit=commit, status="reviewed", review=entry)

        result = await self._notifier.notify_commit(chat, push.project_name, entry.commit, review)
        if not result.success:
            return CommitOutcome(commit=commit, status="failed", review=entry, error=result.message)
        return CommitOutcome(commit=commit, status="notified", review=entry)

    async def _notify_batch(
        self, push: ValidatedPush, chat: ChatConfig, outcomes: list[CommitOutcome]
    ) -> int:
        """Send one batch report; returns how many commits it covered on success."""
        reviews = [o.review for o in outcomes if o.status == "reviewed" and o.review is not None]
        if not reviews:
            return 0

        push_info = PushInfo(
            branch=push.branch,
            total_commits=len(push.commits),
            author=push.pusher or push.commits[0].author,
        )
        try:
            result = await self._notifier.notify_batch(chat, push.project_name, push_info, reviews)
        except Exception as exc:
            logger.exception("batch_notify_failed")
            result_message = str(exc) or type(exc).__name__
        else:
            if result.success:
                return len(reviews)
            result_message = result.message

        for outcome in outcomes:
            if outcome.status == "reviewed":
                outcome.status = "failed"
                outcome.error = result_message
        return 0
