"""Centralized FastAPI dependencies for use with Depends()."""

from typing import Annotated

import httpx
from fastapi import Depends

from review_relay.config import settings
from review_relay.services.dingtalk import DingTalkNotifier, Notifier
from review_relay.services.gemini_client import LLMClient
from review_relay.services.gitlab_client import DiffFetcher, GitLabDiffFetcher, SyntheticDiffFetcher
from review_relay.services.pipeline import ReviewPipeline
from review_relay.services.review_engine import HeuristicReviewEngine, LLMReviewEngine, ReviewEngine

_http_client: httpx.AsyncClient | None = None
_llm_client: LLMClient | None = None


def init_http_client(timeout: float) -> httpx.AsyncClient:
    """Create the shared outbound HTTP client used for GitLab and DingTalk calls."""
    global _http_client  # noqa: PLW0603

    _http_client = httpx.AsyncClient(timeout=timeout)
    return _http_client


async def close_http_client() -> None:
    """Close the shared HTTP client, if one was created."""
    global _http_client  # noqa: PLW0603

    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


def init_production_deps(gcp_project: str, gcp_location: str, gemini_model: str) -> None:
    """Create the Gemini client backing the LLM review engine.

    Uses a lazy import so the module loads without the GCP SDK installed.
    """
    global _llm_client  # noqa: PLW0603

    from review_relay.services.gemini_client import GeminiClient

    _llm_client = GeminiClient(gcp_project, gcp_location, gemini_model)


def get_http_client() -> httpx.AsyncClient:
    """Return the shared HTTP client.

    Raises:
        RuntimeError: If the client has not been initialized by the lifespan.
    """
    if _http_client is None:
        msg = "HTTP client not initialized. Call init_http_client() first."
        raise RuntimeError(msg)
    return _http_client


def get_llm_client() -> LLMClient | None:
    """Return the LLM client, or None when no LLM backend is configured."""
    return _llm_client


def get_review_engine(
    llm_client: Annotated[LLMClient | None, Depends(get_llm_client)],
) -> ReviewEngine:
    """Return the configured review engine.

    Falls back to the heuristic engine when Gemini is selected but no LLM
    client was initialized.
    """
    if settings.review_engine == "gemini" and llm_client is not None:
        return LLMReviewEngine(llm_client)
    return HeuristicReviewEngine()


def get_diff_fetcher(client: Annotated[httpx.AsyncClient, Depends(get_http_client)]) -> DiffFetcher:
    """Return the GitLab diff fetcher, or the synthetic one in test mode."""
    if settings.test_mode:
        return SyntheticDiffFetcher()
    return GitLabDiffFetcher(client)


def get_notifier(client: Annotated[httpx.AsyncClient, Depends(get_http_client)]) -> Notifier:
    """Return the DingTalk notifier."""
    return DingTalkNotifier(client)


def get_pipeline(
    fetcher: Annotated[DiffFetcher, Depends(get_diff_fetcher)],
    engine: Annotated[ReviewEngine, Depends(get_review_engine)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> ReviewPipeline:
    """Assemble the review pipeline from its injected collaborators."""
    return ReviewPipeline(
        fetcher,
        engine,
        notifier,
        expected_token=settings.gitlab_webhook_secret,
        notification_mode=settings.notification_mode,
        max_concurrency=settings.review_concurrency,
    )


__all__ = [
    "close_http_client",
    "get_diff_fetcher",
    "get_http_client",
    "get_llm_client",
    "get_notifier",
    "get_pipeline",
    "get_review_engine",
    "init_http_client",
    "init_production_deps",
]
