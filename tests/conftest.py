"""Shared test fixtures: configured settings, in-memory collaborators, and the FastAPI test client."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from review_relay.config import settings
from review_relay.dependencies import get_diff_fetcher, get_notifier, get_review_engine
from review_relay.main import app
from review_relay.services.dingtalk import InMemoryNotifier
from review_relay.services.gitlab_client import InMemoryDiffFetcher
from review_relay.services.review_engine import HeuristicReviewEngine

WEBHOOK_TOKEN = "gitlab-webhook-secret"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def configured_settings(monkeypatch: pytest.MonkeyPatch):
    """Populate the settings the webhook needs, restored after each test."""
    monkeypatch.setattr(settings, "gitlab_webhook_secret", WEBHOOK_TOKEN)
    monkeypatch.setattr(settings, "gitlab_url", "https://gitlab.example.com")
    monkeypatch.setattr(settings, "gitlab_access_token", "glpat-test")
    monkeypatch.setattr(settings, "gitlab_project_id", 52)
    monkeypatch.setattr(settings, "dingtalk_webhook_url", "https://oapi.dingtalk.com/robot/send?access_token=abc")
    monkeypatch.setattr(settings, "dingtalk_secret", "")
    monkeypatch.setattr(settings, "notification_mode", "per_commit")
    monkeypatch.setattr(settings, "review_concurrency", 1)
    monkeypatch.setattr(settings, "test_mode", False)
    return settings


@pytest.fixture
def mock_fetcher() -> InMemoryDiffFetcher:
    """Create a fresh in-memory diff fetcher for test inspection."""
    return InMemoryDiffFetcher()


@pytest.fixture
def mock_notifier() -> InMemoryNotifier:
    """Create a fresh in-memory notifier for test inspection."""
    return InMemoryNotifier()


@pytest.fixture
async def client(
    configured_settings,
    mock_fetcher: InMemoryDiffFetcher,
    mock_notifier: InMemoryNotifier,
) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient with outbound collaborators overridden.

    The in-memory fetcher and notifier replace GitLab and DingTalk so tests
    never touch the network; the heuristic engine runs for real.
    """
    app.dependency_overrides[get_diff_fetcher] = lambda: mock_fetcher
    app.dependency_overrides[get_notifier] = lambda: mock_notifier
    app.dependency_overrides[get_review_engine] = HeuristicReviewEngine
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
