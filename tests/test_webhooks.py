"""Tests for the GitLab webhook endpoint."""

import json

import pytest
from httpx import AsyncClient

from review_relay.exceptions import FetchError
from review_relay.schemas.review import FileDiff
from review_relay.services.dingtalk import InMemoryNotifier
from review_relay.services.gitlab_client import InMemoryDiffFetcher

WEBHOOK_TOKEN = "gitlab-webhook-secret"
SHAS = ["1" * 40, "2" * 40, "3" * 40]


def _make_push_payload(*, ref: str = "refs/heads/main", num_commits: int = 3) -> dict:
    """Build a realistic GitLab push hook payload."""
    return {
        "object_kind": "push",
        "before": "95790bf891e76fee5e1747ab589903a6a1f80f22",
        "after": SHAS[num_commits - 1] if num_commits else "a" * 40,
        "ref": ref,
        "user_name": "Zhang San",
        "project": {"id": 52, "name": "test-project", "web_url": "https://gitlab.example.com/test/project"},
        "commits": [
            {
                "id": sha,
                "message": f"feat: change {i}",
                "timestamp": "2026-02-07T12:00:00Z",
                "url": f"https://gitlab.example.com/test/project/-/commit/{sha}",
                "author": {"name": "Zhang San", "email": "zhangsan@example.com"},
                "modified": [f"src/file{i}.py"],
            }
            for i, sha in enumerate(SHAS[:num_commits])
        ],
    }


def _headers(token: str | None = WEBHOOK_TOKEN) -> dict[str, str]:
    headers = {"Content-Type": "application/json", "X-Gitlab-Event": "Push Hook"}
    if token is not None:
        headers["X-Gitlab-Token"] = token
    return headers


def _stock(fetcher: InMemoryDiffFetcher) -> None:
    for i, sha in enumerate(SHAS):
        fetcher.diffs[sha] = [FileDiff(file_path=f"src/file{i}.py", diff="@@ -1 +1 @@\n-a = 1\n+a = 2\n")]


@pytest.mark.anyio
async def test_push_reviews_every_commit(
    client: AsyncClient,
    mock_fetcher: InMemoryDiffFetcher,
    mock_notifier: InMemoryNotifier,
) -> None:
    """A valid push returns 200 with the per-commit review count."""
    _stock(mock_fetcher)

    response = await client.post("/webhook/gitlab", content=json.dumps(_make_push_payload()), headers=_headers())

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["review_count"] == 3
    assert data["message"] == "Reviewed 3/3 commits"
    assert len(mock_notifier.commits) == 3


@pytest.mark.anyio
async def test_push_with_partial_failure_still_returns_200(
    client: AsyncClient,
    mock_fetcher: InMemoryDiffFetcher,
    mock_notifier: InMemoryNotifier,
) -> None:
    _stock(mock_fetcher)
    mock_fetcher.diffs[SHAS[1]] = FetchError("Failed to fetch commit data: 500")

    response = await client.post("/webhook/gitlab", content=json.dumps(_make_push_payload()), headers=_headers())

    assert response.status_code == 200
    data = response.json()
    assert data["review_count"] == 2
    assert data["errors"] == ["22222222: Failed to fetch commit data: 500"]
    assert len(mock_notifier.commits) == 2


@pytest.mark.anyio
async def test_missing_token_header_is_accepted(client: AsyncClient, mock_fetcher: InMemoryDiffFetcher) -> None:
    """The token header is optional; without it the request is processed."""
    _stock(mock_fetcher)

    response = await client.post(
        "/webhook/gitlab", content=json.dumps(_make_push_payload()), headers=_headers(token=None)
    )

    assert response.status_code == 200
    assert response.json()["review_count"] == 3


@pytest.mark.anyio
async def test_wrong_token_returns_401(client: AsyncClient, mock_fetcher: InMemoryDiffFetcher) -> None:
    response = await client.post(
        "/webhook/gitlab", content=json.dumps(_make_push_payload()), headers=_headers(token="wrong")
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid webhook token"
    assert mock_fetcher.calls == []


@pytest.mark.anyio
async def test_malformed_payload_returns_422(client: AsyncClient) -> None:
    response = await client.post("/webhook/gitlab", content=b"not-json", headers=_headers())

    assert response.status_code == 422


@pytest.mark.anyio
async def test_tag_push_is_acknowledged_without_review(
    client: AsyncClient,
    mock_fetcher: InMemoryDiffFetcher,
    mock_notifier: InMemoryNotifier,
) -> None:
    response = await client.post(
        "/webhook/gitlab",
        content=json.dumps(_make_push_payload(ref="refs/tags/v1.0.0")),
        headers=_headers(),
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Not a reviewable push event",
        "review_count": 0,
        "attempted": 0,
        "errors": [],
    }
    assert mock_fetcher.calls == []
    assert mock_notifier.commits == []


@pytest.mark.anyio
async def test_missing_gitlab_config_returns_500(
    client: AsyncClient,
    monkeypatch: pytest.MonkeyPatch,
    configured_settings,
) -> None:
    monkeypatch.setattr(configured_settings, "gitlab_access_token", "")

    response = await client.post("/webhook/gitlab", content=json.dumps(_make_push_payload()), headers=_headers())

    assert response.status_code == 500
    data = response.json()
    assert data["success"] is False
    assert data["review_count"] == 0
    assert "GITLAB_ACCESS_TOKEN" in data["message"]


@pytest.mark.anyio
async def test_missing_dingtalk_config_returns_500(
    client: AsyncClient,
    monkeypatch: pytest.MonkeyPatch,
    configured_settings,
) -> None:
    monkeypatch.setattr(configured_settings, "dingtalk_webhook_url", "")

    response = await client.post("/webhook/gitlab", content=json.dumps(_make_push_payload()), headers=_headers())

    assert response.status_code == 500
    assert "DINGTALK_WEBHOOK_URL" in response.json()["message"]


@pytest.mark.anyio
async def test_batch_mode_sends_single_report(
    client: AsyncClient,
    monkeypatch: pytest.MonkeyPatch,
    configured_settings,
    mock_fetcher: InMemoryDiffFetcher,
    mock_notifier: InMemoryNotifier,
) -> None:
    monkeypatch.setattr(configured_settings, "notification_mode", "batch")
    _stock(mock_fetcher)

    response = await client.post("/webhook/gitlab", content=json.dumps(_make_push_payload()), headers=_headers())

    assert response.status_code == 200
    assert response.json()["review_count"] == 3
    assert len(mock_notifier.batches) == 1
    assert mock_notifier.commits == []
