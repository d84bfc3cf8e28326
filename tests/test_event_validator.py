"""Tests for GitLab push event validation and normalization."""

import json

import pytest

from review_relay.exceptions import AuthenticationError, EventPayloadError
from review_relay.services.event_validator import (
    extract_branch,
    short_sha,
    validate_push_event,
    verify_token,
)

SHA = "da1560886d4f094c3e6c9ef40349f7d38b5d27d7"


def _make_push_event(
    *,
    object_kind: str = "push",
    ref: str = "refs/heads/main",
    after: str = SHA,
    commits: list[dict] | None = None,
) -> dict:
    """Build a realistic GitLab push hook payload."""
    if commits is None:
        commits = [
            {
                "id": SHA,
                "message": "feat: add login\n\n- JWT auth",
                "timestamp": "2026-02-07T12:00:00Z",
                "url": f"https://gitlab.example.com/test/project/-/commit/{SHA}",
                "author": {"name": "Zhang San", "email": "zhangsan@example.com"},
                "added": ["src/auth/login.js", "src/middleware/auth.js"],
                "removed": [],
                "modified": ["src/routes/user.js", "README.md"],
            }
        ]
    return {
        "object_kind": object_kind,
        "before": "95790bf891e76fee5e1747ab589903a6a1f80f22",
        "after": after,
        "ref": ref,
        "user_name": "Zhang San",
        "user_email": "zhangsan@example.com",
        "project": {
            "id": 52,
            "name": "test-project",
            "web_url": "https://gitlab.example.com/test/project",
            "http_url": "https://gitlab.example.com/test/project.git",
        },
        "commits": commits,
    }


# ---------------------------------------------------------------------------
# Valid pushes
# ---------------------------------------------------------------------------


def test_valid_push_is_normalized() -> None:
    """A branch push yields branch name, project info and commit records."""
    result = validate_push_event({}, _make_push_event())

    assert result.is_valid_push is True
    assert result.branch == "main"
    assert result.project_id == 52
    assert result.project_name == "test-project"
    assert result.project_url == "https://gitlab.example.com/test/project"
    assert result.pusher == "Zhang San"

    [commit] = result.commits
    assert commit.id == SHA
    assert commit.short_id == "da156088"
    assert commit.author == "Zhang San"
    assert commit.files_changed == [
        "src/auth/login.js",
        "src/middleware/auth.js",
        "src/routes/user.js",
        "README.md",
    ]


def test_raw_bytes_body_is_accepted() -> None:
    """The body may be passed as raw JSON bytes straight from the request."""
    body = json.dumps(_make_push_event()).encode()

    result = validate_push_event({}, body)

    assert result.is_valid_push is True
    assert len(result.commits) == 1


def test_files_changed_union_keeps_order_and_drops_duplicates() -> None:
    """A path listed in several categories appears once, at its first position."""
    commits = [
        {
            "id": SHA,
            "message": "chore: shuffle",
            "timestamp": "2026-02-07T12:00:00Z",
            "url": "",
            "author": {"name": "A", "email": "a@example.com"},
            "added": ["b.py", "a.py"],
            "modified": ["a.py", "c.py"],
            "removed": ["d.py"],
        }
    ]

    result = validate_push_event({}, _make_push_event(commits=commits))

    assert result.commits[0].files_changed == ["b.py", "a.py", "c.py", "d.py"]


def test_commit_order_is_preserved() -> None:
    """Commits keep the order in which GitLab listed them."""
    commits = [
        {
            "id": f"{i:040x}",
            "message": f"commit {i}",
            "timestamp": "2026-02-07T12:00:00Z",
            "author": {"name": "A", "email": "a@example.com"},
        }
        for i in range(1, 4)
    ]

    result = validate_push_event({}, _make_push_event(commits=commits))

    assert [c.id for c in result.commits] == [c["id"] for c in commits]


# ---------------------------------------------------------------------------
# Skipped events
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("object_kind", "ref", "after"),
    [
        ("tag_push", "refs/heads/main", SHA),
        ("merge_request", "refs/heads/main", SHA),
        ("push", "refs/tags/v1.0.0", SHA),
        ("push", "refs/heads/feature", "0" * 40),
    ],
)
def test_non_reviewable_events_are_skipped(object_kind: str, ref: str, after: str) -> None:
    """Non-push events, tag pushes and branch deletions are not errors, just no-ops."""
    result = validate_push_event({}, _make_push_event(object_kind=object_kind, ref=ref, after=after))

    assert result.is_valid_push is False
    assert result.commits == []
    assert result.branch == ""
    assert result.project_name == "test-project"


def test_malformed_payload_raises() -> None:
    """A body missing required fields raises EventPayloadError."""
    with pytest.raises(EventPayloadError):
        validate_push_event({}, {"object_kind": "push"})


def test_non_json_body_raises() -> None:
    with pytest.raises(EventPayloadError):
        validate_push_event({}, b"not-json")


# ---------------------------------------------------------------------------
# Token verification
# ---------------------------------------------------------------------------


def test_matching_token_passes() -> None:
    result = validate_push_event({"X-Gitlab-Token": "s3cret"}, _make_push_event(), "s3cret")
    assert result.is_valid_push is True


def test_mismatched_token_raises() -> None:
    """A present but wrong token fails the whole request."""
    with pytest.raises(AuthenticationError):
        validate_push_event({"x-gitlab-token": "wrong"}, _make_push_event(), "s3cret")


def test_token_checked_before_payload_parsing() -> None:
    """Authentication failures win over malformed bodies."""
    with pytest.raises(AuthenticationError):
        validate_push_event({"x-gitlab-token": "wrong"}, b"not-json", "s3cret")


def test_missing_token_header_skips_check() -> None:
    """The token header is optional: without it the check is skipped."""
    verify_token({}, "s3cret")


def test_no_configured_secret_skips_check() -> None:
    verify_token({"x-gitlab-token": "anything"}, None)
    verify_token({"x-gitlab-token": "anything"}, "")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("ref", "expected"),
    [
        ("refs/heads/main", "main"),
        ("refs/heads/feature/login", "feature/login"),
        ("refs/heads/refs/heads/odd", "refs/heads/odd"),
        ("main", "main"),
        ("refs/merge-requests/1/head", "refs/merge-requests/1/head"),
    ],
)
def test_extract_branch(ref: str, expected: str) -> None:
    """The refs/heads/ prefix is stripped exactly once; other refs are unchanged."""
    assert extract_branch(ref) == expected


@pytest.mark.parametrize("sha", [SHA, "abcdef12", "0123456789abcdef0123456789abcdef01234567" * 2])
def test_short_sha_is_first_eight_characters(sha: str) -> None:
    assert short_sha(sha) == sha[:8]
    assert len(short_sha(sha)) == 8
