"""Validation and normalization of inbound GitLab push events."""

import hmac
from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from review_relay.exceptions import AuthenticationError, EventPayloadError
from review_relay.schemas.webhooks import Commit, CommitRecord, PushEvent, ValidatedPush

logger = structlog.get_logger()

TOKEN_HEADER = "x-gitlab-token"
TAG_PREFIX = "refs/tags/"
BRANCH_PREFIX = "refs/heads/"
SHORT_SHA_LENGTH = 8


def extract_branch(ref: str) -> str:
    """Strip a single leading ``refs/heads/`` from *ref*; other refs are returned unchanged."""
    if ref.startswith(BRANCH_PREFIX):
        return ref[len(BRANCH_PREFIX) :]
    return ref


def short_sha(sha: str) -> str:
    """Return the abbreviated commit id shown in reports."""
    return sha[:SHORT_SHA_LENGTH]


def _is_deletion(after: str) -> bool:
    return bool(after) and set(after) == {"0"}


def verify_token(headers: Mapping[str, str], expected_token: str | None) -> None:
    """Compare the ``X-Gitlab-Token`` header against the configured secret.

    The check only runs when both a secret is configured and the header is
    present.

    Raises:
        AuthenticationError: If the header is present and does not match.
    """
    if not expected_token:
        return
    provided = next((v for k, v in headers.items() if k.lower() == TOKEN_HEADER), None)
    if provided is None:
        return
    if not hmac.compare_digest(provided.encode("utf-8"), expected_token.encode("utf-8")):
        raise AuthenticationError("Invalid webhook token")


def _to_record(commit: Commit) -> CommitRecord:
    files_changed = list(dict.fromkeys([*commit.added, *commit.modified, *commit.removed]))
    return CommitRecord(
        id=commit.id,
        short_id=short_sha(commit.id),
        message=commit.message,
        author=commit.author.name,
        timestamp=commit.timestamp,
        url=commit.url,
        files_changed=files_changed,
    )


def validate_push_event(
    headers: Mapping[str, str],
    body: bytes | str | Mapping[str, Any],
    expected_token: str | None = None,
) -> ValidatedPush:
    """Authenticate and normalize a GitLab push hook.

    Args:
        headers: Inbound request headers (any casing).
        body: Raw JSON body or an already-decoded mapping.
        expected_token: Configured shared secret, or None to skip the check.

    Returns:
        A ``ValidatedPush``.  Non-push events, tag pushes and branch deletions
        yield ``is_valid_push=False`` with no commits rather than an error.

    Raises:
        AuthenticationError: If the token header does not match.
        EventPayloadError: If the body is not a well-formed push payload.
    """
    verify_token(headers, expected_token)

    try:
        if isinstance(body, bytes | str):
            event = PushEvent.model_validate_json(body)
        else:
            event = PushEvent.model_validate(body)
    except ValidationError as exc:
        raise EventPayloadError(f"Malformed push payload: {exc.error_count()} validation error(s)") from exc

    project = event.project
    skipped = ValidatedPush(
        is_valid_push=False,
        project_id=project.id,
        project_name=project.name,
        project_url=project.web_url,
    )

    if event.object_kind != "push":
        logger.info("event_skipped", reason="not_push", object_kind=event.object_kind)
        return skipped
    if event.ref.startswith(TAG_PREFIX):
        logger.info("event_skipped", reason="tag_push", ref=event.ref)
        return skipped
    if _is_deletion(event.after):
        logger.info("event_skipped", reason="branch_deletion", ref=event.ref)
        return skipped

    return ValidatedPush(
        is_valid_push=True,
        project_id=project.id,
        project_name=project.name,
        project_url=project.web_url,
        branch=extract_branch(event.ref),
        pusher=event.user_name,
        commits=[_to_record(c) for c in event.commits],
    )
