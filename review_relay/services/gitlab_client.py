"""GitLab REST API client for fetching commit diffs and raw file content.

The diff list is the primary request: if it fails the commit cannot be
reviewed and ``FetchError`` is raised.  Raw file content is best-effort
context for the review engine; failures there are recorded on the
``FileDiff.content_status`` field and never raised.
"""

from __future__ import annotations

import re
from typing import Protocol
from urllib.parse import quote

import httpx
import structlog

from review_relay.exceptions import FetchError
from review_relay.schemas.config import CodeHostConfig
from review_relay.schemas.review import CommitDiff, FileDiff
from review_relay.schemas.webhooks import CommitRecord

logger = structlog.get_logger()

# Files whose current content is worth fetching for review context.
TEXT_FILE_PATTERN = re.compile(
    r"\.(js|ts|tsx|jsx|py|java|cpp|c|h|css|html|md|json|yaml|yml|xml)$",
    re.IGNORECASE,
)


def _auth_headers(token: str) -> dict[str, str]:
    """Build GitLab API headers with Bearer auth."""
    return {"Authorization": f"Bearer {token}"}


def _project_url(api_base: str, project_id: int) -> str:
    return f"{api_base.rstrip('/')}/api/v4/projects/{project_id}/repository"


def is_text_file(path: str) -> bool:
    """Return True if *path* has an extension whose content is fetched for review."""
    return TEXT_FILE_PATTERN.search(path) is not None


async def fetch_raw_file(
    client: httpx.AsyncClient,
    api_base: str,
    token: str,
    project_id: int,
    path: str,
    ref: str,
) -> str:
    """Fetch raw file content from GitLab at the given commit SHA.

    Raises:
        httpx.HTTPError: On transport failures and non-2xx responses.
    """
    url = f"{_project_url(api_base, project_id)}/files/{quote(path, safe='')}/raw"
    resp = await client.get(url, params={"ref": ref}, headers=_auth_headers(token))
    resp.raise_for_status()
    return resp.text


async def fetch_commit_diff(
    client: httpx.AsyncClient,
    api_base: str,
    token: str,
    project_id: int,
    commit_sha: str,
) -> CommitDiff:
    """Fetch the per-file diffs of a commit and the content of its text files.

    Args:
        client: Shared httpx async client (for connection pooling).
        api_base: GitLab instance base URL, e.g. ``https://gitlab.com``.
        token: GitLab personal or project access token.
        project_id: Numeric GitLab project id.
        commit_sha: Full commit SHA.

    Returns:
        A ``CommitDiff`` whose ``diff`` concatenates every file's diff under
        ``--- old`` / ``+++ new`` headers, in the order returned by GitLab.

    Raises:
        FetchError: If the diff list cannot be retrieved or is malformed.
    """
    url = f"{_project_url(api_base, project_id)}/commits/{commit_sha}/diff"
    try:
        resp = await client.get(url, headers=_auth_headers(token))
        resp.raise_for_status()
        entries = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise FetchError(f"Failed to fetch commit data: {exc}") from exc

    if not isinstance(entries, list):
        raise FetchError("Failed to fetch commit data: diff response is not a list")

    full_diff = ""
    files: list[FileDiff] = []
    for entry in entries:
        try:
            old_path = entry.get("old_path") or ""
            new_path = entry.get("new_path") or ""
            file_diff = entry.get("diff") or ""
            deleted = bool(entry.get("deleted_file"))
        except AttributeError as exc:
            raise FetchError("Failed to fetch commit data: malformed diff entry") from exc

        full_diff += f"\n--- {old_path}\n+++ {new_path}\n{file_diff}"
        file_path = new_path or old_path

        content: str | None = None
        if deleted:
            status = "deleted"
        elif not is_text_file(new_path):
            status = "unsupported_type"
        else:
            try:
                content = await fetch_raw_file(client, api_base, token, project_id, new_path, commit_sha)
                status = "fetched"
            except httpx.HTTPError as exc:
                logger.debug("file_content_unavailable", path=new_path, commit_sha=commit_sha, error=str(exc))
                status = "unavailable"

        files.append(
            FileDiff(file_path=file_path, diff=file_diff, content=content, content_status=status)
        )

    return CommitDiff(commit_id=commit_sha, diff=full_diff, files=files)


class DiffFetcher(Protocol):
    """Protocol for retrieving the diff of one commit."""

    async def fetch_diff(self, host: CodeHostConfig, commit: CommitRecord) -> CommitDiff:
        """Return the commit's file diffs.

        Raises ``FetchError`` when the diff cannot be retrieved.
        """
        ...


class GitLabDiffFetcher:
    """Production implementation backed by the GitLab REST API."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch_diff(self, host: CodeHostConfig, commit: CommitRecord) -> CommitDiff:
        """Fetch the commit diff via ``fetch_commit_diff``."""
        return await fetch_commit_diff(
            self._client, host.api_base, host.access_token, host.project_id, commit.id
        )


class SyntheticDiffFetcher:
    """Offline fetcher for test mode: fabricates a small diff per changed file.

    Lets the webhook be exercised end to end without GitLab API credentials.
    """

    async def fetch_diff(self, host: CodeHostConfig, commit: CommitRecord) -> CommitDiff:
        """Build one synthetic ``FileDiff`` for every path in ``files_changed``."""
        files = [
            FileDiff(
                file_path=path,
                content=(
                    f"// synthetic content of {path}\n"
                    "function example() {\n"
                    '  console.log("Hello World");\n'
                    "  return true;\n"
                    "}\n"
                ),
                content_status="fetched",
                diff=(
                    f"--- a/{path}\n+++ b/{path}\n"
                    "@@ -1,3 +1,5 @@\n"
                    "+// added comment\n"
                    " function example() {\n"
                    '-  console.log("Hello");\n'
                    '+  console.log("Hello World");\n'
                    "   return true;\n"
                    " }"
                ),
            )
            for path in commit.files_changed
        ]
        full_diff = "".join(f"\n{f.diff}" for f in files)
        return CommitDiff(commit_id=commit.id, diff=full_diff, files=files)


class InMemoryDiffFetcher:
    """Test double that serves canned diffs per commit id and records requests.

    A commit id mapped to an exception instance makes ``fetch_diff`` raise it.
    """

    def __init__(self, diffs: dict[str, list[FileDiff] | Exception] | None = None) -> None:
        self.diffs: dict[str, list[FileDiff] | Exception] = diffs or {}
        self.calls: list[str] = []

    async def fetch_diff(self, host: CodeHostConfig, commit: CommitRecord) -> CommitDiff:
        """Return the canned files for *commit*, or raise the canned exception."""
        self.calls.append(commit.id)
        entry = self.diffs.get(commit.id, [])
        if isinstance(entry, Exception):
            raise entry
        return CommitDiff(commit_id=commit.id, diff="".join(f.diff for f in entry), files=entry)
