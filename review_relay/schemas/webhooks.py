"""Pydantic models for GitLab push webhook payloads and their normalized form."""

from pydantic import BaseModel, ConfigDict, Field


class CommitAuthor(BaseModel):
    """Author information from a Git commit."""

    name: str
    email: str = ""


class Commit(BaseModel):
    """A single commit within a GitLab push event."""

    id: str
    message: str
    timestamp: str
    url: str = ""
    author: CommitAuthor
    added: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)


class Project(BaseModel):
    """Project metadata from the webhook payload."""

    id: int
    name: str
    web_url: str = ""
    http_url: str = ""


class PushEvent(BaseModel):
    """GitLab push hook payload.

    Reference: https://docs.gitlab.com/ee/user/project/integrations/webhook_events.html#push-events
    """

    object_kind: str
    before: str = ""
    after: str = ""
    ref: str = ""
    user_name: str = ""
    user_email: str = ""
    project: Project
    commits: list[Commit] = Field(default_factory=list)


class CommitRecord(BaseModel):
    """A commit normalized for review, read-only once created."""

    model_config = ConfigDict(frozen=True)

    id: str
    short_id: str
    message: str
    author: str
    timestamp: str
    url: str
    files_changed: list[str]


class ValidatedPush(BaseModel):
    """Outcome of validating an inbound push event.

    ``is_valid_push`` is False for non-push events, tag pushes and branch
    deletions; in that case ``commits`` is empty and ``branch`` is blank.
    """

    is_valid_push: bool
    project_id: int
    project_name: str
    project_url: str
    branch: str = ""
    pusher: str = ""
    commits: list[CommitRecord] = Field(default_factory=list)
