"""Immutable connection settings handed to the pipeline and its collaborators."""

from pydantic import BaseModel, ConfigDict


class CodeHostConfig(BaseModel):
    """GitLab API endpoint and credentials for diff retrieval."""

    model_config = ConfigDict(frozen=True)

    api_base: str
    access_token: str
    project_id: int


class ChatConfig(BaseModel):
    """DingTalk robot webhook and optional signing secret."""

    model_config = ConfigDict(frozen=True)

    webhook_url: str
    secret: str | None = None
