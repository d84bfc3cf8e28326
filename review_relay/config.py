"""Application configuration loaded from environment variables."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from review_relay.exceptions import ConfigurationError
from review_relay.schemas.config import ChatConfig, CodeHostConfig


class Settings(BaseSettings):
    """Application settings with environment variable loading and sensible defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        # KEY= in .env or docker means unset
        env_ignore_empty=True,
    )

    app_name: str = "commit-review-relay"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000

    # Inbound GitLab webhook and outbound GitLab API
    gitlab_webhook_secret: str = ""
    gitlab_url: str = "https://gitlab.com"
    gitlab_access_token: str = ""
    gitlab_project_id: int | None = None

    # DingTalk robot
    dingtalk_webhook_url: str = ""
    dingtalk_secret: str = ""

    # Review engine selection
    review_engine: Literal["heuristic", "gemini"] = "heuristic"
    gcp_project: str = ""
    gcp_location: str = "us-central1"
    gemini_model: str = "gemini-2.5-flash"

    # Pipeline behaviour
    notification_mode: Literal["per_commit", "batch"] = "per_commit"
    review_concurrency: int = 1
    http_timeout_seconds: float = 30.0
    test_mode: bool = False

    def require_code_host_config(self) -> CodeHostConfig:
        """Ensure the GitLab API credentials are configured and return them."""
        missing = []
        if not self.gitlab_access_token and not self.test_mode:
            missing.append("GITLAB_ACCESS_TOKEN")
        if self.gitlab_project_id is None and not self.test_mode:
            missing.append("GITLAB_PROJECT_ID")
        if missing:
            msg = f"GitLab API is not configured. Missing environment variables: {', '.join(missing)}."
            raise ConfigurationError(msg)

        return CodeHostConfig(
            api_base=self.gitlab_url.rstrip("/"),
            access_token=self.gitlab_access_token,
            project_id=self.gitlab_project_id or 0,
        )

    def require_chat_config(self) -> ChatConfig:
        """Ensure the DingTalk webhook is configured and return it."""
        if not self.dingtalk_webhook_url:
            msg = "DingTalk is not configured. Missing environment variables: DINGTALK_WEBHOOK_URL."
            raise ConfigurationError(msg)

        return ChatConfig(
            webhook_url=self.dingtalk_webhook_url,
            secret=self.dingtalk_secret or None,
        )


settings = Settings()
