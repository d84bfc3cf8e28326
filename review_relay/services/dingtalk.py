"""DingTalk robot notifications for review results.

Renders single-commit and batch reports as markdown, optionally signs the
robot URL with the DingTalk HMAC-SHA256 scheme, and posts the message.
Delivery failures are reported as ``NotifyResult(success=False)``; nothing
here retries.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol
from urllib.parse import quote_plus

import httpx
import structlog

from review_relay.exceptions import NotifyError
from review_relay.schemas.config import ChatConfig
from review_relay.schemas.notifications import CommitInfo, CommitReview, NotifyResult, PushInfo
from review_relay.schemas.review import SEVERITY_RANK, Issue, ReviewResult

logger = structlog.get_logger()

SEVERITY_GLYPHS = {"critical": "🚨", "high": "⚠️", "medium": "⚡", "low": "💡"}
FOOTER = "Generated automatically by the commit review relay"


def _now_millis() -> int:
    return int(time.time() * 1000)


def sign_request(secret: str, timestamp_ms: int) -> str:
    """Compute the DingTalk signature ``base64(HMAC-SHA256(secret, "<ts>\\n<secret>"))``."""
    string_to_sign = f"{timestamp_ms}\n{secret}"
    digest = hmac.new(
        secret.encode("utf-8"),
        msg=string_to_sign.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("utf-8")


def build_signed_url(webhook_url: str, secret: str | None, timestamp_ms: int) -> str:
    """Append ``timestamp`` and ``sign`` query parameters when a secret is configured."""
    if not secret:
        return webhook_url
    sign = sign_request(secret, timestamp_ms)
    separator = "&" if "?" in webhook_url else "?"
    return f"{webhook_url}{separator}timestamp={timestamp_ms}&sign={quote_plus(sign)}"


def severity_glyph(severity: str) -> str:
    return SEVERITY_GLYPHS.get(severity, "📝")


def score_glyph(score: float) -> str:
    """Pick the score band glyph: top tier, good, warning, or poor."""
    if score >= 9:
        return "🏆"
    if score >= 7:
        return "✅"
    if score >= 5:
        return "🔶"
    return "🔴"


def _fmt_score(score: float) -> str:
    return f"{score:g}"


def _issue_location(issue: Issue) -> str:
    return f"{issue.file} (line {issue.line})" if issue.line else issue.file


def _footer(now: datetime | None) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    return f"---\n*{FOOTER} • {stamp}*"


def render_commit_report(
    project_name: str,
    commit: CommitInfo,
    review: ReviewResult,
    *,
    now: datetime | None = None,
) -> str:
    """Render the markdown report for a single commit."""
    lines = [
        "# 🔍 Code Review Report",
        "",
        "## 📋 Overview",
        f"- **Project**: {project_name}",
        f"- **Branch**: {commit.branch}",
        f"- **Author**: {commit.author}",
        f"- **Commit**: [{commit.short_id}]({commit.url})",
        f"- **Message**: {commit.message}",
        "",
        "## 📊 Result",
        f"{score_glyph(review.overall_score)} **Score**: {_fmt_score(review.overall_score)}/10",
        "",
        f"**Summary**: {review.summary}",
    ]

    if review.issues:
        lines += ["", f"## ⚠️ Issues ({len(review.issues)})"]
        for issue in review.issues:
            lines += [
                "",
                f"### {severity_glyph(issue.severity)} {issue.severity.upper()} - {issue.type}",
                f"- **File**: {_issue_location(issue)}",
                f"- **Problem**: {issue.message}",
            ]
            if issue.suggestion:
                lines.append(f"- **Suggestion**: {issue.suggestion}")

    if review.positives:
        lines += ["", "## 👍 Positives", *(f"- ✅ {p}" for p in review.positives)]

    if review.recommendations:
        lines += ["", "## 💡 Recommendations", *(f"- 🔧 {r}" for r in review.recommendations)]

    lines += ["", _footer(now)]
    return "\n".join(lines)


def render_batch_report(
    project_name: str,
    push: PushInfo,
    reviews: list[CommitReview],
    *,
    now: datetime | None = None,
) -> str:
    """Render one markdown report covering every reviewed commit of a push.

    Issues are grouped by severity, most severe first, and tagged with the
    commit they came from.  Recommendations are de-duplicated across commits.
    """
    total_issues = sum(len(r.review.issues) for r in reviews)
    average = sum(r.review.overall_score for r in reviews) / len(reviews) if reviews else 0.0

    lines = [
        "# 📦 Push Review Report",
        "",
        "## 📋 Overview",
        f"- **Project**: {project_name}",
        f"- **Branch**: {push.branch}",
        f"- **Commits**: {push.total_commits}",
        f"- **Pushed by**: {push.author}",
        "",
        "## 📊 Overall Result",
        f"{score_glyph(average)} **Average score**: {average:.1f}/10",
        f"🔍 **Total issues**: {total_issues}",
        "",
        "## 📝 Commits",
    ]
    for index, entry in enumerate(reviews, start=1):
        commit, review = entry.commit, entry.review
        headline = commit.message.split("\n", 1)[0]
        lines += [
            "",
            f"### {index}. [{commit.short_id}]({commit.url}) "
            f"{score_glyph(review.overall_score)} {_fmt_score(review.overall_score)}/10",
            f"**Author**: {commit.author}",
            f"**Message**: {headline}",
            f"**Issues**: {len(review.issues)}",
        ]

    if total_issues:
        grouped: dict[str, list[tuple[str, Issue]]] = {}
        for entry in reviews:
            for issue in entry.review.issues:
                grouped.setdefault(issue.severity, []).append((entry.commit.short_id, issue))

        lines += ["", f"## ⚠️ Issues by severity ({total_issues})"]
        for severity in sorted(grouped, key=lambda s: SEVERITY_RANK.get(s, -1), reverse=True):
            items = grouped[severity]
            lines += ["", f"### {severity_glyph(severity)} {severity.upper()} ({len(items)})"]
            for short_id, issue in items:
                lines += [
                    f"- **File**: {_issue_location(issue)} - **Commit**: {short_id}",
                    f"- **Problem**: {issue.message}",
                ]
                if issue.suggestion:
                    lines.append(f"- **Suggestion**: {issue.suggestion}")

    recommendations = list(dict.fromkeys(r for entry in reviews for r in entry.review.recommendations))
    if recommendations:
        lines += ["", "## 💡 Recommendations", *(f"- 🔧 {r}" for r in recommendations)]

    lines += ["", _footer(now)]
    return "\n".join(lines)


def markdown_payload(title: str, text: str) -> dict[str, Any]:
    return {"msgtype": "markdown", "markdown": {"title": title, "text": text}}


def text_payload(content: str) -> dict[str, Any]:
    return {"msgtype": "text", "text": {"content": content}}


async def send_message(
    client: httpx.AsyncClient,
    webhook_url: str,
    secret: str | None,
    payload: dict[str, Any],
    *,
    timestamp_ms: int | None = None,
) -> None:
    """Post *payload* to the DingTalk robot.

    Raises:
        NotifyError: On transport failure, non-2xx status, an unreadable body,
            or a non-zero ``errcode``.
    """
    url = build_signed_url(webhook_url, secret, timestamp_ms if timestamp_ms is not None else _now_millis())
    try:
        resp = await client.post(url, json=payload)
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPError as exc:
        raise NotifyError(str(exc) or type(exc).__name__) from exc
    except ValueError as exc:
        raise NotifyError("DingTalk returned a non-JSON response") from exc

    errcode = data.get("errcode") if isinstance(data, dict) else None
    if errcode != 0:
        errmsg = data.get("errmsg", "unknown error") if isinstance(data, dict) else "unknown error"
        raise NotifyError(f"DingTalk API error: {errmsg}")


class Notifier(Protocol):
    """Protocol for delivering review reports to the team chat."""

    async def notify_commit(
        self, chat: ChatConfig, project_name: str, commit: CommitInfo, review: ReviewResult
    ) -> NotifyResult: ...

    async def notify_batch(
        self, chat: ChatConfig, project_name: str, push: PushInfo, reviews: list[CommitReview]
    ) -> NotifyResult: ...


class DingTalkNotifier:
    """Production notifier posting markdown and text messages to a DingTalk robot."""

    def __init__(self, client: httpx.AsyncClient, clock: Callable[[], int] = _now_millis) -> None:
        self._client = client
        self._clock = clock

    async def _deliver(self, chat: ChatConfig, payload: dict[str, Any], label: str) -> NotifyResult:
        try:
            await send_message(
                self._client, chat.webhook_url, chat.secret, payload, timestamp_ms=self._clock()
            )
        except NotifyError as exc:
            logger.warning("dingtalk_delivery_failed", kind=label, error=str(exc))
            return NotifyResult(success=False, message=f"Failed to send DingTalk {label}: {exc}")
        logger.info("dingtalk_delivered", kind=label)
        return NotifyResult(success=True, message=f"DingTalk {label} sent")

    async def notify_commit(
        self, chat: ChatConfig, project_name: str, commit: CommitInfo, review: ReviewResult
    ) -> NotifyResult:
        """Send the single-commit report."""
        text = render_commit_report(project_name, commit, review)
        return await self._deliver(chat, markdown_payload(f"{project_name} code review", text), "message")

    async def notify_batch(
        self, chat: ChatConfig, project_name: str, push: PushInfo, reviews: list[CommitReview]
    ) -> NotifyResult:
        """Send one report covering every reviewed commit of a push."""
        text = render_batch_report(project_name, push, reviews)
        title = f"{project_name} push review ({push.total_commits} commits)"
        return await self._deliver(chat, markdown_payload(title, text), "batch message")

    async def notify_text(self, chat: ChatConfig, message: str) -> NotifyResult:
        """Send a plain text message."""
        return await self._deliver(chat, text_payload(message), "text message")


class InMemoryNotifier:
    """Test double that records deliveries and returns a configurable result."""

    def __init__(self) -> None:
        self.commits: list[dict] = []
        self.batches: list[dict] = []
        self.texts: list[str] = []
        self.fail_for: set[str] = set()
        self.error_message = "DingTalk API error: invalid token"

    def _result(self, key: str) -> NotifyResult:
        if key in self.fail_for:
            return NotifyResult(success=False, message=f"Failed to send DingTalk message: {self.error_message}")
        return NotifyResult(success=True, message="DingTalk message sent")

    async def notify_commit(
        self, chat: ChatConfig, project_name: str, commit: CommitInfo, review: ReviewResult
    ) -> NotifyResult:
        """Record the commit report; fails when ``commit.short_id`` is in ``fail_for``."""
        self.commits.append({"project_name": project_name, "commit": commit, "review": review})
        return self._result(commit.short_id)

    async def notify_batch(
        self, chat: ChatConfig, project_name: str, push: PushInfo, reviews: list[CommitReview]
    ) -> NotifyResult:
        """Record the batch report; fails when ``"batch"`` is in ``fail_for``."""
        self.batches.append({"project_name": project_name, "push": push, "reviews": reviews})
        return self._result("batch")

    async def notify_text(self, chat: ChatConfig, message: str) -> NotifyResult:
        """Record the text message."""
        self.texts.append(message)
        return self._result("text")
