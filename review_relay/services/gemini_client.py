"""LLM-backed commit review client.

``GeminiClient`` sends a formatted commit to Gemini with the review system
prompt and the ``LLMReview`` output schema, and returns the raw JSON.
``InMemoryLLMClient`` stands in for it in tests.  Validation of the JSON is
left to ``LLMReviewEngine``.

``google.genai`` is imported lazily, only when a ``GeminiClient`` is built.
"""

from __future__ import annotations

from typing import Protocol

from review_relay.schemas.review import LLMReview

REVIEW_SYSTEM_PROMPT = """\
You are a senior engineer reviewing a single commit pushed to a GitLab \
project. You receive the commit metadata and, for every changed file, its \
unified diff and sometimes a prefix of the file's current content.

Assess the change on:
1. Code quality: syntax, logic, error handling.
2. Security: vulnerabilities, leaked credentials or secrets.
3. Performance: algorithmic efficiency, resource usage.
4. Maintainability: structure, naming, comments.
5. Best practices: conventions and design patterns.
6. Documentation: comments and docs kept up to date.

RULES:
1. overall_score is a number from 0 to 10, where 10 is best.
2. summary is two or three sentences.
3. Each issue has severity (low, medium, high, critical), type (bug, \
security, performance, style, maintainability, documentation), the file \
path, an optional line number, a message and an optional suggestion.
4. Only report problems visible in the provided diff. Never invent code.
5. Keep feedback concrete and constructive.
"""


class LLMClient(Protocol):
    """Protocol for asking a language model to review one commit."""

    async def generate_review(self, user_content: str) -> str:
        """Review the formatted commit in *user_content*.

        Returns the raw JSON text, expected to match ``LLMReview``.
        """
        ...


class GeminiClient:
    """Reviews commits with Gemini through the google-genai SDK.

    The system instruction is ``REVIEW_SYSTEM_PROMPT`` and the output is
    constrained to the ``LLMReview`` schema, at temperature 0 so repeated
    pushes of the same diff score alike.
    """

    def __init__(self, project: str, location: str, model: str) -> None:
        from google import genai

        self._client = genai.Client(vertexai=True, project=project, location=location)
        self._model = model

    async def generate_review(self, user_content: str) -> str:
        from google.genai import types

        config = types.GenerateContentConfig(
            system_instruction=REVIEW_SYSTEM_PROMPT,
            response_mime_type="application/json",
            response_schema=LLMReview,
            temperature=0.0,
        )
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=user_content,
            config=config,
        )
        return response.text or ""


class InMemoryLLMClient:
    """Review double: records the prompts it receives and answers with ``response``."""

    def __init__(self, response: str | None = None) -> None:
        self.prompts: list[str] = []
        self.response = response or (
            '{"overall_score":7.5,"summary":"test review","issues":[],'
            '"positives":["clear change"],"recommendations":["keep it up"]}'
        )

    async def generate_review(self, user_content: str) -> str:
        self.prompts.append(user_content)
        return self.response
