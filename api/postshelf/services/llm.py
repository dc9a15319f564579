from __future__ import annotations

import json
import logging
from typing import Any

import openai
from openai import AsyncOpenAI

from postshelf.services.failures import UpstreamError, UpstreamFailure

logger = logging.getLogger(__name__)


class LlmError(UpstreamError):
    """Raised when the language model call fails or returns unusable output."""


class LlmClient:
    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-4o",
        timeout_seconds: float = 60.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout_seconds)

    async def complete_json(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 500,
    ) -> dict[str, Any]:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={"type": "json_object"},
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIError as exc:
            raise _error_from_openai(exc) from exc

        raw = response.choices[0].message.content if response.choices else None
        if not raw:
            raise LlmError(UpstreamFailure.UNKNOWN, "Empty response from the language model")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise LlmError(UpstreamFailure.UNKNOWN, "Language model returned malformed JSON") from exc
        if not isinstance(parsed, dict):
            raise LlmError(UpstreamFailure.UNKNOWN, "Language model returned a non-object JSON value")
        return parsed


def _error_from_openai(exc: openai.APIError) -> LlmError:
    # APITimeoutError subclasses APIConnectionError, so it is checked first.
    if isinstance(exc, openai.APITimeoutError):
        failure = UpstreamFailure.NETWORK_ERROR
    elif isinstance(exc, openai.APIConnectionError):
        failure = UpstreamFailure.NETWORK_ERROR
    elif isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        failure = UpstreamFailure.INVALID_API_KEY
    elif isinstance(exc, openai.RateLimitError):
        failure = (
            UpstreamFailure.QUOTA_EXCEEDED
            if getattr(exc, "code", None) == "insufficient_quota"
            else UpstreamFailure.RATE_LIMITED
        )
    elif isinstance(exc, openai.InternalServerError):
        failure = UpstreamFailure.UPSTREAM_ERROR
    else:
        failure = UpstreamFailure.UNKNOWN
    logger.warning("language model call failed failure=%s error=%s", failure.value, exc)
    return LlmError(failure, str(exc) or exc.__class__.__name__)
