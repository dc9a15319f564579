from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import httpx
import openai
import pytest

from postshelf.services.failures import UpstreamFailure
from postshelf.services.llm import LlmClient, LlmError

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


class FakeCompletions:
    def __init__(self, *, content: str | None = None, error: Exception | None = None) -> None:
        self.content = content
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(completions: FakeCompletions) -> LlmClient:
    fake_openai = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return LlmClient("sk-test", model="gpt-4o", client=fake_openai)  # type: ignore[arg-type]


def _status_error(cls: type[openai.APIStatusError], status_code: int, body: Any = None) -> openai.APIStatusError:
    request = httpx.Request("POST", OPENAI_URL)
    response = httpx.Response(status_code, request=request)
    return cls("upstream said no", response=response, body=body)


def test_complete_json_requests_json_mode_and_parses_object() -> None:
    completions = FakeCompletions(content='{"categories": ["Sales"], "confidence": 0.8}')
    result = asyncio.run(_client(completions).complete_json("prompt", system="be terse", max_tokens=42))

    assert result == {"categories": ["Sales"], "confidence": 0.8}
    call = completions.calls[0]
    assert call["model"] == "gpt-4o"
    assert call["response_format"] == {"type": "json_object"}
    assert call["max_tokens"] == 42
    assert call["messages"][0] == {"role": "system", "content": "be terse"}
    assert call["messages"][1] == {"role": "user", "content": "prompt"}


@pytest.mark.parametrize("content", [None, "", "not json", "[1, 2]"])
def test_complete_json_rejects_unusable_output(content: str | None) -> None:
    with pytest.raises(LlmError) as exc_info:
        asyncio.run(_client(FakeCompletions(content=content)).complete_json("prompt"))
    assert exc_info.value.failure is UpstreamFailure.UNKNOWN


@pytest.mark.parametrize(
    ("error", "failure"),
    [
        (_status_error(openai.AuthenticationError, 401), UpstreamFailure.INVALID_API_KEY),
        (_status_error(openai.RateLimitError, 429), UpstreamFailure.RATE_LIMITED),
        (
            _status_error(openai.RateLimitError, 429, {"code": "insufficient_quota"}),
            UpstreamFailure.QUOTA_EXCEEDED,
        ),
        (_status_error(openai.InternalServerError, 500), UpstreamFailure.UPSTREAM_ERROR),
        (openai.APITimeoutError(request=httpx.Request("POST", OPENAI_URL)), UpstreamFailure.NETWORK_ERROR),
        (
            openai.APIConnectionError(request=httpx.Request("POST", OPENAI_URL)),
            UpstreamFailure.NETWORK_ERROR,
        ),
        (_status_error(openai.BadRequestError, 400), UpstreamFailure.UNKNOWN),
    ],
)
def test_openai_errors_map_to_failures(error: Exception, failure: UpstreamFailure) -> None:
    with pytest.raises(LlmError) as exc_info:
        asyncio.run(_client(FakeCompletions(error=error)).complete_json("prompt"))
    assert exc_info.value.failure is failure
