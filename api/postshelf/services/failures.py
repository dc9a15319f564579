from __future__ import annotations

from enum import Enum


class UpstreamFailure(str, Enum):
    INVALID_API_KEY = "invalid_api_key"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    AUTH_REQUIRED = "auth_required"
    RENDER_TIMEOUT = "render_timeout"
    MALFORMED_URL = "malformed_url"
    UPSTREAM_ERROR = "upstream_error"
    NETWORK_ERROR = "network_error"
    EMPTY_CONTENT = "empty_content"
    UNKNOWN = "unknown"


FAILURE_MESSAGES: dict[UpstreamFailure, str] = {
    UpstreamFailure.INVALID_API_KEY: "API key error: the API key is invalid or expired, check the API configuration",
    UpstreamFailure.RATE_LIMITED: "Rate limit exceeded: please try again later",
    UpstreamFailure.QUOTA_EXCEEDED: "Usage limit reached: the plan quota is exhausted",
    UpstreamFailure.AUTH_REQUIRED: "Content requires authentication: the post might be private or protected",
    UpstreamFailure.RENDER_TIMEOUT: "Render timeout: the page took too long to load",
    UpstreamFailure.MALFORMED_URL: "URL error: the URL may be invalid or inaccessible",
    UpstreamFailure.UPSTREAM_ERROR: "Upstream service error: please try again later",
    UpstreamFailure.NETWORK_ERROR: "Network error: the upstream service timed out or refused the connection",
    UpstreamFailure.EMPTY_CONTENT: "No content was extracted from the URL",
}


class UpstreamError(Exception):
    """A call to the scraping service or the LLM failed."""

    def __init__(self, failure: UpstreamFailure, detail: str, *, code: str | None = None) -> None:
        super().__init__(detail)
        self.failure = failure
        self.detail = detail
        self.code = code

    @property
    def message(self) -> str:
        return describe_failure(self.failure, self.detail, code=self.code)


def describe_failure(failure: UpstreamFailure, detail: str | None, *, code: str | None = None) -> str:
    base = FAILURE_MESSAGES.get(failure)
    if base is None:
        base = detail or "Unknown error"
    if code:
        return f"{base} (code: {code})"
    return base
