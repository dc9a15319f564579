from __future__ import annotations

import logging
from typing import Any

import httpx

from postshelf.services.failures import UpstreamError, UpstreamFailure

logger = logging.getLogger(__name__)

DEFAULT_ZENROWS_URL = "https://api.zenrows.com/v1/"

# https://docs.zenrows.com/api-error-codes
ERROR_CODE_FAILURES: dict[str, UpstreamFailure] = {
    "API001": UpstreamFailure.INVALID_API_KEY,
    "AUTH001": UpstreamFailure.INVALID_API_KEY,
    "AUTH002": UpstreamFailure.INVALID_API_KEY,
    "AUTH003": UpstreamFailure.INVALID_API_KEY,
    "API002": UpstreamFailure.RATE_LIMITED,
    "AUTH006": UpstreamFailure.RATE_LIMITED,
    "API003": UpstreamFailure.QUOTA_EXCEEDED,
    "AUTH004": UpstreamFailure.QUOTA_EXCEEDED,
    "RESP001": UpstreamFailure.AUTH_REQUIRED,
    "RESP002": UpstreamFailure.RENDER_TIMEOUT,
    "RESP003": UpstreamFailure.RENDER_TIMEOUT,
    "REQS002": UpstreamFailure.MALFORMED_URL,
    "REQS004": UpstreamFailure.MALFORMED_URL,
}
STATUS_FAILURES: dict[int, UpstreamFailure] = {
    400: UpstreamFailure.MALFORMED_URL,
    401: UpstreamFailure.INVALID_API_KEY,
    402: UpstreamFailure.QUOTA_EXCEEDED,
    429: UpstreamFailure.RATE_LIMITED,
}


class ZenRowsError(UpstreamError):
    """Raised when the scraping service cannot return a rendered page."""


class ZenRowsClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_ZENROWS_URL,
        wait_for: str | None = None,
        premium_proxy: bool = True,
        timeout_seconds: float = 90.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.wait_for = wait_for
        self.premium_proxy = premium_proxy
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def fetch_html(self, url: str) -> str:
        params = {
            "url": url,
            "apikey": self.api_key,
            "js_render": "true",
        }
        if self.premium_proxy:
            params["premium_proxy"] = "true"
        if self.wait_for:
            params["wait_for"] = self.wait_for

        try:
            if self._client is not None:
                response = await self._client.get(self.base_url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as temp_client:
                    response = await temp_client.get(self.base_url, params=params)
        except httpx.TimeoutException as exc:
            raise ZenRowsError(UpstreamFailure.NETWORK_ERROR, "scraping request timed out") from exc
        except httpx.TransportError as exc:
            raise ZenRowsError(UpstreamFailure.NETWORK_ERROR, str(exc) or "connection failed") from exc

        if response.status_code >= 400:
            raise _error_from_response(response)

        html = response.text
        if not html.strip():
            raise ZenRowsError(UpstreamFailure.EMPTY_CONTENT, "No data returned from scraping service")
        logger.info("scraped page url=%s html_length=%s", url, len(html))
        return html


def _error_from_response(response: httpx.Response) -> ZenRowsError:
    payload = _json_body(response)
    code = payload.get("code") if isinstance(payload.get("code"), str) else None
    title = payload.get("title") if isinstance(payload.get("title"), str) else None
    detail = payload.get("detail") if isinstance(payload.get("detail"), str) else None

    failure = ERROR_CODE_FAILURES.get(code or "")
    if failure is None:
        failure = STATUS_FAILURES.get(response.status_code)
    if failure is None and response.status_code >= 500:
        failure = UpstreamFailure.UPSTREAM_ERROR
    if failure is None:
        failure = UpstreamFailure.UNKNOWN

    message = title or detail or response.reason_phrase or "Unknown error"
    if failure is UpstreamFailure.UNKNOWN:
        message = f"{message} (status: {response.status_code})"
    logger.warning(
        "scraping service error status=%s code=%s failure=%s",
        response.status_code,
        code,
        failure.value,
    )
    return ZenRowsError(failure, message, code=code)


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}
