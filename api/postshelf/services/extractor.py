from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from postshelf.core.urls import is_substack_url
from postshelf.services.failures import UpstreamError, UpstreamFailure, describe_failure
from postshelf.services.linkedin import parse_linkedin_author, parse_linkedin_post, transform_linkedin_url
from postshelf.services.llm import LlmClient
from postshelf.services.zenrows import ZenRowsClient

logger = logging.getLogger(__name__)

SUBSTACK_SYSTEM_PROMPT = "You extract newsletter posts into structured JSON. Never invent content."
SUBSTACK_PROMPT = """
Fetch the Substack newsletter post at this URL and extract its content:
{url}

Respond in JSON format with the following properties:
- authorName: the author's display name
- authorImage: URL of the author's profile image, or an empty string
- content: the full text of the post body, paragraphs separated by blank lines
- postImage: URL of the post's lead image, or an empty string
- publishedDate: publication date in ISO 8601 format, or an empty string
"""


@dataclass(slots=True)
class ExtractedPost:
    author_name: str
    author_image: str
    content: str
    post_image: str
    published_date: datetime | None


class ExtractionError(Exception):
    """Extraction failed; ``message`` is the human-readable reason shown on the post."""

    def __init__(self, failure: UpstreamFailure, message: str) -> None:
        super().__init__(message)
        self.failure = failure
        self.message = message

    @classmethod
    def from_upstream(cls, exc: UpstreamError) -> ExtractionError:
        return cls(exc.failure, exc.message)

    @classmethod
    def not_configured(cls, what: str) -> ExtractionError:
        return cls(UpstreamFailure.INVALID_API_KEY, f"{what} API key is not configured")


class ContentExtractor:
    def __init__(self, *, scraper: ZenRowsClient | None, llm: LlmClient | None) -> None:
        self.scraper = scraper
        self.llm = llm

    async def extract(self, url: str) -> ExtractedPost:
        if is_substack_url(url):
            extracted = await self.extract_substack(url)
        else:
            extracted = await self.extract_linkedin(url)

        if not extracted.content.strip():
            raise ExtractionError(
                UpstreamFailure.EMPTY_CONTENT,
                describe_failure(UpstreamFailure.EMPTY_CONTENT, None),
            )
        return extracted

    async def extract_linkedin(self, url: str) -> ExtractedPost:
        html = await self._scrape(url)
        parsed = parse_linkedin_post(html)
        return ExtractedPost(
            author_name=parsed.author_name,
            author_image=parsed.author_image,
            content=parsed.content,
            post_image=parsed.post_image,
            published_date=parsed.published_date,
        )

    async def extract_substack(self, url: str) -> ExtractedPost:
        if self.llm is None:
            raise ExtractionError.not_configured("LLM")
        try:
            payload = await self.llm.complete_json(
                SUBSTACK_PROMPT.format(url=url),
                system=SUBSTACK_SYSTEM_PROMPT,
                temperature=0.2,
                max_tokens=4000,
            )
        except UpstreamError as exc:
            raise ExtractionError.from_upstream(exc) from exc

        return ExtractedPost(
            author_name=_text(payload.get("authorName")),
            author_image=_text(payload.get("authorImage")),
            content=_text(payload.get("content")),
            post_image=_text(payload.get("postImage")),
            published_date=_datetime(payload.get("publishedDate")),
        )

    async def reextract_author(self, url: str) -> tuple[str, str]:
        """Scrape a LinkedIn post again and return only (author name, author image)."""
        html = await self._scrape(url)
        return parse_linkedin_author(html)

    async def _scrape(self, url: str) -> str:
        if self.scraper is None:
            raise ExtractionError.not_configured("Scraping service")
        target = transform_linkedin_url(url)
        logger.info("scraping linkedin post url=%s target=%s", url, target)
        try:
            return await self.scraper.fetch_html(target)
        except UpstreamError as exc:
            raise ExtractionError.from_upstream(exc) from exc


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _datetime(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed
