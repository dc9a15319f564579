from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from postshelf.services.extractor import ContentExtractor, ExtractionError
from postshelf.services.failures import UpstreamFailure
from postshelf.services.llm import LlmError
from postshelf.services.zenrows import ZenRowsError

LINKEDIN_HTML = """
<html><body>
  <span class="update-components-actor__name">Jane Doe</span>
  <div class="update-components-text">Free trial conversion notes.</div>
</body></html>
"""


class FakeScraper:
    def __init__(self, html: str = LINKEDIN_HTML, error: Exception | None = None) -> None:
        self.html = html
        self.error = error
        self.urls: list[str] = []

    async def fetch_html(self, url: str) -> str:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.html


class FakeLlm:
    def __init__(self, payload: dict[str, Any] | None = None, error: Exception | None = None) -> None:
        self.payload = payload or {}
        self.error = error
        self.prompts: list[str] = []

    async def complete_json(self, prompt: str, **_: Any) -> dict[str, Any]:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.payload


def test_linkedin_urls_are_scraped_through_the_transformed_url() -> None:
    scraper = FakeScraper()
    extractor = ContentExtractor(scraper=scraper, llm=None)  # type: ignore[arg-type]

    extracted = asyncio.run(
        extractor.extract("https://www.linkedin.com/feed/update/urn:li:activity:42?utm_source=share")
    )

    assert scraper.urls == ["https://www.linkedin.com/posts/42"]
    assert extracted.author_name == "Jane Doe"
    assert extracted.content == "Free trial conversion notes."


def test_substack_urls_go_through_the_language_model() -> None:
    llm = FakeLlm(
        {
            "authorName": "Lenny",
            "authorImage": "",
            "content": "How to price your product.",
            "postImage": "https://cdn.substack.com/lead.png",
            "publishedDate": "2024-01-15T08:00:00Z",
        }
    )
    extractor = ContentExtractor(scraper=None, llm=llm)  # type: ignore[arg-type]

    extracted = asyncio.run(extractor.extract("https://lenny.substack.com/p/pricing"))

    assert "https://lenny.substack.com/p/pricing" in llm.prompts[0]
    assert extracted.author_name == "Lenny"
    assert extracted.post_image == "https://cdn.substack.com/lead.png"
    assert extracted.published_date == datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)


def test_empty_content_is_an_extraction_failure() -> None:
    extractor = ContentExtractor(scraper=FakeScraper("<html><body></body></html>"), llm=None)  # type: ignore[arg-type]

    with pytest.raises(ExtractionError) as exc_info:
        asyncio.run(extractor.extract("https://www.linkedin.com/posts/abc"))
    assert exc_info.value.failure is UpstreamFailure.EMPTY_CONTENT
    assert exc_info.value.message == "No content was extracted from the URL"


def test_missing_scraper_key_fails_linkedin_extraction() -> None:
    extractor = ContentExtractor(scraper=None, llm=None)

    with pytest.raises(ExtractionError) as exc_info:
        asyncio.run(extractor.extract("https://www.linkedin.com/posts/abc"))
    assert exc_info.value.failure is UpstreamFailure.INVALID_API_KEY


def test_upstream_errors_become_extraction_errors() -> None:
    scraper = FakeScraper(error=ZenRowsError(UpstreamFailure.RATE_LIMITED, "slow down", code="AUTH006"))
    extractor = ContentExtractor(scraper=scraper, llm=None)  # type: ignore[arg-type]

    with pytest.raises(ExtractionError) as exc_info:
        asyncio.run(extractor.extract("https://www.linkedin.com/posts/abc"))
    assert exc_info.value.failure is UpstreamFailure.RATE_LIMITED
    assert exc_info.value.message == "Rate limit exceeded: please try again later (code: AUTH006)"

    llm = FakeLlm(error=LlmError(UpstreamFailure.UNKNOWN, "model exploded"))
    extractor = ContentExtractor(scraper=None, llm=llm)  # type: ignore[arg-type]
    with pytest.raises(ExtractionError) as exc_info:
        asyncio.run(extractor.extract("https://lenny.substack.com/p/pricing"))
    assert exc_info.value.message == "model exploded"


def test_reextract_author_returns_name_and_image() -> None:
    html = """
    <html><body>
      <span class="update-components-actor__name">Sam Lee</span>
      <img class="update-components-actor__avatar-image" src="https://media.licdn.com/sam.jpg">
    </body></html>
    """
    extractor = ContentExtractor(scraper=FakeScraper(html), llm=None)  # type: ignore[arg-type]

    assert asyncio.run(extractor.reextract_author("https://www.linkedin.com/posts/abc")) == (
        "Sam Lee",
        "https://media.licdn.com/sam.jpg",
    )
