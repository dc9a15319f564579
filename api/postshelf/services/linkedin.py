"""Field extraction for rendered LinkedIn post pages.

Each field is looked up through an ordered list of CSS selectors covering the
logged-in feed markup, the older share-card markup and the public guest view.
When none match, regex fallbacks over the raw page are tried: the
``"<name> on LinkedIn:"`` page title for the author, ``<time datetime>``,
relative ``"3 days ago"`` stamps and ``"Mar 4, 2024"`` dates for the publish
time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from bs4 import BeautifulSoup, Tag

PLACEHOLDER_AUTHOR = "LinkedIn User"

AUTHOR_NAME_SELECTORS = (
    "span.update-components-actor__name",
    ".feed-shared-actor__name",
    ".share-update-card__actor-name",
    'a[data-tracking-control-name="public_post_feed-actor-name"]',
    '[class*="actor-name"]',
)
AUTHOR_IMAGE_SELECTORS = (
    "img.update-components-actor__avatar-image",
    ".feed-shared-actor__avatar img",
    ".share-update-card__actor-image img",
    'a[data-tracking-control-name="public_post_feed-actor-image"] img',
    'img[class*="profile"]',
    'img[class*="avatar"]',
    'img[alt*="photo"]',
)
CONTENT_SELECTORS = (
    ".feed-shared-update-v2__description",
    ".update-components-text",
    '[data-test-id="main-feed-activity-card__commentary"]',
    ".share-update-card__update-text",
    ".break-words",
)
POST_IMAGE_SELECTORS = (
    ".update-components-image img",
    ".feed-shared-image img",
    '[data-test-id="feed-images-content"] img',
)

_TITLE_AUTHOR_RE = re.compile(r"^\s*(.+?)\s+on\s+LinkedIn:", re.IGNORECASE | re.DOTALL)
_RELATIVE_DATE_RE = re.compile(r"(\d+)\s+(second|minute|hour|day|week|month|year)s?\s+ago", re.IGNORECASE)
_MONTH_DATE_RE = re.compile(
    r"\b(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})\b",
    re.IGNORECASE,
)
_ACTIVITY_RE = re.compile(r"urn:li:activity:(\d+)")
_MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")
_UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 7 * 86400,
    "month": 30 * 86400,
    "year": 365 * 86400,
}


@dataclass(slots=True)
class LinkedInPost:
    author_name: str
    author_image: str
    content: str
    post_image: str
    published_date: datetime | None


def transform_linkedin_url(url: str) -> str:
    """Rewrite feed URLs to the more stable /posts/ form and drop the query string."""
    if "/feed/update/" in url:
        match = _ACTIVITY_RE.search(url)
        if match:
            return f"https://www.linkedin.com/posts/{match.group(1)}"
    return url.split("?", maxsplit=1)[0]


def parse_linkedin_post(html: str, *, now: datetime | None = None) -> LinkedInPost:
    soup = BeautifulSoup(html, "html.parser")
    author_name, author_image = _extract_author(soup)
    return LinkedInPost(
        author_name=author_name,
        author_image=author_image,
        content=extract_post_content(soup),
        post_image=extract_post_image(soup),
        published_date=extract_published_date(soup, now=now),
    )


def parse_linkedin_author(html: str) -> tuple[str, str]:
    return _extract_author(BeautifulSoup(html, "html.parser"))


def _extract_author(soup: BeautifulSoup) -> tuple[str, str]:
    return extract_author_name(soup) or PLACEHOLDER_AUTHOR, extract_author_image(soup)


def extract_author_name(soup: BeautifulSoup) -> str | None:
    for selector in AUTHOR_NAME_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            name = _squash(element.get_text(" "))
            if name:
                return name

    title = soup.title.get_text() if soup.title else ""
    match = _TITLE_AUTHOR_RE.match(title)
    if match:
        return _squash(match.group(1))

    for link in soup.select('a[href*="/in/"]'):
        name = _squash(link.get_text(" "))
        if name and len(name) < 60:
            return name
    return None


def extract_author_image(soup: BeautifulSoup) -> str:
    for selector in AUTHOR_IMAGE_SELECTORS:
        element = soup.select_one(selector)
        source = _image_source(element)
        if source:
            return source
    return ""


def extract_post_content(soup: BeautifulSoup) -> str:
    for selector in CONTENT_SELECTORS:
        elements = soup.select(selector)
        parts = [_block_text(element) for element in elements]
        parts = [part for part in parts if part]
        if parts:
            return "\n\n".join(parts)

    paragraphs = [_squash(p.get_text(" ")) for p in soup.find_all("p")]
    return "\n\n".join(text for text in paragraphs if text)


def extract_post_image(soup: BeautifulSoup) -> str:
    for selector in POST_IMAGE_SELECTORS:
        source = _image_source(soup.select_one(selector))
        if source:
            return source

    meta = soup.find("meta", attrs={"property": "og:image"})
    if isinstance(meta, Tag):
        content = meta.get("content")
        if isinstance(content, str) and content.strip():
            return content.strip()
    return ""


def extract_published_date(soup: BeautifulSoup, *, now: datetime | None = None) -> datetime | None:
    current = now or datetime.now(timezone.utc)

    time_tag = soup.find("time", attrs={"datetime": True})
    if isinstance(time_tag, Tag):
        parsed = _parse_iso(str(time_tag.get("datetime")))
        if parsed is not None:
            return parsed

    text = soup.get_text(" ")
    relative = _RELATIVE_DATE_RE.search(text)
    if relative:
        amount = int(relative.group(1))
        unit = relative.group(2).lower()
        return current - timedelta(seconds=amount * _UNIT_SECONDS[unit])

    dated = _MONTH_DATE_RE.search(text)
    if dated:
        month = _MONTHS.index(dated.group(1)[:3].lower()) + 1
        try:
            return datetime(int(dated.group(3)), month, int(dated.group(2)), tzinfo=timezone.utc)
        except ValueError:
            return None
    return None


def _block_text(element: Tag) -> str:
    for line_break in element.find_all("br"):
        line_break.replace_with("\n")
    lines = [_squash(line) for line in element.get_text().splitlines()]
    return "\n".join(line for line in lines if line).strip()


def _image_source(element: Tag | None) -> str:
    if element is None:
        return ""
    for attribute in ("src", "data-delayed-url", "data-src"):
        value = element.get(attribute)
        if isinstance(value, str) and value.strip() and not value.startswith("data:"):
            return value.strip()
    return ""


def _parse_iso(value: str) -> datetime | None:
    candidate = value.strip()
    if not candidate:
        return None
    try:
        parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _squash(value: str) -> str:
    return " ".join(value.split())
