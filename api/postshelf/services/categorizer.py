from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Literal

from postshelf.services.failures import UpstreamError
from postshelf.services.llm import LlmClient

logger = logging.getLogger(__name__)

MAX_ASSIGNED_CATEGORIES = 3
FALLBACK_CONFIDENCE = 0.5
DEFAULT_CATEGORY = "Communication"
SUMMARY_MAX_CHARS = 100

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "PLG Strategy": ("plg", "product-led", "product led", "self-serve", "viral loop", "growth loop", "bottom-up"),
    "Pricing experiments": (
        "pricing",
        "price",
        "prices",
        "tier",
        "tiers",
        "subscription",
        "subscriptions",
        "discount",
        "paywall",
        "monetization",
        "willingness to pay",
    ),
    "Onboarding": ("onboarding", "onboard", "first-run", "time to value", "welcome email", "tutorial", "setup flow"),
    "Stakeholder management": ("stakeholder", "stakeholders", "alignment", "buy-in", "executives", "leadership"),
    "AI tools for PM": ("ai", "llm", "chatgpt", "gpt", "copilot", "machine learning", "prompt", "prompts"),
    "Communication": ("communication", "feedback", "meeting", "meetings", "writing", "storytelling", "speak up"),
    "Coaching": ("coaching", "coach", "mentor", "mentoring", "mentorship", "career", "one-on-one"),
    "Free trial": ("free trial", "trial", "trials", "freemium", "trial conversion"),
    "Marketing": ("marketing", "brand", "branding", "campaign", "campaigns", "positioning", "messaging"),
    "Sales": ("sales", "deal", "deals", "quota", "prospect", "prospects", "outbound", "closing"),
    "Acquisition": ("acquisition", "cac", "signups", "sign-ups", "leads", "funnel", "top of funnel"),
    "SEO": ("seo", "search engine", "backlinks", "organic traffic", "keywords", "ranking"),
    "Acquisition plays": ("acquisition play", "acquisition plays", "growth play", "referral", "referrals", "partnerships"),
}

CATEGORIZE_PROMPT = """
Analyze the following post and categorize it into 2-3 of the most relevant categories from this list:
{categories}

Post Content:
\"\"\"
{content}
\"\"\"

Provide your response in JSON format with the following properties:
- categories: array of 2-3 selected categories that best match the content, using the exact names from the list
- confidence: number between 0 and 1 indicating confidence in categorization
- summary: brief 1-2 sentence summary of the post content
"""

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")


@dataclass(slots=True)
class CategorizationResult:
    categories: list[str]
    confidence: float
    summary: str
    source: Literal["llm", "keywords"]

    @property
    def confidence_text(self) -> str:
        return f"{self.confidence:.2f}"


class CategorizationError(Exception):
    """No usable categories could be assigned to the content."""


class Categorizer:
    def __init__(
        self,
        *,
        llm: LlmClient | None,
        keyword_fallback: bool = True,
        max_content_chars: int = 8000,
    ) -> None:
        self.llm = llm
        self.keyword_fallback = keyword_fallback
        self.max_content_chars = max_content_chars

    async def categorize(self, content: str, known_categories: list[str]) -> CategorizationResult:
        if not content.strip():
            raise CategorizationError("no content to categorize")
        if not known_categories:
            raise CategorizationError("no categories are registered")

        if self.llm is not None:
            try:
                return await self._categorize_with_llm(content, known_categories)
            except (UpstreamError, CategorizationError) as exc:
                if not self.keyword_fallback:
                    raise CategorizationError(_reason(exc)) from exc
                logger.warning("llm categorization failed, using keyword fallback: %s", _reason(exc))
        elif not self.keyword_fallback:
            raise CategorizationError("LLM API key is not configured")

        return categorize_by_keywords(content, known_categories)

    async def _categorize_with_llm(self, content: str, known_categories: list[str]) -> CategorizationResult:
        payload = await self.llm.complete_json(  # type: ignore[union-attr]
            CATEGORIZE_PROMPT.format(
                categories=", ".join(known_categories),
                content=content[: self.max_content_chars],
            ),
        )
        categories = _match_known(payload.get("categories"), known_categories)
        if not categories:
            raise CategorizationError("language model returned no known categories")

        summary = payload.get("summary")
        return CategorizationResult(
            categories=categories[:MAX_ASSIGNED_CATEGORIES],
            confidence=_clamp_confidence(payload.get("confidence")),
            summary=summary.strip() if isinstance(summary, str) and summary.strip() else "No summary available",
            source="llm",
        )


def categorize_by_keywords(content: str, known_categories: list[str]) -> CategorizationResult:
    """Rank categories by whole-word, case-insensitive keyword hits and keep the top three.

    Content with no hits is filed under ``DEFAULT_CATEGORY``, or the first known
    category when that one is not registered.
    """
    if not known_categories:
        raise CategorizationError("no categories are registered")

    scores: list[tuple[int, int, str]] = []
    for position, name in enumerate(known_categories):
        hits = sum(_count_occurrences(content, keyword) for keyword in keywords_for(name))
        if hits:
            scores.append((-hits, position, name))

    if scores:
        scores.sort()
        categories = [name for _, _, name in scores[:MAX_ASSIGNED_CATEGORIES]]
    elif DEFAULT_CATEGORY in known_categories:
        categories = [DEFAULT_CATEGORY]
    else:
        categories = [known_categories[0]]

    return CategorizationResult(
        categories=categories,
        confidence=FALLBACK_CONFIDENCE,
        summary=first_sentence(content),
        source="keywords",
    )


def keywords_for(category: str) -> tuple[str, ...]:
    keywords = CATEGORY_KEYWORDS.get(category)
    if keywords:
        return keywords
    # Ad hoc categories match on their own name and its longer words.
    words = tuple(word for word in re.findall(r"[\w-]+", category.lower()) if len(word) > 3)
    return (category.lower(), *words)


def first_sentence(content: str, limit: int = SUMMARY_MAX_CHARS) -> str:
    for chunk in _SENTENCE_SPLIT_RE.split(content):
        sentence = " ".join(chunk.split())
        if sentence:
            if len(sentence) <= limit:
                return sentence
            return sentence[: limit - 3].rstrip() + "..."
    return ""


def _count_occurrences(content: str, keyword: str) -> int:
    pattern = re.compile(rf"(?<!\w){re.escape(keyword)}(?!\w)", re.IGNORECASE)
    return len(pattern.findall(content))


def _match_known(raw: Any, known_categories: Iterable[str]) -> list[str]:
    if not isinstance(raw, list):
        return []
    exact = list(known_categories)
    by_lower: dict[str, str] = {}
    for name in exact:
        by_lower.setdefault(name.lower(), name)
    matched: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        candidate = item.strip()
        # Names differing only in case are distinct registry entries.
        name = candidate if candidate in exact else by_lower.get(candidate.lower())
        if name and name not in matched:
            matched.append(name)
    return matched


def _clamp_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return FALLBACK_CONFIDENCE
    if math.isnan(confidence):
        return FALLBACK_CONFIDENCE
    return max(0.0, min(1.0, confidence))


def _reason(exc: Exception) -> str:
    if isinstance(exc, UpstreamError):
        return exc.message
    return str(exc)
