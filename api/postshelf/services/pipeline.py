from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from postshelf.core.config import get_settings
from postshelf.core.telemetry import pipeline_span
from postshelf.services.categories import CategoryRegistry, get_category_registry
from postshelf.services.categorizer import CategorizationError, Categorizer
from postshelf.services.extractor import ContentExtractor, ExtractionError
from postshelf.services.llm import LlmClient
from postshelf.services.repository import RepositoryError, RepositoryNotFoundError, get_repository
from postshelf.services.zenrows import ZenRowsClient

logger = logging.getLogger(__name__)

DEFAULT_AUTHOR = "Content Author"
EXTRACTED_SUMMARY = "Content extracted. Please assign categories."
MANUAL_CONTENT_SUMMARY = "Content manually added. Please assign categories."


class PostPipeline:
    """Runs extraction then categorization for a submitted post.

    Status moves processing -> extracting -> analyzing -> completed, or to
    failed with ``process_error`` set. Failures are recorded on the post and
    never raised to the caller.
    """

    def __init__(
        self,
        *,
        repository: Any,
        extractor: ContentExtractor,
        categorizer: Categorizer,
        registry: CategoryRegistry,
        auto_categorize: bool = True,
        max_concurrency: int = 4,
    ) -> None:
        self.repository = repository
        self.extractor = extractor
        self.categorizer = categorizer
        self.registry = registry
        self.auto_categorize = auto_categorize
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def run(self, post_id: int, url: str) -> None:
        async with self._semaphore:
            with pipeline_span("pipeline.process_post", post_id):
                try:
                    await self._process(post_id, url)
                except RepositoryNotFoundError:
                    logger.info("post removed while processing post_id=%s", post_id)
                except Exception as exc:
                    logger.exception("pipeline failed post_id=%s", post_id)
                    await self._record_failure(post_id, f"Error: {str(exc) or exc.__class__.__name__}")

    async def _process(self, post_id: int, url: str) -> None:
        await self.repository.update_post(post_id, {"processing_status": "extracting", "process_error": None})

        with pipeline_span("pipeline.extract", post_id):
            try:
                extracted = await self.extractor.extract(url)
            except ExtractionError as exc:
                logger.warning(
                    "extraction failed post_id=%s failure=%s message=%s",
                    post_id,
                    exc.failure.value,
                    exc.message,
                )
                await self.repository.update_post(
                    post_id,
                    {"processing_status": "failed", "process_error": f"Extraction failed: {exc.message}"},
                )
                return

        post = await self.repository.update_post(
            post_id,
            {
                "author_name": extracted.author_name or DEFAULT_AUTHOR,
                "author_image": extracted.author_image,
                "content": extracted.content,
                "post_image": extracted.post_image,
                "published_date": extracted.published_date or datetime.now(timezone.utc),
                "processing_status": "analyzing",
            },
        )
        logger.info("content extracted post_id=%s content_length=%s", post_id, len(post["content"] or ""))
        await self.analyze(post_id, post["content"], pending_summary=EXTRACTED_SUMMARY)

    async def analyze(
        self,
        post_id: int,
        content: str,
        *,
        pending_summary: str,
        uncategorized_ok: bool = False,
    ) -> dict[str, Any]:
        """Move an ``analyzing`` post to its terminal state.

        With ``uncategorized_ok`` a categorization error still completes the
        post, leaving categories for the user to assign.
        """
        if not self.auto_categorize:
            return await self._complete_uncategorized(post_id, pending_summary)

        with pipeline_span("pipeline.categorize", post_id):
            try:
                result = await self.categorizer.categorize(content, self.registry.names())
            except CategorizationError as exc:
                logger.warning("categorization failed post_id=%s reason=%s", post_id, exc)
                if uncategorized_ok:
                    return await self._complete_uncategorized(post_id, pending_summary)
                return await self.repository.update_post(
                    post_id,
                    {"processing_status": "failed", "process_error": f"Categorization failed: {exc}"},
                )

        logger.info(
            "post categorized post_id=%s source=%s categories=%s",
            post_id,
            result.source,
            result.categories,
        )
        return await self.repository.update_post(
            post_id,
            {
                "categories": result.categories,
                "confidence": result.confidence_text,
                "summary": result.summary,
                "processing_status": "completed",
                "process_error": None,
            },
        )

    async def apply_manual_content(self, post_id: int, content: str, author_name: str | None) -> dict[str, Any]:
        """Store human-supplied content for a post and analyze it, skipping extraction."""
        post = await self.repository.get_post(post_id)
        await self.repository.update_post(
            post_id,
            {
                "content": content,
                "author_name": author_name or post["author_name"] or DEFAULT_AUTHOR,
                "published_date": datetime.now(timezone.utc),
                "processing_status": "analyzing",
                "process_error": None,
            },
        )
        return await self.analyze(
            post_id,
            content,
            pending_summary=MANUAL_CONTENT_SUMMARY,
            uncategorized_ok=True,
        )

    async def _complete_uncategorized(self, post_id: int, summary: str) -> dict[str, Any]:
        return await self.repository.update_post(
            post_id,
            {
                "categories": [],
                "summary": summary,
                "confidence": "0",
                "processing_status": "completed",
                "process_error": None,
            },
        )

    async def _record_failure(self, post_id: int, message: str) -> None:
        try:
            await self.repository.update_post(post_id, {"processing_status": "failed", "process_error": message})
        except RepositoryError:
            logger.exception("could not record pipeline failure post_id=%s", post_id)


@lru_cache
def get_pipeline() -> PostPipeline:
    settings = get_settings()
    llm = None
    if settings.openai_api_key:
        llm = LlmClient(
            settings.openai_api_key,
            model=settings.openai_model,
            timeout_seconds=settings.openai_timeout_seconds,
        )
    scraper = None
    if settings.zenrows_api_key:
        scraper = ZenRowsClient(
            settings.zenrows_api_key,
            base_url=settings.zenrows_base_url,
            wait_for=settings.zenrows_wait_for,
            premium_proxy=settings.zenrows_premium_proxy,
            timeout_seconds=settings.zenrows_timeout_seconds,
        )
    return PostPipeline(
        repository=get_repository(),
        extractor=ContentExtractor(scraper=scraper, llm=llm),
        categorizer=Categorizer(
            llm=llm,
            keyword_fallback=settings.keyword_fallback_enabled,
            max_content_chars=settings.categorizer_max_content_chars,
        ),
        registry=get_category_registry(),
        auto_categorize=settings.auto_categorize,
        max_concurrency=settings.pipeline_max_concurrency,
    )
