from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from postshelf.services.categories import CategoryRegistry
from postshelf.services.categorizer import CategorizationError, Categorizer
from postshelf.services.extractor import ExtractedPost, ExtractionError
from postshelf.services.failures import UpstreamFailure
from postshelf.services.pipeline import PostPipeline
from postshelf.services.store import InMemoryPostRepository

URL = "https://www.linkedin.com/posts/example_123"


class RecordingRepository(InMemoryPostRepository):
    def __init__(self, registry: CategoryRegistry) -> None:
        super().__init__(registry)
        self.statuses: list[str] = []

    async def update_post(self, post_id: int, changes: dict[str, Any]) -> dict[str, Any]:
        row = await super().update_post(post_id, changes)
        if "processing_status" in changes:
            self.statuses.append(changes["processing_status"])
        return row


class FakeExtractor:
    def __init__(self, extracted: ExtractedPost | None = None, error: Exception | None = None) -> None:
        self.extracted = extracted
        self.error = error

    async def extract(self, url: str) -> ExtractedPost:
        if self.error is not None:
            raise self.error
        assert self.extracted is not None
        return self.extracted


class FailingCategorizer:
    async def categorize(self, content: str, known_categories: list[str]) -> Any:
        raise CategorizationError("language model returned no known categories")


def _extracted(content: str = "Our pricing tier subscription experiment.") -> ExtractedPost:
    return ExtractedPost(
        author_name="",
        author_image="https://media.licdn.com/jane.jpg",
        content=content,
        post_image="",
        published_date=None,
    )


def _pipeline(extractor: FakeExtractor, *, auto_categorize: bool = True) -> tuple[PostPipeline, RecordingRepository]:
    registry = CategoryRegistry()
    repository = RecordingRepository(registry)
    pipeline = PostPipeline(
        repository=repository,
        extractor=extractor,  # type: ignore[arg-type]
        categorizer=Categorizer(llm=None),
        registry=registry,
        auto_categorize=auto_categorize,
    )
    return pipeline, repository


def _run(pipeline: PostPipeline, repository: RecordingRepository) -> dict[str, Any]:
    async def run() -> dict[str, Any]:
        post = await repository.create_post(url=URL)
        await pipeline.run(post["id"], URL)
        return await repository.get_post(post["id"])

    return asyncio.run(run())


def test_successful_run_extracts_and_categorizes() -> None:
    pipeline, repository = _pipeline(FakeExtractor(_extracted()))

    post = _run(pipeline, repository)

    assert repository.statuses == ["extracting", "analyzing", "completed"]
    assert post["processing_status"] == "completed"
    assert post["process_error"] is None
    assert post["categories"] == ["Pricing experiments"]
    assert post["confidence"] == "0.50"
    assert post["summary"] == "Our pricing tier subscription experiment."
    assert post["author_name"] == "Content Author"
    assert isinstance(post["published_date"], datetime)


def test_extraction_failure_stops_before_categorization() -> None:
    error = ExtractionError(UpstreamFailure.RENDER_TIMEOUT, "Render timeout: the page took too long to load")
    pipeline, repository = _pipeline(FakeExtractor(error=error))

    post = _run(pipeline, repository)

    assert repository.statuses == ["extracting", "failed"]
    assert post["process_error"] == "Extraction failed: Render timeout: the page took too long to load"
    assert post["categories"] == []
    assert post["content"] is None


def test_categorization_failure_keeps_extracted_content() -> None:
    pipeline, repository = _pipeline(FakeExtractor(_extracted("Gardening notes from the weekend.")))
    pipeline.categorizer = FailingCategorizer()  # type: ignore[assignment]

    post = _run(pipeline, repository)

    assert post["processing_status"] == "failed"
    assert post["process_error"] == "Categorization failed: language model returned no known categories"
    assert post["content"] == "Gardening notes from the weekend."


def test_unmatched_content_is_filed_under_the_default_category() -> None:
    pipeline, repository = _pipeline(FakeExtractor(_extracted("Gardening notes from the weekend.")))

    post = _run(pipeline, repository)

    assert post["processing_status"] == "completed"
    assert post["categories"] == ["Communication"]
    assert post["confidence"] == "0.50"


def test_manual_categorize_flow_leaves_categories_empty() -> None:
    pipeline, repository = _pipeline(FakeExtractor(_extracted()), auto_categorize=False)

    post = _run(pipeline, repository)

    assert post["processing_status"] == "completed"
    assert post["categories"] == []
    assert post["confidence"] == "0"
    assert post["summary"] == "Content extracted. Please assign categories."


def test_unexpected_errors_are_recorded_on_the_post() -> None:
    pipeline, repository = _pipeline(FakeExtractor(error=RuntimeError("boom")))

    post = _run(pipeline, repository)

    assert post["processing_status"] == "failed"
    assert post["process_error"] == "Error: boom"


def test_run_tolerates_post_deleted_mid_flight() -> None:
    pipeline, repository = _pipeline(FakeExtractor(_extracted()))

    async def run() -> None:
        await pipeline.run(999, URL)

    asyncio.run(run())
    assert repository.statuses == []


def test_manual_content_skips_extraction() -> None:
    error = ExtractionError(UpstreamFailure.AUTH_REQUIRED, "private post")
    pipeline, repository = _pipeline(FakeExtractor(error=error))

    async def run() -> dict[str, Any]:
        post = await repository.create_post(url=URL)
        await pipeline.run(post["id"], URL)
        return await pipeline.apply_manual_content(post["id"], "Stakeholder alignment with executives.", "Sam")

    post = asyncio.run(run())

    assert repository.statuses[-2:] == ["analyzing", "completed"]
    assert post["author_name"] == "Sam"
    assert post["process_error"] is None
    assert post["categories"] == ["Stakeholder management"]
    assert post["published_date"].tzinfo is timezone.utc


def test_concurrent_runs_all_complete() -> None:
    pipeline, repository = _pipeline(FakeExtractor(_extracted()))

    async def run() -> list[dict[str, Any]]:
        posts = [await repository.create_post(url=f"{URL}-{index}") for index in range(6)]
        await asyncio.gather(*(pipeline.run(post["id"], post["url"]) for post in posts))
        return await repository.list_posts()

    assert {post["processing_status"] for post in asyncio.run(run())} == {"completed"}


def test_manual_content_without_llm_completes_for_unmatched_text() -> None:
    error = ExtractionError(UpstreamFailure.AUTH_REQUIRED, "private post")
    pipeline, repository = _pipeline(FakeExtractor(error=error))

    async def run() -> dict[str, Any]:
        post = await repository.create_post(url=URL)
        await pipeline.run(post["id"], URL)
        return await pipeline.apply_manual_content(post["id"], "Great weekend hiking with the family.", None)

    post = asyncio.run(run())

    assert post["processing_status"] == "completed"
    assert post["process_error"] is None
    assert post["categories"] == ["Communication"]


def test_manual_content_completes_uncategorized_when_categorization_fails() -> None:
    pipeline, repository = _pipeline(FakeExtractor(_extracted()))
    pipeline.categorizer = FailingCategorizer()  # type: ignore[assignment]

    async def run() -> dict[str, Any]:
        post = await repository.create_post(url=URL)
        await pipeline.run(post["id"], URL)
        return await pipeline.apply_manual_content(post["id"], "Great weekend hiking with the family.", "Sam")

    post = asyncio.run(run())

    assert repository.statuses[-2:] == ["analyzing", "completed"]
    assert post["categories"] == []
    assert post["confidence"] == "0"
    assert post["summary"] == "Content manually added. Please assign categories."
    assert post["process_error"] is None
    assert post["content"] == "Great weekend hiking with the family."
