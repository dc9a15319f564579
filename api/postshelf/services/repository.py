from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import asyncpg  # type: ignore[import-untyped]

from postshelf.core.config import get_settings
from postshelf.services.categories import CategoryRegistry, get_category_registry

if TYPE_CHECKING:
    from postshelf.services.store import InMemoryPostRepository

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates state transition rules."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


POST_STATUSES = {"processing", "extracting", "analyzing", "completed", "failed"}
UPDATABLE_POST_FIELDS = {
    "author_name",
    "author_image",
    "content",
    "post_image",
    "published_date",
    "categories",
    "summary",
    "confidence",
    "process_error",
    "processing_status",
}
POST_COLUMNS_SQL = """
  id,
  url,
  author_name,
  author_image,
  content,
  post_image,
  published_date,
  categories,
  summary,
  confidence,
  process_error,
  processing_status,
  created_at
"""
SCHEMA_STATEMENTS: list[str] = [
    """
    create table if not exists posts (
      id bigserial primary key,
      url text not null,
      author_name text,
      author_image text,
      content text,
      post_image text,
      published_date timestamptz,
      categories text[] not null default '{}',
      summary text,
      confidence text,
      process_error text,
      processing_status text not null default 'processing',
      created_at timestamptz not null default now()
    )
    """,
    "create index if not exists posts_categories_idx on posts using gin (categories)",
    "create index if not exists posts_created_at_idx on posts (created_at desc)",
]


def check_post_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Reject fields that may not be written through an update (id, url, created_at, ...)."""
    unknown = sorted(set(changes) - UPDATABLE_POST_FIELDS)
    if unknown:
        raise RepositoryValidationError(f"fields cannot be updated: {', '.join(unknown)}")
    normalized = dict(changes)
    if "categories" in normalized:
        normalized["categories"] = list(normalized["categories"] or [])
    return normalized


def validate_post_record(record: dict[str, Any], *, max_categories: int) -> None:
    status = record.get("processing_status")
    if status not in POST_STATUSES:
        raise RepositoryValidationError(f"invalid processing status: {status}")

    categories = record.get("categories") or []
    if len(categories) > max_categories:
        raise RepositoryValidationError(f"Maximum of {max_categories} categories per post allowed")

    if status == "completed" and not (record.get("content") or "").strip():
        raise RepositoryValidationError("a completed post requires extracted content")
    if status == "failed" and record.get("process_error") is None:
        raise RepositoryValidationError("a failed post requires a process error")


def ensure_deletable(record: dict[str, Any]) -> None:
    if record.get("processing_status") == "processing" and not record.get("categories"):
        raise RepositoryConflictError("Cannot delete a post that is still being processed and has no categories")


class PostgresPostRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        registry: CategoryRegistry,
        max_categories_per_post: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.registry = registry
        self.max_categories_per_post = max_categories_per_post
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def list_posts(self) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {POST_COLUMNS_SQL}
            from posts
            order by created_at desc, id desc
            """
        )
        return [self._post_row_to_dict(row) for row in rows]

    async def list_posts_by_category(self, category: str) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {POST_COLUMNS_SQL}
            from posts
            where categories @> array[$1]::text[]
            order by created_at desc, id desc
            """,
            category,
        )
        return [self._post_row_to_dict(row) for row in rows]

    async def get_post(self, post_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(f"select {POST_COLUMNS_SQL} from posts where id = $1", post_id)
        if not row:
            raise RepositoryNotFoundError("Post not found")
        return self._post_row_to_dict(row)

    async def create_post(self, *, url: str, **fields: Any) -> dict[str, Any]:
        values = check_post_changes(fields)
        values.setdefault("processing_status", "processing")
        values.setdefault("categories", [])
        validate_post_record(values, max_categories=self.max_categories_per_post)

        columns = ["url", *values.keys()]
        placeholders = ", ".join(f"${index}" for index in range(1, len(columns) + 1))
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            insert into posts ({", ".join(columns)})
            values ({placeholders})
            returning {POST_COLUMNS_SQL}
            """,
            url,
            *values.values(),
        )
        if not row:
            raise RepositoryConflictError("failed to create post")
        return self._post_row_to_dict(row)

    async def update_post(self, post_id: int, changes: dict[str, Any]) -> dict[str, Any]:
        normalized = check_post_changes(changes)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                current = await conn.fetchrow(
                    f"select {POST_COLUMNS_SQL} from posts where id = $1 for update",
                    post_id,
                )
                if not current:
                    raise RepositoryNotFoundError("Post not found")
                if not normalized:
                    return self._post_row_to_dict(current)

                merged = {**self._post_row_to_dict(current), **normalized}
                validate_post_record(merged, max_categories=self.max_categories_per_post)

                params: list[Any] = []

                def bind(value: Any) -> str:
                    params.append(value)
                    return f"${len(params)}"

                assignments = ", ".join(f"{column} = {bind(value)}" for column, value in normalized.items())
                row = await conn.fetchrow(
                    f"""
                    update posts
                    set {assignments}
                    where id = {bind(post_id)}
                    returning {POST_COLUMNS_SQL}
                    """,
                    *params,
                )
        if not row:
            raise RepositoryNotFoundError("Post not found")
        return self._post_row_to_dict(row)

    async def delete_post(self, post_id: int) -> bool:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                current = await conn.fetchrow(
                    f"select {POST_COLUMNS_SQL} from posts where id = $1 for update",
                    post_id,
                )
                if not current:
                    return False
                ensure_deletable(self._post_row_to_dict(current))
                deleted = await conn.fetchval("delete from posts where id = $1 returning id", post_id)
        return deleted is not None

    async def list_categories(self) -> list[str]:
        pool = await self._get_pool()
        rows = await pool.fetch("select distinct unnest(categories) as name from posts")
        in_use = {row["name"] for row in rows if row["name"]}
        return sorted(set(self.registry.names()) | in_use)

    async def add_category(self, name: str) -> list[str]:
        self.registry.add(name)
        return await self.list_categories()

    async def delete_category(self, name: str) -> list[str]:
        removed = self.registry.remove(name)
        pool = await self._get_pool()
        # Each row is rewritten by its own atomic array_remove.
        rows = await pool.fetch(
            """
            update posts
            set categories = array_remove(categories, $1)
            where $1 = any(categories)
            returning id
            """,
            name,
        )
        logger.info(
            "category deleted name=%s in_registry=%s stripped_from_posts=%s",
            name,
            removed,
            len(rows),
        )
        return await self.list_categories()

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("PS_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            async with pool.acquire() as conn:
                for statement in SCHEMA_STATEMENTS:
                    await conn.execute(statement)
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc
        self._pool = pool
        return self._pool

    @staticmethod
    def _post_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": int(row["id"]),
            "url": row["url"],
            "author_name": row["author_name"],
            "author_image": row["author_image"],
            "content": row["content"],
            "post_image": row["post_image"],
            "published_date": row["published_date"],
            "categories": list(row["categories"] or []),
            "summary": row["summary"],
            "confidence": row["confidence"],
            "process_error": row["process_error"],
            "processing_status": row["processing_status"],
            "created_at": row["created_at"],
        }


@lru_cache
def get_repository() -> PostgresPostRepository | InMemoryPostRepository:
    settings = get_settings()
    registry = get_category_registry()
    if not settings.database_url:
        from postshelf.services.store import InMemoryPostRepository

        logger.warning("PS_DATABASE_URL not set; posts are kept in memory only")
        return InMemoryPostRepository(
            registry=registry,
            max_categories_per_post=settings.max_categories_per_post,
        )
    return PostgresPostRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        registry=registry,
        max_categories_per_post=settings.max_categories_per_post,
    )
