from __future__ import annotations

import itertools
import logging
from datetime import datetime, timezone
from typing import Any

from postshelf.services.categories import CategoryRegistry
from postshelf.services.repository import (
    RepositoryNotFoundError,
    check_post_changes,
    ensure_deletable,
    validate_post_record,
)

logger = logging.getLogger(__name__)


class InMemoryPostRepository:
    """Post store used when no database is configured.

    Every method completes without awaiting, so each call is atomic with
    respect to other coroutines on the event loop.
    """

    def __init__(self, registry: CategoryRegistry, max_categories_per_post: int = 10) -> None:
        self.registry = registry
        self.max_categories_per_post = max_categories_per_post
        self.posts: dict[int, dict[str, Any]] = {}
        self._ids = itertools.count(1)

    async def close(self) -> None:
        return None

    async def list_posts(self) -> list[dict[str, Any]]:
        return [_copy(post) for post in self._newest_first(self.posts.values())]

    async def list_posts_by_category(self, category: str) -> list[dict[str, Any]]:
        matching = [post for post in self.posts.values() if category in (post["categories"] or [])]
        return [_copy(post) for post in self._newest_first(matching)]

    async def get_post(self, post_id: int) -> dict[str, Any]:
        post = self.posts.get(post_id)
        if post is None:
            raise RepositoryNotFoundError("Post not found")
        return _copy(post)

    async def create_post(self, *, url: str, **fields: Any) -> dict[str, Any]:
        values = check_post_changes(fields)
        post: dict[str, Any] = {
            "id": next(self._ids),
            "url": url,
            "author_name": None,
            "author_image": None,
            "content": None,
            "post_image": None,
            "published_date": None,
            "categories": [],
            "summary": None,
            "confidence": None,
            "process_error": None,
            "processing_status": "processing",
            "created_at": datetime.now(timezone.utc),
        }
        post.update(values)
        validate_post_record(post, max_categories=self.max_categories_per_post)
        self.posts[post["id"]] = post
        return _copy(post)

    async def update_post(self, post_id: int, changes: dict[str, Any]) -> dict[str, Any]:
        normalized = check_post_changes(changes)
        current = self.posts.get(post_id)
        if current is None:
            raise RepositoryNotFoundError("Post not found")
        merged = {**current, **normalized}
        validate_post_record(merged, max_categories=self.max_categories_per_post)
        self.posts[post_id] = merged
        return _copy(merged)

    async def delete_post(self, post_id: int) -> bool:
        current = self.posts.get(post_id)
        if current is None:
            return False
        ensure_deletable(current)
        del self.posts[post_id]
        return True

    async def list_categories(self) -> list[str]:
        in_use = {name for post in self.posts.values() for name in (post["categories"] or []) if name}
        return sorted(set(self.registry.names()) | in_use)

    async def add_category(self, name: str) -> list[str]:
        self.registry.add(name)
        return await self.list_categories()

    async def delete_category(self, name: str) -> list[str]:
        removed = self.registry.remove(name)
        stripped = 0
        for post_id, post in list(self.posts.items()):
            if name not in (post["categories"] or []):
                continue
            self.posts[post_id] = {**post, "categories": [c for c in post["categories"] if c != name]}
            stripped += 1
        logger.info(
            "category deleted name=%s in_registry=%s stripped_from_posts=%s",
            name,
            removed,
            stripped,
        )
        return await self.list_categories()

    @staticmethod
    def _newest_first(posts: Any) -> list[dict[str, Any]]:
        return sorted(posts, key=lambda post: (post["created_at"], post["id"]), reverse=True)


def _copy(post: dict[str, Any]) -> dict[str, Any]:
    return {**post, "categories": list(post["categories"] or [])}
