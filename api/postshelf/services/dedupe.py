from __future__ import annotations

from typing import Any, Iterable

from postshelf.core.urls import NormalizedUrl, host_path_key


def find_existing_post(
    url: str,
    normalized: NormalizedUrl,
    posts: Iterable[dict[str, Any]],
) -> dict[str, Any] | None:
    """Return the stored post that is the same logical URL as ``url``.

    A byte-identical stored URL wins outright; otherwise stored URLs are
    compared on host+path with tracking parameters removed. This is a linear
    scan over every post per submission.
    """
    candidates = list(posts)
    for post in candidates:
        if post.get("url") == url:
            return post

    for post in candidates:
        stored_url = post.get("url")
        if not isinstance(stored_url, str):
            continue
        if host_path_key(stored_url) == normalized.key:
            return post
    return None
