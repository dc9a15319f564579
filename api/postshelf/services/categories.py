from __future__ import annotations

import threading
from functools import lru_cache

DEFAULT_CATEGORIES = (
    "PLG Strategy",
    "Pricing experiments",
    "Onboarding",
    "Stakeholder management",
    "AI tools for PM",
    "Communication",
    "Coaching",
    "Free trial",
    "Marketing",
    "Sales",
    "Acquisition",
    "SEO",
    "Acquisition plays",
)


class CategoryRegistry:
    """Process-wide set of known category names, kept sorted.

    Names are compared case-sensitively. Every mutation holds the lock so the
    registry stays consistent when touched from worker threads as well as the
    event loop.
    """

    def __init__(self, initial: tuple[str, ...] | list[str] = DEFAULT_CATEGORIES) -> None:
        self._lock = threading.Lock()
        self._names: list[str] = sorted({name for name in initial if name})

    def names(self) -> list[str]:
        with self._lock:
            return list(self._names)

    def contains(self, name: str) -> bool:
        with self._lock:
            return name in self._names

    def add(self, name: str) -> list[str]:
        with self._lock:
            if name and name not in self._names:
                self._names.append(name)
                self._names.sort()
            return list(self._names)

    def remove(self, name: str) -> bool:
        with self._lock:
            if name not in self._names:
                return False
            self._names.remove(name)
            return True


@lru_cache
def get_category_registry() -> CategoryRegistry:
    return CategoryRegistry()
