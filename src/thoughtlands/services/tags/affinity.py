"""
In-session memo of the tags a chat model suggested for a concept set.

Asking the same concepts twice in one session returns the earlier
suggestion without another model round trip. Entries hold the model's
raw tags; they are validated against the vocabulary on every use, so a
tag deleted from the vault since then is still rejected.
"""

from collections import OrderedDict
from collections.abc import Iterable, Sequence
from typing import Any

from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)


def affinity_key(concepts: Iterable[str], scope: str = "") -> str:
    """Order-insensitive key: ``ai,ethics|regular``."""
    key = ",".join(sorted(c.strip().lower() for c in concepts if c and c.strip()))
    return f"{key}|{scope}" if scope else key


class TagAffinityCache:
    """LRU memo of concept set -> suggested tags."""

    def __init__(self, max_size: int = 100):
        self.max_size = max_size
        self._cache: OrderedDict[str, list[str]] = OrderedDict()
        self._stats = {
            'hits': 0,
            'misses': 0,
            'evictions': 0
        }

    def __len__(self) -> int:
        return len(self._cache)

    def get(self, key: str) -> list[str] | None:
        tags = self._cache.get(key)
        if tags is None:
            self._stats['misses'] += 1
            return None
        self._cache.move_to_end(key)
        self._stats['hits'] += 1
        logger.debug(f"Tag affinity hit for '{key}'")
        return list(tags)

    def put(self, key: str, tags: Sequence[str]) -> None:
        if self.max_size <= 0 or not tags:
            return
        if key in self._cache:
            self._cache.move_to_end(key)
        elif len(self._cache) >= self.max_size:
            evicted, _ = self._cache.popitem(last=False)
            self._stats['evictions'] += 1
            logger.debug(f"Evicted tag affinity entry '{evicted}'")
        self._cache[key] = list(tags)

    def clear(self) -> None:
        self._cache.clear()

    def get_stats(self) -> dict[str, Any]:
        return {'size': len(self._cache), 'max_size': self.max_size, **self._stats}
