"""
In-session memo for text embeddings.

Repeated short queries (the same concept text embedded several times in
one run) are answered from memory. This is not the persistent cache; it
is cleared whenever the client is rebuilt.
"""

from collections import OrderedDict
from typing import Any

from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)


class EmbeddingMemo:
    """LRU memo keyed by a truncated prefix of the embedded text."""

    def __init__(self, max_size: int = 256, key_chars: int = 100):
        """Initialize the memo.

        Args:
            max_size: Maximum number of memoized embeddings
            key_chars: Number of leading characters used as the key
        """
        self.max_size = max_size
        self.key_chars = key_chars
        self._cache: OrderedDict[str, list[float]] = OrderedDict()
        self._stats = {
            'hits': 0,
            'misses': 0,
            'evictions': 0
        }

    def _generate_key(self, text: str) -> str:
        return text[:self.key_chars]

    def get(self, text: str) -> list[float] | None:
        """Get a memoized embedding for text."""
        key = self._generate_key(text)

        if key in self._cache:
            self._cache.move_to_end(key)
            self._stats['hits'] += 1
            logger.debug(f"Embedding memo hit: {text[:30]}")
            return list(self._cache[key])

        self._stats['misses'] += 1
        return None

    def put(self, text: str, embedding: list[float]) -> None:
        """Memoize an embedding."""
        if self.max_size <= 0:
            return
        key = self._generate_key(text)

        while len(self._cache) >= self.max_size and key not in self._cache:
            oldest_key = next(iter(self._cache))
            del self._cache[oldest_key]
            self._stats['evictions'] += 1

        self._cache[key] = list(embedding)
        self._cache.move_to_end(key)

    def clear(self) -> None:
        """Clear all memoized embeddings."""
        self._cache.clear()

    def get_stats(self) -> dict[str, Any]:
        """Get memo statistics."""
        total = self._stats['hits'] + self._stats['misses']
        return {
            'size': len(self._cache),
            'max_size': self.max_size,
            'hits': self._stats['hits'],
            'misses': self._stats['misses'],
            'evictions': self._stats['evictions'],
            'hit_rate': self._stats['hits'] / total if total else 0.0,
        }
