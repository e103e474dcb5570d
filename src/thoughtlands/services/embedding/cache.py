"""
Persistent, content-addressed embedding cache.

The cache maps note ids to ``{hash, embedding}`` entries and carries build
metadata. An entry is only returned while its hash equals the fingerprint
the caller computed from the note's current content; anything else reads
as absent so the caller regenerates it.

The whole store is one JSON document. Every mutation rewrites it through
a temporary file and ``os.replace`` so readers never see a partial write.
"""

import json
import os
import tempfile
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from thoughtlands.models.embedding import EmbeddingEntry, EmbeddingStore
from thoughtlands.utils.errors import PersistFailure
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)


class EmbeddingCache:
    """Content-hash addressed embedding store backed by a JSON file."""

    def __init__(self, path: Path, model_name: str):
        """Initialize the cache.

        Args:
            path: Location of the JSON cache document
            model_name: Embedding model whose vectors this cache holds
        """
        self.path = Path(path)
        self.model_name = model_name
        self._store: EmbeddingStore | None = None
        self._stats = {
            'hits': 0,
            'misses': 0,
            'stale': 0,
            'writes': 0,
            'persist_failures': 0
        }

    # -------------------------------------------------------------------------
    # Loading and persistence
    # -------------------------------------------------------------------------

    def load(self) -> EmbeddingStore:
        """Load the cache document, starting empty if it is absent or unusable."""
        store = None
        if self.path.exists():
            try:
                document = json.loads(self.path.read_text(encoding="utf-8"))
                store = EmbeddingStore.model_validate(document)
            except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
                logger.error(f"Embedding cache at {self.path} is unreadable, starting empty: {e}")

        if store is not None and store.meta.model != self.model_name:
            # Vectors from another model have a different geometry (and often
            # a different dimension); never mix them with fresh ones.
            logger.warning(
                f"Embedding cache was built with '{store.meta.model}', "
                f"configured model is '{self.model_name}'; discarding {len(store.data)} entries"
            )
            store = None

        if store is None:
            store = EmbeddingStore.empty(self.model_name)

        self._store = store
        logger.info(
            f"Loaded embedding cache: model={store.meta.model}, "
            f"last_full_build={store.meta.last_full_build}, entries={len(store.data)}"
        )
        return store

    @property
    def store(self) -> EmbeddingStore:
        if self._store is None:
            self.load()
        return self._store

    def _flush(self) -> None:
        """Write the whole document atomically."""
        document = self.store.to_document()
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            self._stats['writes'] += 1
        except OSError as e:
            self._stats['persist_failures'] += 1
            if tmp_name and os.path.exists(tmp_name):
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug(f"Could not remove temporary cache file {tmp_name}")
            logger.error(
                f"Failed to persist embedding cache to {self.path}: {e}; "
                f"in-memory cache now differs from disk"
            )
            raise PersistFailure(
                f"Failed to persist embedding cache: {e}",
                context={"path": str(self.path)},
            ) from e

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, note_id: str, fingerprint: str) -> list[float] | None:
        """Get the cached vector for a note if its content is unchanged.

        Args:
            note_id: Note identity
            fingerprint: Fingerprint of the note's current content

        Returns:
            The stored vector, or None when absent or stale
        """
        entry = self.store.data.get(note_id)
        if entry is None:
            self._stats['misses'] += 1
            return None

        if entry.hash != fingerprint:
            self._stats['stale'] += 1
            logger.debug(f"Stale embedding for {note_id}")
            return None

        if not entry.embedding:
            self._stats['misses'] += 1
            return None

        self._stats['hits'] += 1
        return entry.embedding

    def has_valid(self, note_id: str, fingerprint: str) -> bool:
        """Check whether a note has a non-stale entry."""
        entry = self.store.data.get(note_id)
        return entry is not None and entry.hash == fingerprint and bool(entry.embedding)

    def missing(self, fingerprints: Mapping[str, str]) -> list[str]:
        """Note ids from ``fingerprints`` without a valid entry, in input order."""
        return [
            note_id for note_id, fingerprint in fingerprints.items()
            if not self.has_valid(note_id, fingerprint)
        ]

    def cached_note_ids(self) -> list[str]:
        """Ids of every note with a stored entry, stale or not."""
        return list(self.store.data)

    def is_build_complete(self) -> bool:
        """True once the initial full build has finished for this model."""
        meta = self.store.meta
        return meta.last_full_build is not None and meta.model == self.model_name

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def put(self, note_id: str, fingerprint: str, vector: list[float]) -> None:
        """Store a vector and flush before returning."""
        self.put_many({note_id: (fingerprint, vector)})

    def put_many(self, entries: Mapping[str, tuple[str, list[float]]]) -> None:
        """Store several vectors with a single flush."""
        if not entries:
            return
        for note_id, (fingerprint, vector) in entries.items():
            self.store.data[note_id] = EmbeddingEntry(hash=fingerprint, embedding=list(vector))
        self._flush()

    def prune(self, existing_note_ids: Iterable[str]) -> list[str]:
        """Drop entries of notes that are no longer in the vault.

        Returns:
            The removed note ids
        """
        keep = set(existing_note_ids)
        removed = [note_id for note_id in self.store.data if note_id not in keep]
        if not removed:
            return []
        for note_id in removed:
            del self.store.data[note_id]
        self._flush()
        logger.info(f"Pruned {len(removed)} embeddings of deleted notes")
        return removed

    def mark_build_complete(self, model_name: str | None = None) -> str:
        """Record that every known note has a valid entry.

        Returns:
            The ISO timestamp written to ``lastFullBuild``
        """
        meta = self.store.meta
        meta.model = model_name or self.model_name
        meta.last_full_build = datetime.now(timezone.utc).isoformat()
        self._flush()
        logger.info(f"Embedding build marked complete for model {meta.model}")
        return meta.last_full_build

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        meta = self.store.meta
        return {
            'path': str(self.path),
            'model': meta.model,
            'last_full_build': meta.last_full_build,
            'version': meta.version,
            'entries': len(self.store.data),
            'build_complete': self.is_build_complete(),
            **self._stats,
        }
