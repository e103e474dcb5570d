"""
Embedding similarity filter and expansion.

``filter`` narrows a tag-derived note set to the notes semantically close
to the concept, generating missing embeddings on the way. ``expand``
searches notes outside the set for additional matches, but only among
notes that already have a cached embedding so a query never triggers a
vault-wide embedding run.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from thoughtlands.core.interfaces import IEmbeddingGenerator, INoteSource
from thoughtlands.services.embedding.cache import EmbeddingCache
from thoughtlands.services.embedding.hashing import content_fingerprint
from thoughtlands.services.embedding.similarity import cosine_similarity
from thoughtlands.utils.errors import ValidationError
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)


@dataclass
class ScoredNote:
    """A note with its similarity to the concept."""
    note_id: str
    similarity: float


@dataclass
class FilterOutcome:
    """Result of a similarity filter pass."""
    kept: list[str] = field(default_factory=list)
    removed: list[ScoredNote] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)

    @property
    def removed_count(self) -> int:
        """Notes that left the set, whether below threshold or without embedding."""
        return len(self.removed) + len(self.dropped)


class SimilarityFilterExpander:
    """Cosine-similarity thresholding over cached note embeddings."""

    def __init__(
        self,
        note_source: INoteSource,
        cache: EmbeddingCache,
        generator: IEmbeddingGenerator,
        threshold: float = 0.65,
        max_results: int = 20,
    ):
        self.note_source = note_source
        self.cache = cache
        self.generator = generator
        self.threshold = threshold
        self.max_results = max_results

    def is_ready(self) -> bool:
        """Similarity stages only run after the initial embedding build."""
        return self.cache.is_build_complete()

    def _cached_vector(self, note_id: str) -> list[float] | None:
        try:
            content = self.note_source.read_note(note_id)
        except Exception as e:
            logger.warning(f"Could not read {note_id}: {e}")
            return None
        return self.cache.get(note_id, content_fingerprint(content))

    def _score(self, concept_vector: Sequence[float], note_id: str, vector: Sequence[float]) -> float | None:
        try:
            return cosine_similarity(concept_vector, vector)
        except ValidationError as e:
            logger.warning(f"Skipping {note_id}: {e}")
            return None

    async def filter(
        self,
        concept_vector: Sequence[float],
        note_ids: Sequence[str],
        threshold: float | None = None,
    ) -> FilterOutcome:
        """Keep notes whose similarity to the concept meets the threshold.

        Notes whose embedding cannot be produced are dropped rather than
        kept unverified. Input order is preserved.
        """
        threshold = self.threshold if threshold is None else threshold
        outcome = FilterOutcome()
        note_ids = list(dict.fromkeys(note_ids))

        vectors: dict[str, list[float]] = {}
        needing: list[str] = []
        for note_id in note_ids:
            vector = self._cached_vector(note_id)
            if vector is not None:
                vectors[note_id] = vector
            else:
                needing.append(note_id)

        logger.info(
            f"{len(vectors)} notes already have embeddings, "
            f"{len(needing)} need new embeddings"
        )

        for note_id in needing:
            try:
                vector = await self.generator.generate_for_note(note_id)
            except Exception as e:
                logger.warning(f"Failed to generate embedding for {note_id}, dropping it: {e}")
                continue
            if vector:
                vectors[note_id] = vector

        for note_id in note_ids:
            vector = vectors.get(note_id)
            if vector is None:
                outcome.dropped.append(note_id)
                continue
            similarity = self._score(concept_vector, note_id, vector)
            if similarity is None:
                outcome.dropped.append(note_id)
            elif similarity >= threshold:
                outcome.kept.append(note_id)
            else:
                outcome.removed.append(ScoredNote(note_id, similarity))
                logger.debug(f"Filtering out {note_id} (similarity: {similarity:.3f}, threshold: {threshold})")

        logger.info(
            f"Embedding filter kept {len(outcome.kept)} of {len(note_ids)} notes "
            f"({len(outcome.removed)} below threshold, {len(outcome.dropped)} without embedding)"
        )
        return outcome

    def find_similar(
        self,
        concept_vector: Sequence[float],
        candidates: Iterable[str],
        exclude: Iterable[str] = (),
        threshold: float | None = None,
        max_results: int | None = None,
    ) -> list[ScoredNote]:
        """Rank cached candidates by similarity, best first."""
        threshold = self.threshold if threshold is None else threshold
        max_results = self.max_results if max_results is None else max_results
        excluded = set(exclude)

        scored: list[ScoredNote] = []
        seen: set[str] = set()
        with_embeddings = 0
        for note_id in candidates:
            if note_id in excluded or note_id in seen:
                continue
            seen.add(note_id)
            vector = self._cached_vector(note_id)
            if vector is None:
                continue
            with_embeddings += 1
            similarity = self._score(concept_vector, note_id, vector)
            if similarity is not None and similarity >= threshold:
                scored.append(ScoredNote(note_id, similarity))

        logger.debug(f"Compared {with_embeddings} of {len(seen)} candidates with cached embeddings")
        scored.sort(key=lambda s: s.similarity, reverse=True)
        return scored[:max(0, max_results)]

    def expand(
        self,
        concept_vector: Sequence[float],
        existing: Sequence[str],
        candidates: Iterable[str] | None = None,
        threshold: float | None = None,
        max_results: int | None = None,
    ) -> list[str]:
        """Notes outside ``existing`` that are close to the concept.

        Only notes with a valid cached embedding are considered.
        """
        if candidates is None:
            candidates = self.note_source.list_notes()
        matches = self.find_similar(concept_vector, candidates, existing, threshold, max_results)
        if matches:
            logger.info(f"Found {len(matches)} additional notes via embeddings")
        return [m.note_id for m in matches]
