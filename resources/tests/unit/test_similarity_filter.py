"""
Unit tests for vector math and the similarity filter/expander.
"""

import pytest

from resources.tests.helpers.fakes import FakeEmbeddingClient, FakeNoteSource
from thoughtlands.services.embedding.generator import BatchEmbeddingGenerator
from thoughtlands.services.embedding.hashing import content_fingerprint
from thoughtlands.services.embedding.similarity import cosine_similarity
from thoughtlands.services.similarity.filter import SimilarityFilterExpander
from thoughtlands.utils.errors import BackendUnavailable, ValidationError

ETHICS = [1.0, 0.0, 0.0]


def seed(cache, source, vectors):
    cache.put_many({
        note_id: (content_fingerprint(source.read_note(note_id)), vector)
        for note_id, vector in vectors.items()
    })


@pytest.fixture
def make_filter(embedding_cache, recording_sleep):
    def _make(source, client, **kwargs):
        generator = BatchEmbeddingGenerator(source, embedding_cache, client, sleep=recording_sleep)
        return SimilarityFilterExpander(source, embedding_cache, generator, **kwargs)
    return _make


class TestCosineSimilarity:

    def test_identical_and_opposite(self):
        assert cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_symmetric_and_scale_invariant(self):
        a, b = [0.3, 0.7, 0.1], [0.9, 0.2, 0.4]

        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity([x * 5 for x in a], b))

    def test_zero_vector_gives_zero(self):
        assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0

    def test_dimension_mismatch_raises(self):
        with pytest.raises(ValidationError):
            cosine_similarity([1, 0], [1, 0, 0])


class TestFilter:

    @pytest.mark.asyncio
    async def test_threshold_splits_kept_and_removed(self, make_filter, note_source, embedding_client, embedding_cache):
        seed(embedding_cache, note_source, {
            "Philosophy/Ethics.md": [1.0, 0.0, 0.0],
            "Philosophy/Mind.md": [0.0, 1.0, 0.0],
        })
        similarity = make_filter(note_source, embedding_client, threshold=0.65)

        outcome = await similarity.filter(ETHICS, ["Philosophy/Mind.md", "Philosophy/Ethics.md"])

        assert outcome.kept == ["Philosophy/Ethics.md"]
        assert [s.note_id for s in outcome.removed] == ["Philosophy/Mind.md"]
        assert outcome.removed_count == 1
        assert embedding_client.calls == []

    @pytest.mark.asyncio
    async def test_missing_embeddings_are_generated(self, make_filter, note_source, embedding_client, embedding_cache):
        similarity = make_filter(note_source, embedding_client)

        outcome = await similarity.filter(ETHICS, ["Philosophy/Trolley.md"])

        assert outcome.kept == ["Philosophy/Trolley.md"]
        assert len(embedding_client.calls) == 1
        assert embedding_cache.cached_note_ids() == ["Philosophy/Trolley.md"]

    @pytest.mark.asyncio
    async def test_notes_without_embedding_are_dropped(self, make_filter):
        source = FakeNoteSource({
            "Ethics.md": ("Virtue ethics asks about character.", []),
            "Stub.md": ("tiny", []),
            "Broken.md": ("A note about ethics that will fail.", []),
        })
        client = FakeEmbeddingClient(
            {"ethic": ETHICS},
            fail_on=lambda text: BackendUnavailable("refused") if "fail" in text else None,
        )
        similarity = make_filter(source, client)

        outcome = await similarity.filter(ETHICS, ["Ethics.md", "Stub.md", "Broken.md"])

        assert outcome.kept == ["Ethics.md"]
        assert outcome.dropped == ["Stub.md", "Broken.md"]
        assert outcome.removed_count == 2


class TestExpand:

    def test_find_similar_ranks_and_limits(self, make_filter, note_source, embedding_client, embedding_cache):
        seed(embedding_cache, note_source, {
            "Philosophy/Ethics.md": [1.0, 0.0, 0.0],
            "Philosophy/Trolley.md": [0.8, 0.2, 0.0],
            "Archive/Old Ethics.md": [0.9, 0.1, 0.0],
            "Kitchen/Bread.md": [0.0, 0.0, 1.0],
        })
        similarity = make_filter(note_source, embedding_client, threshold=0.5, max_results=2)

        matches = similarity.find_similar(ETHICS, note_source.list_notes())

        assert [m.note_id for m in matches] == ["Philosophy/Ethics.md", "Archive/Old Ethics.md"]
        assert matches[0].similarity >= matches[1].similarity

    def test_expand_excludes_existing_and_uncached(self, make_filter, note_source, embedding_client, embedding_cache):
        seed(embedding_cache, note_source, {
            "Philosophy/Ethics.md": [1.0, 0.0, 0.0],
            "Archive/Old Ethics.md": [0.9, 0.1, 0.0],
        })
        similarity = make_filter(note_source, embedding_client, threshold=0.5)

        added = similarity.expand(ETHICS, ["Philosophy/Ethics.md"])

        # Trolley would match but has no cached embedding
        assert added == ["Archive/Old Ethics.md"]
        assert embedding_client.calls == []

    def test_stale_entries_are_ignored(self, make_filter, note_source, embedding_client, embedding_cache):
        embedding_cache.put("Philosophy/Ethics.md", "outdated", [1.0, 0.0, 0.0])
        similarity = make_filter(note_source, embedding_client, threshold=0.5)

        assert similarity.find_similar(ETHICS, ["Philosophy/Ethics.md"]) == []

    def test_ready_only_after_full_build(self, make_filter, note_source, embedding_client, embedding_cache):
        similarity = make_filter(note_source, embedding_client)
        assert not similarity.is_ready()

        embedding_cache.mark_build_complete()

        assert similarity.is_ready()
