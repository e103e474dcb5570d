"""Pytest configuration for resources/tests.

Ensures the repository root is on sys.path so tests can import
helpers via absolute package path like `resources.tests.helpers`.
"""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from resources.tests.helpers.fakes import (  # noqa: E402
    FakeChatClient,
    FakeClock,
    FakeEmbeddingClient,
    FakeNoteSource,
    RecordingSleep,
)
from thoughtlands.services.embedding.cache import EmbeddingCache  # noqa: E402


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def note_source():
    """A small vault about ethics, minds and cooking."""
    return FakeNoteSource({
        "Philosophy/Ethics.md": (
            "Virtue ethics asks what kind of person one should become.", ["ethics", "philosophy"]),
        "Philosophy/Trolley.md": (
            "The trolley problem is a thought experiment in ethics.", ["ethics", "Moral-Dilemmas"]),
        "Philosophy/Mind.md": (
            "Philosophy of mind studies consciousness and mental states.", ["philosophy", "mind"]),
        "Kitchen/Bread.md": (
            "Sourdough bread needs a lively starter and patience.", ["cooking"]),
        "Archive/Old Ethics.md": (
            "Old notes about ethics from a university seminar.", ["ethics", "archive"]),
    })


@pytest.fixture
def embedding_client():
    return FakeEmbeddingClient({
        "ethic": [1.0, 0.0, 0.0],
        "trolley": [0.9, 0.1, 0.0],
        "moral": [0.95, 0.05, 0.0],
        "mind": [0.1, 1.0, 0.0],
        "bread": [0.0, 0.0, 1.0],
    })


@pytest.fixture
def chat_client():
    return FakeChatClient()


@pytest.fixture
def embedding_cache(tmp_path):
    return EmbeddingCache(tmp_path / "embeddings.json", "fake-embed")
