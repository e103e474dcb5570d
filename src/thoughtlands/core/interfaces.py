"""
Service interfaces for dependency injection and modularity.

This module defines abstract base classes for the collaborators and
backend clients the resolution pipeline depends on, enabling loose
coupling and easier testing.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence

from thoughtlands.models.embedding import BackendStatus


class INoteSource(ABC):
    """Read-only view of the host's note storage and tag index."""

    @abstractmethod
    def list_notes(self) -> list[str]:
        """List the ids of every note visible under the include rules."""
        pass

    @abstractmethod
    def read_note(self, note_id: str) -> str:
        """Read the full text content of a note."""
        pass

    @abstractmethod
    def get_tags(self, note_id: str) -> list[str]:
        """Get the tags of a note, without the leading '#'."""
        pass

    def all_tags(self) -> list[str]:
        """Every distinct tag in the vault, original casing preserved."""
        seen: dict[str, None] = {}
        for note_id in self.list_notes():
            for tag in self.get_tags(note_id):
                seen.setdefault(tag, None)
        return list(seen)

    def notes_with_tags(self, tags: Iterable[str]) -> list[str]:
        """Notes carrying any of the given tags (case-insensitive)."""
        wanted = {t.lstrip("#").lower() for t in tags}
        return [
            note_id for note_id in self.list_notes()
            if wanted.intersection(t.lower() for t in self.get_tags(note_id))
        ]


class IEmbeddingClient(ABC):
    """Abstract interface for text embedding generation."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Name of the embedding model."""
        pass

    @abstractmethod
    async def embed(self, text: str, use_memo: bool = True) -> list[float]:
        """Embed a single text.

        Args:
            text: Non-blank text to embed
            use_memo: Answer repeats of the same short text from memory
        """
        pass

    @abstractmethod
    async def recover(self) -> None:
        """Wait out any pending backend recovery delay."""
        pass

    @abstractmethod
    async def check_status(self) -> BackendStatus:
        """Check that the backend answers and the model is installed."""
        pass


class IChatClient(ABC):
    """Abstract interface for chat-style text generation."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Name of the chat model."""
        pass

    @property
    def backend_name(self) -> str:
        """The ``ai_mode`` this client serves."""
        return "local"

    @abstractmethod
    async def complete(self, prompt: str, system: str | None = None) -> str:
        """Send one prompt and return the response text."""
        pass

    @abstractmethod
    async def check_status(self) -> BackendStatus:
        """Check that the backend answers and the model is installed."""
        pass


class IEmbeddingGenerator(ABC):
    """Fills embedding cache gaps for notes."""

    @abstractmethod
    async def generate_for_note(self, note_id: str) -> list[float] | None:
        """Get or generate the embedding of one note."""
        pass

    @abstractmethod
    async def generate_batch(self, note_ids: Sequence[str]) -> dict[str, list[float]]:
        """Generate embeddings for every note lacking a valid entry."""
        pass
