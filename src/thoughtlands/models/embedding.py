"""
Embedding models for Thoughtlands.

This module defines the persisted embedding cache document and the
normalized results produced by the model-server clients.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

STORE_VERSION = "1.0"


class EmbeddingEntry(BaseModel):
    """Cached vector for one note, valid only while ``hash`` matches."""

    hash: str
    embedding: list[float]


class EmbeddingStoreMeta(BaseModel):
    """Build metadata for the embedding cache."""

    model_config = ConfigDict(populate_by_name=True)

    model: str
    last_full_build: str | None = Field(default=None, alias="lastFullBuild")
    version: str = STORE_VERSION


class EmbeddingStore(BaseModel):
    """The whole cache document as it is written to disk."""

    meta: EmbeddingStoreMeta
    data: dict[str, EmbeddingEntry] = Field(default_factory=dict)

    @classmethod
    def empty(cls, model: str) -> "EmbeddingStore":
        return cls(meta=EmbeddingStoreMeta(model=model))

    def to_document(self) -> dict:
        """Serialize with the on-disk key names."""
        return self.model_dump(by_alias=True)


class EmbeddingEndpoint(str, Enum):
    """Which embedding endpoint shape answered."""
    EMBED = "api/embed"
    EMBEDDINGS = "api/embeddings"


class ChatEndpoint(str, Enum):
    """Which text-generation endpoint shape answered."""
    CHAT = "api/chat"
    GENERATE = "api/generate"
    COMPLETIONS = "chat/completions"


class EmbeddingResult(BaseModel):
    """Canonical embedding response, whatever endpoint produced it."""

    embedding: list[float]
    endpoint: EmbeddingEndpoint
    model: str | None = None

    @property
    def dimension(self) -> int:
        return len(self.embedding)


class ChatResult(BaseModel):
    """Canonical chat response, whatever endpoint produced it."""

    content: str
    endpoint: ChatEndpoint
    model: str | None = None


class BackendStatus(BaseModel):
    """Availability of the model server and one model on it."""

    model_config = ConfigDict(protected_namespaces=())

    available: bool
    model_installed: bool
    model_name: str
    error: str | None = None


class EmbeddingProgress(BaseModel):
    """Progress of an embedding batch, reported after each note."""

    total: int
    completed: int
    percentage: int
    current_note_id: str | None = None
