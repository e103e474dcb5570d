"""
Concept query models.

A concept query is the request-scoped input of a resolution run; the tag
suggestion result is what each AI stage hands back to the pipeline.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConceptScope(str, Enum):
    """How wide a net the tag suggestion stage casts."""
    NARROW = "narrow"
    REGULAR = "regular"
    BROAD = "broad"

    @property
    def max_tags(self) -> int:
        return SCOPE_MAX_TAGS[self]

    @property
    def description(self) -> str:
        """Wording used in the suggestion prompt."""
        return SCOPE_DESCRIPTIONS[self]


SCOPE_MAX_TAGS = {
    ConceptScope.NARROW: 10,
    ConceptScope.REGULAR: 30,
    ConceptScope.BROAD: 50,
}

SCOPE_DESCRIPTIONS = {
    ConceptScope.NARROW: "10-15 highly relevant tags",
    ConceptScope.REGULAR: "20-30 relevant tags",
    ConceptScope.BROAD: "40-50 related tags",
}


class ConceptQuery(BaseModel):
    """Free-text concepts plus the scope that bounds the tag budget."""

    model_config = ConfigDict(frozen=True)

    concepts: tuple[str, ...]
    scope: ConceptScope = ConceptScope.REGULAR

    @field_validator("concepts", mode="before")
    @classmethod
    def _clean_concepts(cls, v):
        if isinstance(v, str):
            v = [v]
        cleaned = tuple(c.strip() for c in v if c and c.strip())
        if not cleaned:
            raise ValueError("at least one non-empty concept is required")
        return cleaned

    @property
    def max_tags(self) -> int:
        return self.scope.max_tags

    @property
    def text(self) -> str:
        """Concepts as shown to the chat model."""
        if len(self.concepts) == 1:
            return self.concepts[0]
        return ", ".join(self.concepts)

    @property
    def embedding_text(self) -> str:
        """Concepts as sent to the embedding model."""
        return " ".join(self.concepts)


class TagSuggestionResult(BaseModel):
    """Outcome of one AI tag stage."""

    success: bool
    tags: list[str] = Field(default_factory=list)
    error: str | None = None
    raw_count: int = 0
    rejected: list[str] = Field(default_factory=list)
