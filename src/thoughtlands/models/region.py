"""
Region models for Thoughtlands.

A region is the named, colored collection of notes produced by a
resolution run, together with a record of how it was derived.
"""

from typing import Literal

from pydantic import BaseModel, Field

RegionMode = Literal["search", "search+tags", "concept"]


class ProcessingInfo(BaseModel):
    """Audit trail of a concept resolution."""

    initial_tags: list[str] = Field(default_factory=list)
    refined_tags: list[str] = Field(default_factory=list)
    initial_tags_count: int = 0
    refined_tags_count: int = 0
    final_tags_count: int = 0
    notes_before_embedding: int = 0
    embedding_removed_count: int = 0
    embedding_added_count: int = 0
    embedding_filtered: bool = False
    similarity_threshold: float | None = None


class RegionSource(BaseModel):
    """How a region was derived."""

    type: Literal["search", "tags", "concept"]
    query: str | None = None
    concepts: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    ai_mode: str | None = None
    embedding_model: str | None = None
    similarity_threshold: float | None = None
    max_embedding_results: int | None = None


class Region(BaseModel):
    """A named collection of notes."""

    id: str
    name: str
    color: str
    mode: RegionMode
    source: RegionSource
    notes: list[str] = Field(default_factory=list)
    created_at: str
    updated_at: str
    processing_info: ProcessingInfo | None = None
