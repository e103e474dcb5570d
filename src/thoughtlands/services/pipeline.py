"""
Concept resolution pipeline.

Drives a concept query through tag suggestion, validation, sampling,
refinement, tag and path rules, note lookup, the optional embedding
filter and expansion, and finally region assembly. Any stage-terminal
failure raises a ResolutionError subclass and no region is created.
"""

from collections.abc import Sequence
from itertools import cycle

from pydantic import ValidationError as PydanticValidationError

from thoughtlands.core.events import EventTypes, ProgressNotifier
from thoughtlands.core.interfaces import IEmbeddingClient, INoteSource
from thoughtlands.models.concept import ConceptQuery, ConceptScope
from thoughtlands.models.region import ProcessingInfo, Region, RegionSource
from thoughtlands.services.regions.repository import RegionRepository
from thoughtlands.services.regions.rules import NoteFilterRules
from thoughtlands.services.similarity.filter import SimilarityFilterExpander
from thoughtlands.services.tags.orchestrator import TagSuggestionOrchestrator
from thoughtlands.services.tags.samples import SampleGatherer
from thoughtlands.services.tags.vocabulary import TagVocabulary
from thoughtlands.utils.config import DEFAULT_COLORS
from thoughtlands.utils.errors import (
    InputError,
    NoNotesFound,
    NoTagsAfterFiltering,
    ServiceError,
    ThoughtlandsError,
)
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

SEMANTIC_MAX_RESULTS = 100
FALLBACK_COLOR = "#888888"


def build_query(concepts: Sequence[str] | str, scope: ConceptScope | str = ConceptScope.REGULAR) -> ConceptQuery:
    """Build a ConceptQuery, reporting bad input as InputError."""
    try:
        return ConceptQuery(concepts=concepts, scope=scope)
    except PydanticValidationError as e:
        messages = "; ".join(err["msg"] for err in e.errors())
        raise InputError(f"Invalid concept query: {messages}") from e


class ConceptResolutionPipeline:
    """Resolves concept queries into regions."""

    def __init__(
        self,
        note_source: INoteSource,
        orchestrator: TagSuggestionOrchestrator,
        similarity: SimilarityFilterExpander,
        embedding_client: IEmbeddingClient,
        repository: RegionRepository,
        rules: NoteFilterRules | None = None,
        notifier: ProgressNotifier | None = None,
        samples_per_tag: int = 3,
        embeddings_enabled: bool = True,
        colors: Sequence[str] | None = None,
        ai_mode: str = "local",
    ):
        self.note_source = note_source
        self.orchestrator = orchestrator
        self.sample_gatherer = SampleGatherer(note_source)
        self.similarity = similarity
        self.embedding_client = embedding_client
        self.repository = repository
        self.rules = rules or NoteFilterRules()
        self.notifier = notifier or ProgressNotifier()
        self.samples_per_tag = samples_per_tag
        self.embeddings_enabled = embeddings_enabled
        self.ai_mode = ai_mode
        palette = DEFAULT_COLORS if colors is None else list(colors)
        self._colors = cycle(palette or [FALLBACK_COLOR])

    def _step(self, step: str, details: str = "") -> None:
        self.notifier.step(step, details, source="pipeline")

    def _next_color(self) -> str:
        return next(self._colors)

    async def resolve(
        self,
        query: ConceptQuery,
        name: str | None = None,
        color: str | None = None,
    ) -> Region:
        """Resolve a concept query into a new region.

        Raises:
            NoTagsSuggested, NoTagsRefined, NoTagsAfterFiltering, NoNotesFound:
                A stage produced nothing to continue with
            BackendError: The chat model could not be used
        """
        try:
            region = await self._resolve(query, name, color)
        except ThoughtlandsError as e:
            self.notifier.publish(
                EventTypes.RESOLUTION_FAILED,
                {"error": str(e), "error_code": e.error_code},
                source="pipeline",
            )
            raise
        self.notifier.publish(
            EventTypes.RESOLUTION_FINISHED,
            {"region_id": region.id, "notes": len(region.notes)},
            source="pipeline",
        )
        return region

    async def _resolve(self, query: ConceptQuery, name: str | None, color: str | None) -> Region:
        self._step("Querying AI for related tags...", f"Analyzing concept: {query.text}")
        vocabulary = TagVocabulary(self.note_source.all_tags())
        logger.info(f"Found {len(vocabulary)} tags in vault")

        initial = await self.orchestrator.suggest(query, vocabulary)

        self._step(
            "Gathering context from notes...",
            f"Found {len(initial.tags)} initial tags, reviewing note excerpts",
        )
        samples = self.sample_gatherer.gather_samples(initial.tags, self.samples_per_tag)

        self._step("Refining tag selection...", "AI is reviewing note excerpts to select most relevant tags")
        refined = await self.orchestrator.refine(query, initial.tags, samples, vocabulary)

        final_tags = self.rules.filter_tags(refined.tags)
        if not final_tags:
            raise NoTagsAfterFiltering(
                "All suggested tags were filtered out.",
                context={"refined_tags": refined.tags},
            )

        self._step("Searching for notes...", f"Using {len(final_tags)} refined tags to find matching notes")
        tagged = self.note_source.notes_with_tags(final_tags)
        notes = self.rules.filter_notes(tagged, self.note_source)
        logger.info(f"Notes found: {len(tagged)} tagged, {len(notes)} after path and tag rules")

        info = ProcessingInfo(
            initial_tags=initial.tags,
            refined_tags=refined.tags,
            initial_tags_count=initial.raw_count,
            refined_tags_count=refined.raw_count,
            final_tags_count=len(final_tags),
            notes_before_embedding=len(notes),
            similarity_threshold=self.similarity.threshold,
        )

        if self.embeddings_enabled and self.similarity.is_ready():
            notes = await self._apply_embeddings(query, notes, info)
        elif self.embeddings_enabled:
            logger.info("Embeddings not complete, skipping embedding-based filtering")

        if not notes:
            if info.embedding_filtered and info.embedding_removed_count > 0:
                message = (
                    f"No notes found after embedding filtering ({info.embedding_removed_count} notes "
                    f"were below the similarity threshold of {self.similarity.threshold})."
                )
                suggestions = ["Lower the similarity threshold", "Use a broader scope"]
            else:
                message = "No notes found with the suggested tags."
                suggestions = ["Try different concepts"]
            raise NoNotesFound(message, suggestions=suggestions, context={"tags": final_tags})

        self._step("Generating region name...", f"Found {len(notes)} notes, creating region name")
        region_name = name or await self.orchestrator.suggest_region_name(query.concepts, final_tags)

        self._step("Creating region...", f'Saving region "{region_name}" with {len(notes)} notes')
        source = RegionSource(
            type="concept",
            concepts=list(query.concepts),
            tags=final_tags,
            ai_mode=self.ai_mode,
            embedding_model=self.embedding_client.model_name if info.embedding_filtered else None,
            similarity_threshold=self.similarity.threshold if info.embedding_filtered else None,
            max_embedding_results=self.similarity.max_results if info.embedding_filtered else None,
        )
        return self.repository.assemble(
            region_name, color or self._next_color(), "concept", source, notes, info
        )

    async def _apply_embeddings(self, query: ConceptQuery, notes: list[str], info: ProcessingInfo) -> list[str]:
        """Narrow and grow the tag-derived set; falls back to it on error."""
        try:
            self._step("Filtering by semantic similarity...", f"Analyzing {len(notes)} notes for semantic relevance")
            concept_vector = await self.embedding_client.embed(query.embedding_text)
            outcome = await self.similarity.filter(concept_vector, notes)
        except ThoughtlandsError as e:
            logger.warning(f"Embedding filtering failed, using all matching notes: {e}")
            self._step("Continuing after embedding error...", "Embedding filtering failed, using all matching notes")
            return notes

        kept = outcome.kept
        info.embedding_filtered = True
        info.embedding_removed_count = outcome.removed_count

        if kept and self.similarity.max_results > 0:
            self._step(
                "Searching for additional relevant notes...",
                f"Found {len(kept)} notes, searching for more via semantic similarity",
            )
            try:
                candidates = self.note_source.list_notes()
                extra = self.similarity.expand(concept_vector, kept, candidates)
                extra = self.rules.filter_notes(extra, self.note_source)
            except ThoughtlandsError as e:
                logger.warning(f"Error during embedding search for missed notes: {e}")
                extra = []
            present = set(kept)
            added = [n for n in extra if n not in present]
            info.embedding_added_count = len(added)
            kept = kept + added

        return kept

    async def resolve_semantic(
        self,
        concept_text: str,
        name: str | None = None,
        color: str | None = None,
        max_results: int = SEMANTIC_MAX_RESULTS,
    ) -> Region:
        """Build a region purely from embedding similarity to a description.

        Raises:
            InputError: Blank concept text
            ServiceError: The initial embedding build has not completed
            NoNotesFound: No cached note is similar enough
        """
        if not concept_text or not concept_text.strip():
            raise InputError("Concept text must not be empty")
        if not self.similarity.is_ready():
            raise ServiceError(
                "Embeddings are not built yet",
                suggestions=["Run `thoughtlands build-embeddings` first"],
            )

        concept_text = concept_text.strip()
        try:
            self._step("Generating embedding for concept...", f"Analyzing: {concept_text}")
            concept_vector = await self.embedding_client.embed(concept_text)

            self._step("Finding similar notes...", "Searching vault for semantically similar notes")
            candidates = self.rules.filter_notes(self.note_source.list_notes(), self.note_source)
            matches = self.similarity.find_similar(concept_vector, candidates, max_results=max_results)
            if not matches:
                raise NoNotesFound("No semantically similar notes found.")

            self._step("Generating region name...", "Using AI to suggest a name based on your concept")
            region_name = name or await self.orchestrator.suggest_concept_name(concept_text)

            info = ProcessingInfo(
                embedding_filtered=True,
                embedding_added_count=len(matches),
                similarity_threshold=self.similarity.threshold,
            )
            source = RegionSource(
                type="concept",
                concepts=[concept_text],
                ai_mode=self.ai_mode,
                embedding_model=self.embedding_client.model_name,
                similarity_threshold=self.similarity.threshold,
                max_embedding_results=max_results,
            )
            region = self.repository.assemble(
                region_name, color or self._next_color(), "concept", source,
                [m.note_id for m in matches], info,
            )
        except ThoughtlandsError as e:
            self.notifier.publish(
                EventTypes.RESOLUTION_FAILED,
                {"error": str(e), "error_code": e.error_code},
                source="pipeline",
            )
            raise

        self.notifier.publish(
            EventTypes.RESOLUTION_FINISHED,
            {"region_id": region.id, "notes": len(region.notes)},
            source="pipeline",
        )
        return region
