"""
Two-stage AI tag selection.

Stage one sends the concepts together with the full tag vocabulary and
asks for a broad suggestion. Stage two shows the model excerpts from the
notes behind each validated tag and asks it to keep at most the scope's
tag budget. Both answers are validated against the vocabulary; an empty
result halts the resolution.
"""

from collections.abc import Mapping, Sequence

from thoughtlands.core.interfaces import IChatClient
from thoughtlands.models.concept import ConceptQuery, TagSuggestionResult
from thoughtlands.services.tags.affinity import TagAffinityCache, affinity_key
from thoughtlands.services.tags.parsing import parse_tag_response
from thoughtlands.services.tags.prompts import TAG_SYSTEM_MESSAGE, PromptTemplateManager
from thoughtlands.services.tags.vocabulary import TagVocabulary, validate
from thoughtlands.utils.errors import (
    BackendError,
    BackendUnavailable,
    NoTagsRefined,
    NoTagsSuggested,
)
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

MAX_NAME_CHARS = 80


def fallback_region_name(concepts: Sequence[str]) -> str:
    """Name built from the first three concepts: "Ethics & Mind"."""
    parts = [c.strip() for c in concepts if c and c.strip()][:3]
    return " & ".join(p[0].upper() + p[1:] for p in parts) or "Untitled Region"


def fallback_concept_name(concept_text: str) -> str:
    """Name built from the first three words of a concept description."""
    words = concept_text.split()[:3]
    return " ".join(w[0].upper() + w[1:] for w in words) or "Untitled Region"


class TagSuggestionOrchestrator:
    """Runs the suggest and refine dialogue with the chat model."""

    def __init__(
        self,
        chat_client: IChatClient,
        prompts: PromptTemplateManager | None = None,
        check_model: bool = True,
        affinity_cache: TagAffinityCache | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            chat_client: Chat model backend
            prompts: Prompt renderer (built-in templates by default)
            check_model: Verify the chat model is installed before each stage
            affinity_cache: Reuses earlier stage-one answers for the same concepts
        """
        self.chat_client = chat_client
        self.prompts = prompts or PromptTemplateManager()
        self.check_model = check_model
        self.affinity_cache = affinity_cache

    async def ensure_model_available(self) -> None:
        """Raise BackendUnavailable unless the chat model can answer."""
        if not self.check_model:
            return
        status = await self.chat_client.check_status()
        if not status.available or not status.model_installed:
            raise BackendUnavailable(
                status.error or f"Chat model {status.model_name} is not available",
                suggestions=[f"Check that {status.model_name} is available (ai_mode: {self.chat_client.backend_name})"],
                context={"model": status.model_name},
            )

    async def _ask(self, prompt: str) -> list[str]:
        await self.ensure_model_available()
        content = await self.chat_client.complete(prompt, system=TAG_SYSTEM_MESSAGE)
        return parse_tag_response(content)

    def _validated(
        self,
        raw_tags: list[str],
        vocabulary: TagVocabulary,
        max_tags: int,
        stage: str,
    ) -> TagSuggestionResult:
        accepted, rejected = validate(raw_tags, vocabulary)

        logger.info(
            f"{stage}: model returned {len(raw_tags)} tags, "
            f"{len(accepted)} exist in the vault"
        )
        if rejected:
            logger.warning(f"{stage}: filtered out {len(rejected)} invalid tags: {rejected}")

        # Validation runs first so rejected tags never use up the budget.
        if len(accepted) > max_tags:
            logger.info(f"{stage}: capping {len(accepted)} tags at {max_tags}")
            accepted = accepted[:max_tags]

        return TagSuggestionResult(
            success=bool(accepted),
            tags=accepted,
            raw_count=len(raw_tags),
            rejected=rejected,
            error=None if accepted else "No valid tags from the vault in the model's answer",
        )

    async def suggest(
        self,
        query: ConceptQuery,
        vocabulary: TagVocabulary,
        samples: Mapping[str, Sequence[str]] | None = None,
    ) -> TagSuggestionResult:
        """Stage one: broad suggestion over the whole vocabulary.

        Raises:
            NoTagsSuggested: No suggested tag exists in the vault
            BackendError: The chat model could not be reached
        """
        key = affinity_key(query.concepts, query.scope.value)
        raw_tags = self.affinity_cache.get(key) if self.affinity_cache is not None else None
        if raw_tags is None:
            # The vocabulary is never truncated; a partial list invites invented tags.
            prompt = self.prompts.suggest_prompt(query, vocabulary.tags, samples)
            logger.debug(f"Suggest prompt: {len(prompt)} chars, {len(vocabulary)} vocabulary tags")
            raw_tags = await self._ask(prompt)
            if self.affinity_cache is not None:
                self.affinity_cache.put(key, raw_tags)
        else:
            logger.info(f"Suggest: reusing {len(raw_tags)} tags suggested earlier for {query.text}")

        result = self._validated(raw_tags, vocabulary, query.max_tags, "Suggest")
        if not result.success:
            raise NoTagsSuggested(
                "AI did not return any valid tags from your vault. Please try different concepts.",
                suggestions=["Try different or broader concepts"],
                context={"raw_count": result.raw_count, "rejected": result.rejected},
            )
        return result

    async def refine(
        self,
        query: ConceptQuery,
        tags: Sequence[str],
        samples: Mapping[str, Sequence[str]],
        vocabulary: TagVocabulary,
    ) -> TagSuggestionResult:
        """Stage two: keep the most relevant tags, at most the scope's budget.

        Raises:
            NoTagsRefined: No refined tag exists in the vault
            BackendError: The chat model could not be reached
        """
        prompt = self.prompts.refine_prompt(query, tags, samples)
        raw_tags = await self._ask(prompt)
        result = self._validated(raw_tags, vocabulary, query.max_tags, "Refine")
        if not result.success:
            raise NoTagsRefined(
                "AI did not return any valid refined tags from your vault. Please try different concepts.",
                context={"raw_count": result.raw_count, "rejected": result.rejected},
            )
        return result

    async def _name(self, prompt: str) -> str | None:
        try:
            await self.ensure_model_available()
            name = await self.chat_client.complete(prompt)
        except BackendError as e:
            logger.warning(f"Failed to generate region name: {e}")
            return None

        name = name.strip().splitlines()[0].strip() if name.strip() else ""
        name = name.strip("\"'").strip()
        if not name or len(name) > MAX_NAME_CHARS:
            return None
        return name

    async def suggest_region_name(self, concepts: Sequence[str], tags: Sequence[str] = ()) -> str:
        """A 2-4 word region name, falling back to the concepts themselves."""
        name = await self._name(self.prompts.region_name_prompt(concepts, tags))
        if name:
            logger.info(f"AI suggested name: {name}")
            return name
        return fallback_region_name(concepts)

    async def suggest_concept_name(self, concept_text: str) -> str:
        """Region name for a free-text concept description."""
        name = await self._name(self.prompts.region_name_prompt([concept_text]))
        if name:
            return name
        return fallback_concept_name(concept_text)
