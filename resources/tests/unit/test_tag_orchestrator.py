"""
Unit tests for prompt rendering, sample gathering and the suggest/refine stages.
"""

import pytest

from resources.tests.helpers.fakes import FakeChatClient, FakeNoteSource
from thoughtlands.models.concept import ConceptQuery, ConceptScope
from thoughtlands.services.tags.affinity import TagAffinityCache, affinity_key
from thoughtlands.services.tags.orchestrator import (
    TagSuggestionOrchestrator,
    fallback_concept_name,
    fallback_region_name,
)
from thoughtlands.services.tags.prompts import TAG_SYSTEM_MESSAGE, PromptTemplateManager
from thoughtlands.services.tags.samples import SampleGatherer, first_substantive_line
from thoughtlands.services.tags.vocabulary import TagVocabulary
from thoughtlands.utils.errors import (
    BackendUnavailable,
    InvalidResponse,
    NoTagsRefined,
    NoTagsSuggested,
    ServiceError,
)

VOCABULARY = TagVocabulary(["ethics", "philosophy", "Moral-Dilemmas", "mind", "cooking"])


class TestPrompts:

    def test_suggest_prompt_lists_whole_vocabulary(self):
        prompts = PromptTemplateManager()
        query = ConceptQuery(concepts=["ethics", "AI"], scope=ConceptScope.NARROW)

        prompt = prompts.suggest_prompt(query, VOCABULARY.tags, {"ethics": ["Virtue ethics asks..."], "mind": []})

        assert "Given this concept: ethics, AI" in prompt
        assert "#ethics, #philosophy, #Moral-Dilemmas, #mind, #cooking" in prompt
        assert "(5 tags total)" in prompt
        assert "10-15 highly relevant tags" in prompt
        assert "Tag #ethics:" in prompt
        assert "Tag #mind" not in prompt
        assert prompt.endswith('Example format: ["tag1", "tag2", "tag3"]')

    def test_refine_prompt_marks_tags_without_samples(self):
        prompts = PromptTemplateManager()
        query = ConceptQuery(concepts=["ethics"])

        prompt = prompts.refine_prompt(query, ["ethics", "mind"], {"ethics": ["Virtue ethics asks..."]})

        assert "Here are 2 candidate tags" in prompt
        assert "  - Virtue ethics asks..." in prompt
        assert "Tag #mind (no samples available)" in prompt
        assert "select up to 30 relevant tags" in prompt

    def test_region_name_prompt(self):
        prompt = PromptTemplateManager().region_name_prompt(["ethics", "AI"], ["ethics", "mind"])

        assert "And these related tags: ethics, mind" in prompt
        assert "notes about these concepts" in prompt

    def test_missing_template_raises_service_error(self):
        with pytest.raises(ServiceError):
            PromptTemplateManager().render("nope")

    def test_template_overrides(self):
        prompts = PromptTemplateManager({"region_name": "Name {{ concept_text }}"})

        assert prompts.region_name_prompt(["ethics"]) == "Name ethics"
        assert "suggest_tags" in prompts.list_templates()


class TestSamples:

    def test_first_substantive_line(self):
        content = "# Short\n\nThis line is long enough to be an excerpt.\nAnother long line that is ignored."

        assert first_substantive_line(content) == "This line is long enough to be an excerpt."
        assert first_substantive_line("tiny\nlines") is None
        assert len(first_substantive_line("x" * 500)) == 300

    def test_gathers_up_to_max_per_tag(self, note_source):
        samples = SampleGatherer(note_source).gather_samples(["ethics", "unknown"], max_per_tag=2)

        assert len(samples["ethics"]) == 2
        assert samples["unknown"] == []

    def test_unreadable_notes_are_skipped(self):
        class Flaky(FakeNoteSource):
            def read_note(self, note_id):
                if note_id == "a.md":
                    raise ServiceError("gone")
                return super().read_note(note_id)

        source = Flaky({
            "a.md": ("A long enough line for an excerpt here.", ["ethics"]),
            "b.md": ("Another long enough line for an excerpt.", ["ethics"]),
        })

        samples = SampleGatherer(source).gather_samples(["ethics"])

        assert samples == {"ethics": ["Another long enough line for an excerpt."]}


class TestOrchestrator:

    @pytest.mark.asyncio
    async def test_suggest_validates_against_vocabulary(self):
        chat = FakeChatClient(['["Ethics", "invented-tag", "mind"]'])
        orchestrator = TagSuggestionOrchestrator(chat)

        result = await orchestrator.suggest(ConceptQuery(concepts=["ethics"]), VOCABULARY)

        assert result.tags == ["ethics", "mind"]
        assert result.raw_count == 3
        assert result.rejected == ["invented-tag"]
        assert chat.prompts[0][1] == TAG_SYSTEM_MESSAGE

    @pytest.mark.asyncio
    async def test_suggest_with_no_valid_tags_halts(self):
        orchestrator = TagSuggestionOrchestrator(FakeChatClient(['["quantum", "gravity"]']))

        with pytest.raises(NoTagsSuggested) as exc_info:
            await orchestrator.suggest(ConceptQuery(concepts=["physics"]), VOCABULARY)

        assert exc_info.value.context["rejected"] == ["quantum", "gravity"]


    @pytest.mark.asyncio
    @pytest.mark.parametrize("scope, budget", [
        (ConceptScope.NARROW, 10),
        (ConceptScope.REGULAR, 30),
        (ConceptScope.BROAD, 50),
    ])
    async def test_suggest_caps_at_scope_budget_after_validation(self, scope, budget):
        vocabulary = TagVocabulary([f"tag{i}" for i in range(60)])
        answer = '["bogus"' + "".join(f', "tag{i}"' for i in range(60)) + "]"
        orchestrator = TagSuggestionOrchestrator(FakeChatClient([answer]))

        result = await orchestrator.suggest(ConceptQuery(concepts=["x"], scope=scope), vocabulary)

        assert result.tags == [f"tag{i}" for i in range(budget)]
        assert result.raw_count == 61
        assert result.rejected == ["bogus"]
    @pytest.mark.asyncio
    async def test_refine_caps_at_scope_budget_after_validation(self):
        vocabulary = TagVocabulary([f"tag{i}" for i in range(20)])
        answer = '["bogus"' + "".join(f', "tag{i}"' for i in range(20)) + "]"
        orchestrator = TagSuggestionOrchestrator(FakeChatClient([answer]))
        query = ConceptQuery(concepts=["x"], scope=ConceptScope.NARROW)

        result = await orchestrator.refine(query, vocabulary.tags, {}, vocabulary)

        assert result.tags == [f"tag{i}" for i in range(10)]
        assert result.raw_count == 21

    @pytest.mark.asyncio
    async def test_refine_with_no_valid_tags_halts(self):
        orchestrator = TagSuggestionOrchestrator(FakeChatClient(["nothing useful here at all today, sorry"]))

        with pytest.raises(NoTagsRefined):
            await orchestrator.refine(ConceptQuery(concepts=["ethics"]), ["ethics"], {}, VOCABULARY)

    @pytest.mark.asyncio
    async def test_missing_chat_model_raises_before_prompting(self):
        chat = FakeChatClient(installed=False)
        orchestrator = TagSuggestionOrchestrator(chat)

        with pytest.raises(BackendUnavailable):
            await orchestrator.suggest(ConceptQuery(concepts=["ethics"]), VOCABULARY)

        assert chat.prompts == []

    @pytest.mark.asyncio
    async def test_region_name_from_model(self):
        orchestrator = TagSuggestionOrchestrator(FakeChatClient(['"Moral Landscapes"\nBecause...']))

        assert await orchestrator.suggest_region_name(["ethics"], ["ethics"]) == "Moral Landscapes"

    @pytest.mark.asyncio
    async def test_region_name_falls_back_on_backend_error(self):
        orchestrator = TagSuggestionOrchestrator(FakeChatClient([InvalidResponse("empty")]))

        assert await orchestrator.suggest_region_name(["ethics", "artificial intelligence"]) == (
            "Ethics & Artificial intelligence"
        )

    def test_fallback_names(self):
        assert fallback_region_name(["a", "b", "c", "d"]) == "A & B & C"
        assert fallback_region_name([]) == "Untitled Region"
        assert fallback_concept_name("notes about moral philosophy") == "Notes About Moral"


class TestTagAffinity:

    def test_key_ignores_order_and_case(self):
        assert affinity_key(["Ethics", " AI "], "narrow") == affinity_key(["ai", "ethics"], "narrow")
        assert affinity_key(["ethics"], "narrow") != affinity_key(["ethics"], "broad")

    def test_lru_eviction(self):
        cache = TagAffinityCache(max_size=2)
        cache.put("a", ["ethics"])
        cache.put("b", ["mind"])
        cache.get("a")
        cache.put("c", ["cooking"])

        assert cache.get("b") is None
        assert cache.get("a") == ["ethics"]
        assert cache.get_stats()["evictions"] == 1

    def test_empty_answers_and_zero_size_are_not_stored(self):
        cache = TagAffinityCache(max_size=0)
        cache.put("a", ["ethics"])
        TagAffinityCache().put("b", [])

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_repeat_concepts_reuse_earlier_suggestion(self):
        chat = FakeChatClient(['["ethics", "mind", "invented"]'])
        orchestrator = TagSuggestionOrchestrator(chat, affinity_cache=TagAffinityCache())

        first = await orchestrator.suggest(ConceptQuery(concepts=["ethics", "AI"]), VOCABULARY)
        second = await orchestrator.suggest(ConceptQuery(concepts=["AI", "ethics"]), VOCABULARY)

        assert first.tags == second.tags == ["ethics", "mind"]
        assert len(chat.prompts) == 1

    @pytest.mark.asyncio
    async def test_cached_tags_are_validated_against_current_vocabulary(self):
        cache = TagAffinityCache()
        cache.put(affinity_key(["ethics"], "regular"), ["ethics", "mind"])
        orchestrator = TagSuggestionOrchestrator(FakeChatClient(), affinity_cache=cache)

        result = await orchestrator.suggest(ConceptQuery(concepts=["ethics"]), TagVocabulary(["mind"]))

        assert result.tags == ["mind"]
        assert result.rejected == ["ethics"]
