"""
Unit tests for the service container, progress events, settings and models.
"""

from unittest.mock import Mock

import pytest

from thoughtlands.core.container import ServiceContainer
from thoughtlands.core.events import EventTypes, ProgressNotifier
from thoughtlands.core.interfaces import IChatClient, IEmbeddingClient, IEmbeddingGenerator, INoteSource
from thoughtlands.models.concept import ConceptQuery, ConceptScope
from thoughtlands.services.embedding.memo import EmbeddingMemo
from thoughtlands.services.ollama.transport import OllamaTransport
from thoughtlands.services.openai.chat import OpenAIChatClient, OpenAITransport
from thoughtlands.services.pipeline import ConceptResolutionPipeline, build_query
from thoughtlands.services.tags.orchestrator import TagSuggestionOrchestrator
from thoughtlands.utils.config import ThoughtlandsSettings
from thoughtlands.utils.errors import ConfigurationError, InputError


@pytest.fixture
def settings(tmp_path):
    return ThoughtlandsSettings(
        vault_path=str(tmp_path),
        embeddings_path=str(tmp_path / "embeddings.json"),
        max_retries=2,
    )


class TestServiceContainer:

    def test_default_services_share_one_transport(self, settings):
        container = ServiceContainer(settings)
        container.configure_default_services()

        embed = container.get(IEmbeddingClient)
        chat = container.get(IChatClient)

        assert embed.transport is chat.transport is container.get(OllamaTransport)
        assert embed.retry_policy.max_attempts == 2
        assert isinstance(container.get(ConceptResolutionPipeline), ConceptResolutionPipeline)
        assert container.get(IEmbeddingGenerator).cache is container.get(ConceptResolutionPipeline).similarity.cache

    @pytest.mark.asyncio
    async def test_openai_mode_selects_completions_client(self, settings):
        settings.ai_mode = "openai"
        settings.openai_api_key = "sk-test"
        settings.openai_chat_model = "gpt-4o"
        settings.tag_affinity_cache_size = 7

        async with ServiceContainer(settings) as container:
            container.configure_default_services()
            chat = container.get(IChatClient)
            orchestrator = container.get(TagSuggestionOrchestrator)

            assert isinstance(chat, OpenAIChatClient)
            assert chat.model_name == "gpt-4o"
            assert chat.transport is container.get(OpenAITransport)
            assert chat.transport.headers["Authorization"] == "Bearer sk-test"
            assert orchestrator.chat_client is chat
            assert orchestrator.affinity_cache.max_size == 7
            assert container.get(IEmbeddingClient).transport is container.get(OllamaTransport)

    def test_note_source_uses_vault_override(self, settings, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        container = ServiceContainer(settings)
        container.configure_default_services(other)

        assert container.get(INoteSource).vault_path == other.resolve()

    def test_unknown_service_raises(self, settings):
        with pytest.raises(ConfigurationError):
            ServiceContainer(settings).get(INoteSource)

    def test_circular_dependency_is_detected(self, settings):
        container = ServiceContainer(settings)
        container.register(INoteSource, lambda: container.get(INoteSource))

        with pytest.raises(ConfigurationError):
            container.get(INoteSource)

    def test_registered_instance_wins(self, settings):
        container = ServiceContainer(settings)
        fake = Mock(spec=INoteSource)
        container.register_instance(INoteSource, fake)

        assert container.get(INoteSource) is fake

    @pytest.mark.asyncio
    async def test_close_without_transport_is_noop(self, settings):
        async with ServiceContainer(settings):
            pass


class TestProgressNotifier:

    def test_step_reaches_subscribers(self):
        notifier = ProgressNotifier()
        received = []
        notifier.subscribe(received.append, {EventTypes.RESOLUTION_STEP})

        notifier.step("Searching for notes...", "Using 3 tags")
        notifier.publish(EventTypes.EMBEDDING_PROGRESS, {"completed": 1})

        assert [e.data for e in received] == [{"step": "Searching for notes...", "details": "Using 3 tags"}]
        assert len(notifier.history()) == 2

    def test_failing_subscriber_does_not_interrupt(self):
        notifier = ProgressNotifier()
        good = Mock()
        notifier.subscribe(Mock(side_effect=RuntimeError("boom")))
        notifier.subscribe(good)

        notifier.step("Creating region...")

        good.assert_called_once()

    def test_unsubscribe(self):
        notifier = ProgressNotifier()
        handler = Mock()
        subscription = notifier.subscribe(handler)

        assert notifier.unsubscribe(subscription)
        notifier.step("Creating region...")

        handler.assert_not_called()


class TestSettings:

    def test_defaults(self):
        settings = ThoughtlandsSettings()

        assert settings.embedding_similarity_threshold == 0.65
        assert settings.max_embedding_results == 20
        assert settings.get_retry_config()["recovery_delay"] == 2.0

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("THOUGHTLANDS_OLLAMA_CHAT_MODEL", "mistral")

        assert ThoughtlandsSettings().ollama_chat_model == "mistral"

    def test_validation_errors(self, tmp_path):
        settings = ThoughtlandsSettings(
            vault_path=str(tmp_path / "missing"),
            embedding_similarity_threshold=1.5,
            max_embedding_results=0,
        )

        result = settings.validate_settings()

        assert not result.valid
        assert len(result.errors) == 2
        assert result.warnings == ["max_embedding_results is 0; the expand step is disabled"]

    def test_openai_mode_requires_key(self):
        result = ThoughtlandsSettings(ai_mode="openai").validate_settings()

        assert not result.valid
        assert result.errors == ["ai_mode 'openai' requires openai_api_key"]

    def test_unsupported_ai_mode(self):
        result = ThoughtlandsSettings(ai_mode="anthropic").validate_settings()

        assert not result.valid
        assert result.errors == ["Unsupported ai_mode 'anthropic' (supported: local, openai)"]


class TestConceptQuery:

    def test_text_forms(self):
        query = ConceptQuery(concepts=[" ethics ", "", "AI"])

        assert query.concepts == ("ethics", "AI")
        assert query.text == "ethics, AI"
        assert query.embedding_text == "ethics AI"
        assert query.max_tags == 30

    def test_scope_budgets(self):
        assert [s.max_tags for s in ConceptScope] == [10, 30, 50]

    def test_build_query_rejects_blank_concepts(self):
        with pytest.raises(InputError):
            build_query(["  ", ""])

        assert build_query("ethics", "broad").max_tags == 50


class TestEmbeddingMemo:

    def test_lru_eviction(self):
        memo = EmbeddingMemo(max_size=2)
        memo.put("a", [1.0])
        memo.put("b", [2.0])
        memo.get("a")
        memo.put("c", [3.0])

        assert memo.get("b") is None
        assert memo.get("a") == [1.0]
        assert memo.get_stats()["evictions"] == 1

    def test_key_is_text_prefix(self):
        memo = EmbeddingMemo(key_chars=6)
        memo.put("ethics of AI", [1.0])

        assert memo.get("ethicXXX") is None
        assert memo.get("ethics in general") == [1.0]
