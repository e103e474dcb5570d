"""
Service container for Thoughtlands.

This module wires the note source, model-server clients, embedding cache,
generator and pipeline together from settings, so the CLI and tests can
obtain fully configured services without knowing their constructors.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from thoughtlands.core.events import ProgressNotifier
from thoughtlands.core.interfaces import IChatClient, IEmbeddingClient, IEmbeddingGenerator, INoteSource
from thoughtlands.utils.config import ThoughtlandsSettings
from thoughtlands.utils.errors import ConfigurationError
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

T = TypeVar('T')


class ServiceContainer:
    """Lazily builds and holds one instance per registered service type."""

    def __init__(self, settings: ThoughtlandsSettings):
        self.settings = settings
        self._singletons: dict[type, Any] = {}
        self._factories: dict[type, Callable[[], Any]] = {}
        self._building: set[type] = set()

    def register(self, interface: type[T], factory: Callable[[], T]) -> None:
        logger.debug(f"Registering factory for {interface.__name__}")
        self._factories[interface] = factory

    def register_instance(self, interface: type[T], instance: T) -> None:
        logger.debug(f"Registering instance for {interface.__name__}")
        self._singletons[interface] = instance

    def get(self, interface: type[T]) -> T:
        """Get the service registered for ``interface``.

        Raises:
            ConfigurationError: If the service is unknown or depends on itself
        """
        if interface in self._singletons:
            return self._singletons[interface]

        if interface in self._building:
            raise ConfigurationError(f"Circular dependency detected for {interface.__name__}")

        factory = self._factories.get(interface)
        if factory is None:
            raise ConfigurationError(f"Service {interface.__name__} is not registered")

        self._building.add(interface)
        try:
            instance = factory()
        except Exception as e:
            logger.error(f"❌ Failed to create instance of {interface.__name__}: {e}")
            raise
        finally:
            self._building.discard(interface)

        self._singletons[interface] = instance
        logger.debug(f"✅ Created instance of {interface.__name__}")
        return instance

    def configure_default_services(self, vault_path: Path | None = None) -> None:
        """Register the services for a vault; the chat backend follows ``ai_mode``."""
        from thoughtlands.services.embedding.cache import EmbeddingCache
        from thoughtlands.services.embedding.generator import BatchEmbeddingGenerator
        from thoughtlands.services.embedding.memo import EmbeddingMemo
        from thoughtlands.services.ollama.chat import OllamaChatClient
        from thoughtlands.services.ollama.embeddings import OllamaEmbeddingClient
        from thoughtlands.services.ollama.retry import RetryPolicy
        from thoughtlands.services.ollama.transport import OllamaTransport
        from thoughtlands.services.openai.chat import OpenAIChatClient, OpenAITransport
        from thoughtlands.services.pipeline import ConceptResolutionPipeline
        from thoughtlands.services.regions.repository import RegionRepository
        from thoughtlands.services.regions.rules import NoteFilterRules
        from thoughtlands.services.similarity.filter import SimilarityFilterExpander
        from thoughtlands.services.tags.affinity import TagAffinityCache
        from thoughtlands.services.tags.orchestrator import TagSuggestionOrchestrator
        from thoughtlands.services.vault.note_source import VaultNoteSource

        s = self.settings
        retry = s.get_retry_config()
        policy = RetryPolicy(
            max_attempts=retry["max_attempts"],
            base_delay=retry["base_delay"],
            max_delay=retry["max_delay"],
        )

        self.register(ProgressNotifier, ProgressNotifier)
        self.register(
            INoteSource,
            lambda: VaultNoteSource(vault_path or s.get_vault_path(), included_paths=s.included_paths),
        )
        self.register(
            OllamaTransport,
            lambda: OllamaTransport(
                s.ollama_url,
                timeout_seconds=s.request_timeout_seconds,
                recovery_delay=retry["recovery_delay"],
            ),
        )
        self.register(
            IEmbeddingClient,
            lambda: OllamaEmbeddingClient(
                self.get(OllamaTransport),
                model=s.ollama_embedding_model,
                retry_policy=policy,
                memo=EmbeddingMemo(max_size=s.memo_size, key_chars=s.memo_key_chars),
            ),
        )
        self.register(
            OpenAITransport,
            lambda: OpenAITransport(
                s.openai_api_key,
                s.openai_base_url,
                timeout_seconds=s.request_timeout_seconds,
                recovery_delay=retry["recovery_delay"],
            ),
        )
        if s.ai_mode == "openai":
            self.register(
                IChatClient,
                lambda: OpenAIChatClient(
                    self.get(OpenAITransport),
                    model=s.openai_chat_model,
                    retry_policy=policy,
                    max_tokens=s.openai_max_tokens,
                ),
            )
        else:
            self.register(
                IChatClient,
                lambda: OllamaChatClient(self.get(OllamaTransport), model=s.ollama_chat_model, retry_policy=policy),
            )
        self.register(EmbeddingCache, lambda: EmbeddingCache(s.get_embeddings_path(), s.ollama_embedding_model))
        self.register(
            IEmbeddingGenerator,
            lambda: BatchEmbeddingGenerator(
                self.get(INoteSource),
                self.get(EmbeddingCache),
                self.get(IEmbeddingClient),
                notifier=self.get(ProgressNotifier),
                batch_size=s.batch_size,
                inter_request_delay=retry["inter_request_delay"],
                inter_batch_delay=retry["inter_batch_delay"],
                text_chars=s.embedding_text_chars,
                min_chars=s.embedding_min_chars,
            ),
        )
        self.register(
            SimilarityFilterExpander,
            lambda: SimilarityFilterExpander(
                self.get(INoteSource),
                self.get(EmbeddingCache),
                self.get(IEmbeddingGenerator),
                threshold=s.embedding_similarity_threshold,
                max_results=s.max_embedding_results,
            ),
        )
        self.register(TagAffinityCache, lambda: TagAffinityCache(max_size=s.tag_affinity_cache_size))
        self.register(
            TagSuggestionOrchestrator,
            lambda: TagSuggestionOrchestrator(self.get(IChatClient), affinity_cache=self.get(TagAffinityCache)),
        )
        self.register(RegionRepository, RegionRepository)
        self.register(
            ConceptResolutionPipeline,
            lambda: ConceptResolutionPipeline(
                self.get(INoteSource),
                self.get(TagSuggestionOrchestrator),
                self.get(SimilarityFilterExpander),
                self.get(IEmbeddingClient),
                self.get(RegionRepository),
                rules=NoteFilterRules.from_settings(s),
                notifier=self.get(ProgressNotifier),
                samples_per_tag=s.samples_per_tag,
                colors=s.default_colors,
                ai_mode=s.ai_mode,
            ),
        )
        logger.debug("Default services configured")

    async def close(self) -> None:
        """Close every HTTP transport that was created."""
        from thoughtlands.services.ollama.transport import OllamaTransport
        from thoughtlands.services.openai.chat import OpenAITransport

        for transport_type in (OllamaTransport, OpenAITransport):
            transport = self._singletons.get(transport_type)
            if transport is not None:
                await transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
