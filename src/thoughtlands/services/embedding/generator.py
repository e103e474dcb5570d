"""
Rate-limited embedding generation for vault notes.

The model server is fragile under concurrent load, so every backend call
goes through a single lock and consecutive calls are spaced by a fixed
delay. Concurrent requests for the same note share one in-flight task.
Each vector is written to the persistent cache as soon as it arrives so
partial progress survives a later failure.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from thoughtlands.core.events import EventTypes, ProgressNotifier
from thoughtlands.core.interfaces import IEmbeddingClient, IEmbeddingGenerator, INoteSource
from thoughtlands.models.embedding import EmbeddingProgress
from thoughtlands.services.embedding.cache import EmbeddingCache
from thoughtlands.services.embedding.hashing import content_fingerprint
from thoughtlands.utils.errors import BackendOverloaded, PersistFailure, ServiceError
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

ProgressCallback = Callable[[EmbeddingProgress], None]


@dataclass
class BuildSummary:
    """Outcome of an initial embedding build."""
    total_notes: int
    missing: int
    generated: int
    skipped: int
    failed: int
    build_complete: bool
    pruned: int = 0


class BatchEmbeddingGenerator(IEmbeddingGenerator):
    """Fills embedding cache gaps one request at a time."""

    def __init__(
        self,
        note_source: INoteSource,
        cache: EmbeddingCache,
        client: IEmbeddingClient,
        notifier: ProgressNotifier | None = None,
        batch_size: int = 15,
        inter_request_delay: float = 0.2,
        inter_batch_delay: float = 0.3,
        text_chars: int = 2000,
        min_chars: int = 10,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the generator.

        Args:
            note_source: Where note text is read from
            cache: Persistent embedding cache
            client: Embedding backend client
            notifier: Receives per-note progress events
            batch_size: Notes per batch during the initial build
            inter_request_delay: Minimum spacing between backend calls
            inter_batch_delay: Pause between initial-build batches
            text_chars: Leading characters of a note that are embedded
            min_chars: Notes with less embeddable text are skipped
            sleep: Awaitable sleep, replaceable in tests
            clock: Monotonic clock, replaceable in tests
        """
        self.note_source = note_source
        self.cache = cache
        self.client = client
        self.notifier = notifier
        self.batch_size = max(1, batch_size)
        self.inter_request_delay = inter_request_delay
        self.inter_batch_delay = inter_batch_delay
        self.text_chars = text_chars
        self.min_chars = min_chars
        self._sleep = sleep
        self._clock = clock

        self._backend_lock = asyncio.Lock()
        self._in_flight: dict[str, asyncio.Task] = {}
        self._last_request_end: float | None = None
        self._building = False

        self.stats = {
            'generated': 0,
            'cache_hits': 0,
            'skipped': 0,
            'failed': 0,
            'shared_in_flight': 0,
            'persist_failures': 0
        }

    @property
    def is_building(self) -> bool:
        return self._building

    def in_flight(self) -> list[str]:
        """Note ids with a generation request currently running."""
        return list(self._in_flight)

    def embedding_text(self, content: str) -> str:
        """The part of a note that is sent to the model."""
        return content[:self.text_chars].strip()

    # -------------------------------------------------------------------------
    # Single note
    # -------------------------------------------------------------------------

    async def generate_for_note(self, note_id: str) -> list[float] | None:
        """Get a note's embedding from the cache or generate it.

        Returns:
            The vector, or None when the note has too little text to embed

        Raises:
            BackendError: The backend failed after retries
        """
        # Join a running request before touching the note again. The lookup
        # and the insert below happen with no await in between.
        task = self._in_flight.get(note_id)
        if task is not None:
            self.stats['shared_in_flight'] += 1
            logger.debug(f"{note_id} is already generating, awaiting the running request")
            return await asyncio.shield(task)

        content = self.note_source.read_note(note_id)
        fingerprint = content_fingerprint(content)

        cached = self.cache.get(note_id, fingerprint)
        if cached is not None:
            self.stats['cache_hits'] += 1
            return cached

        text = self.embedding_text(content)
        if len(text) < self.min_chars:
            self.stats['skipped'] += 1
            logger.warning(f"Skipping short note {note_id} ({len(text)} chars)")
            return None

        task = asyncio.ensure_future(self._embed_and_store(note_id, fingerprint, text))
        self._in_flight[note_id] = task
        task.add_done_callback(lambda t, nid=note_id: self._release(nid, t))
        return await asyncio.shield(task)

    def _release(self, note_id: str, task: asyncio.Task) -> None:
        if self._in_flight.get(note_id) is task:
            del self._in_flight[note_id]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Generation for {note_id} failed: {task.exception()}")

    async def _throttle(self) -> None:
        if self._last_request_end is None:
            return
        wait = self.inter_request_delay - (self._clock() - self._last_request_end)
        if wait > 0:
            await self._sleep(wait)

    async def _embed_and_store(self, note_id: str, fingerprint: str, text: str) -> list[float]:
        async with self._backend_lock:
            await self._throttle()
            try:
                vector = await self.client.embed(text, use_memo=False)
            finally:
                self._last_request_end = self._clock()

        try:
            self.cache.put(note_id, fingerprint, vector)
        except PersistFailure as e:
            self.stats['persist_failures'] += 1
            logger.error(f"Embedding for {note_id} kept in memory only: {e}")

        self.stats['generated'] += 1
        return vector

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    def _report(
        self,
        total: int,
        completed: int,
        note_id: str | None,
        on_progress: ProgressCallback | None,
    ) -> None:
        progress = EmbeddingProgress(
            total=total,
            completed=completed,
            percentage=round(completed / total * 100) if total else 100,
            current_note_id=note_id,
        )
        if self.notifier:
            self.notifier.publish(EventTypes.EMBEDDING_PROGRESS, progress.model_dump(), source="generator")
        if on_progress:
            try:
                on_progress(progress)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    async def _run(
        self,
        note_ids: Sequence[str],
        results: dict[str, list[float]],
        total: int,
        offset: int,
        on_progress: ProgressCallback | None,
    ) -> int:
        """Generate embeddings in order; returns the number of failures."""
        failures = 0
        for index, note_id in enumerate(note_ids, start=1):
            try:
                vector = await self.generate_for_note(note_id)
                if vector is not None:
                    results[note_id] = vector
            except BackendOverloaded as e:
                failures += 1
                self.stats['failed'] += 1
                logger.error(f"Model server overloaded on {note_id}, skipping: {e}")
                await self.client.recover()
            except Exception as e:
                failures += 1
                self.stats['failed'] += 1
                logger.error(f"Failed to generate embedding for {note_id}: {e}")

            self._report(total, offset + index, note_id, on_progress)
        return failures

    async def generate_batch(
        self,
        note_ids: Sequence[str],
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, list[float]]:
        """Produce embeddings for the given notes, skipping failures.

        Returns:
            Mapping of note id to vector for every note that has one
        """
        unique_ids = list(dict.fromkeys(note_ids))
        results: dict[str, list[float]] = {}
        if not unique_ids:
            return results

        logger.info(f"Generating embeddings for {len(unique_ids)} notes (1 request at a time)")
        failures = await self._run(unique_ids, results, len(unique_ids), 0, on_progress)
        if failures:
            logger.warning(f"{failures} of {len(unique_ids)} notes failed to embed")
        return results

    async def build_initial(
        self,
        all_note_ids: Sequence[str] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BuildSummary:
        """Embed every note lacking a valid entry, then mark the build complete.

        The build is only marked complete when no note failed; notes with
        too little text to embed do not hold it back. When the whole vault is
        built, entries of notes that no longer exist are dropped first.
        """
        if self._building:
            raise ServiceError("Embedding process already in progress")

        self._building = True
        try:
            note_ids = list(all_note_ids) if all_note_ids is not None else self.note_source.list_notes()
            self.cache.load()

            pruned: list[str] = []
            if all_note_ids is None:
                try:
                    pruned = self.cache.prune(note_ids)
                except PersistFailure as e:
                    self.stats['persist_failures'] += 1
                    logger.error(f"Could not drop embeddings of deleted notes: {e}")

            fingerprints: dict[str, str] = {}
            unreadable = 0
            for note_id in note_ids:
                try:
                    fingerprints[note_id] = content_fingerprint(self.note_source.read_note(note_id))
                except Exception as e:
                    unreadable += 1
                    logger.error(f"Cannot read {note_id}, excluding it from the build: {e}")

            missing = self.cache.missing(fingerprints)
            total = len(missing)
            logger.info(f"🚀 Starting initial embedding build: {total} of {len(note_ids)} notes need embeddings")

            results: dict[str, list[float]] = {}
            failures = 0
            skipped_before = self.stats['skipped']
            batch_count = (total + self.batch_size - 1) // self.batch_size

            for start in range(0, total, self.batch_size):
                batch = missing[start:start + self.batch_size]
                logger.info(f"Processing batch {start // self.batch_size + 1}/{batch_count} ({len(batch)} notes)")
                failures += await self._run(batch, results, total, start, on_progress)
                if start + self.batch_size < total:
                    await self._sleep(self.inter_batch_delay)

            skipped = self.stats['skipped'] - skipped_before
            complete = failures == 0 and unreadable == 0
            if complete:
                self.cache.mark_build_complete(self.client.model_name)
                if total == 0:
                    self._report(len(note_ids), len(note_ids), None, on_progress)
                if self.notifier:
                    self.notifier.publish(
                        EventTypes.EMBEDDING_BUILD_COMPLETE,
                        {"total": len(note_ids), "generated": len(results)},
                        source="generator",
                    )
                logger.info(f"✅ Initial embedding build complete: {len(results)} generated, {skipped} skipped")
            else:
                logger.warning(
                    f"Initial embedding build incomplete: {failures + unreadable} notes failed; "
                    f"run the build again to fill the remaining gaps"
                )

            return BuildSummary(
                total_notes=len(note_ids),
                missing=total,
                generated=len(results),
                skipped=skipped,
                failed=failures + unreadable,
                build_complete=complete,
                pruned=len(pruned),
            )
        finally:
            self._building = False
