"""
Excerpt sampling for tag refinement prompts.
"""

from collections.abc import Iterable

from thoughtlands.core.interfaces import INoteSource
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

MIN_LINE_CHARS = 20
MAX_EXCERPT_CHARS = 300


def first_substantive_line(content: str) -> str | None:
    """First line with more than 20 characters, capped at 300."""
    for line in content.splitlines():
        stripped = line.strip()
        if len(stripped) > MIN_LINE_CHARS:
            return stripped[:MAX_EXCERPT_CHARS]
    return None


class SampleGatherer:
    """Collects short note excerpts per tag."""

    def __init__(self, note_source: INoteSource):
        self.note_source = note_source

    def gather_samples(self, tags: Iterable[str], max_per_tag: int = 3) -> dict[str, list[str]]:
        """Map each tag to up to ``max_per_tag`` excerpts from its notes.

        Tags without notes (or whose notes have no usable line) map to an
        empty list so prompts can still mention them.
        """
        samples: dict[str, list[str]] = {}
        for tag in tags:
            excerpts: list[str] = []
            for note_id in self.note_source.notes_with_tags([tag]):
                if len(excerpts) >= max_per_tag:
                    break
                try:
                    content = self.note_source.read_note(note_id)
                except Exception as e:
                    logger.warning(f"Could not read {note_id} for tag sample: {e}")
                    continue
                excerpt = first_substantive_line(content)
                if excerpt:
                    excerpts.append(excerpt)
            samples[tag] = excerpts

        logger.debug(f"Collected samples for {sum(1 for v in samples.values() if v)} of {len(samples)} tags")
        return samples
