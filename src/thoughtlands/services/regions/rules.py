"""
Include and exclude rules applied to resolved tags and notes.
"""

from collections.abc import Iterable, Sequence

from thoughtlands.core.interfaces import INoteSource
from thoughtlands.services.vault.note_source import path_included
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)


class NoteFilterRules:
    """Ignored/included tags and paths."""

    def __init__(
        self,
        ignored_tags: Iterable[str] = (),
        ignored_paths: Iterable[str] = (),
        included_paths: Iterable[str] = (),
        included_tags: Iterable[str] = (),
    ):
        self.ignored_tags = {t.lstrip("#").lower() for t in ignored_tags if t}
        self.ignored_paths = [p.lower() for p in ignored_paths if p]
        self.included_paths = [p for p in included_paths if p]
        self.included_tags = {t.lstrip("#").lower() for t in included_tags if t}

    @classmethod
    def from_settings(cls, settings) -> "NoteFilterRules":
        return cls(
            ignored_tags=settings.ignored_tags,
            ignored_paths=settings.ignored_paths,
            included_paths=settings.included_paths,
            included_tags=settings.included_tags,
        )

    def filter_tags(self, tags: Sequence[str]) -> list[str]:
        """Drop ignored tags (exact, case-insensitive)."""
        kept = []
        for tag in tags:
            if tag.lstrip("#").lower() in self.ignored_tags:
                logger.info(f"Filtering out ignored tag: {tag}")
                continue
            kept.append(tag)
        return kept

    def path_allowed(self, note_id: str) -> bool:
        if not path_included(note_id, self.included_paths):
            return False
        path = note_id.lower()
        return not any(ignored in path for ignored in self.ignored_paths)

    def tags_allowed(self, note_tags: Iterable[str]) -> bool:
        if not self.included_tags:
            return True
        return any(t.lstrip("#").lower() in self.included_tags for t in note_tags)

    def filter_notes(self, note_ids: Sequence[str], note_source: INoteSource) -> list[str]:
        """Apply path rules and the included-tags rule, keeping order."""
        kept = [
            note_id for note_id in note_ids
            if self.path_allowed(note_id)
            and (not self.included_tags or self.tags_allowed(note_source.get_tags(note_id)))
        ]
        if len(kept) < len(note_ids):
            logger.debug(f"Path/tag rules removed {len(note_ids) - len(kept)} of {len(note_ids)} notes")
        return kept
