"""
Filesystem note source for an Obsidian vault.

Note ids are vault-relative POSIX paths such as ``Ideas/Ethics.md``.
Tags are parsed on first use and kept until the note's modification time
changes.
"""

from pathlib import Path

from thoughtlands.core.interfaces import INoteSource
from thoughtlands.services.vault.parser import NoteParser
from thoughtlands.utils.errors import ConfigurationError, ServiceError, ValidationError
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

EXCLUDED_FOLDERS = (".obsidian", ".git", ".trash", "node_modules")


def path_included(note_id: str, included_paths: list[str]) -> bool:
    """True when no include list is set or the path starts with or contains an entry."""
    if not included_paths:
        return True
    path = note_id.lower()
    return any(path.startswith(p.lower()) or p.lower() in path for p in included_paths if p)


class VaultNoteSource(INoteSource):
    """Service for reading notes and tags from an Obsidian vault."""

    def __init__(self, vault_path: str | Path, included_paths: list[str] | None = None):
        """Initialize the note source.

        Args:
            vault_path: Path to the Obsidian vault
            included_paths: Only notes under these folders are visible (empty = all)
        """
        if not vault_path:
            raise ConfigurationError("No vault path provided and none configured in settings")

        self.vault_path = Path(vault_path).expanduser().resolve()
        if not self.vault_path.exists():
            raise ConfigurationError(f"Vault path not found: {self.vault_path}")
        if not self.vault_path.is_dir():
            raise ConfigurationError(f"Vault path is not a directory: {self.vault_path}")

        self.included_paths = list(included_paths or [])
        self.parser = NoteParser()
        self._tag_cache: dict[str, tuple[float, list[str]]] = {}

        logger.info(f"Vault note source initialized with path: {self.vault_path}")

    def is_excluded_path(self, relative: Path) -> bool:
        """Hidden files and folders and Obsidian's own folders are never notes."""
        return any(part.startswith(".") or part in EXCLUDED_FOLDERS for part in relative.parts)

    def get_absolute_path(self, note_id: str) -> Path:
        absolute_path = (self.vault_path / note_id.lstrip("/")).resolve()
        if self.vault_path not in absolute_path.parents:
            raise ValidationError(f"Path outside vault: {note_id}")
        return absolute_path

    def list_notes(self) -> list[str]:
        notes = []
        for file_path in self.vault_path.rglob("*.md"):
            if not file_path.is_file():
                continue
            relative = file_path.relative_to(self.vault_path)
            if self.is_excluded_path(relative):
                continue
            note_id = relative.as_posix()
            if path_included(note_id, self.included_paths):
                notes.append(note_id)
        return sorted(notes)

    def read_note(self, note_id: str) -> str:
        """Read a note's full text.

        Raises:
            ServiceError: If the note does not exist or cannot be decoded
        """
        absolute_path = self.get_absolute_path(note_id)
        try:
            return absolute_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning(f"File {note_id} read with latin-1 encoding")
            return absolute_path.read_text(encoding="latin-1")
        except OSError as e:
            raise ServiceError(f"Cannot read note {note_id}: {e}") from e

    def get_tags(self, note_id: str) -> list[str]:
        absolute_path = self.get_absolute_path(note_id)
        try:
            mtime = absolute_path.stat().st_mtime
        except OSError as e:
            logger.warning(f"Cannot stat {note_id}: {e}")
            return []

        cached = self._tag_cache.get(note_id)
        if cached and cached[0] == mtime:
            return list(cached[1])

        try:
            tags = self.parser.parse_tags(self.read_note(note_id))
        except ServiceError as e:
            logger.warning(f"Skipping tags of unreadable note: {e}")
            return []

        self._tag_cache[note_id] = (mtime, tags)
        return list(tags)
