"""
Tag vocabulary and validation of AI-suggested tags.

The vocabulary is the set of tags that really exist in the vault. AI
suggestions are matched against it case-insensitively and mapped back to
the vault's own spelling; anything else is rejected.
"""

from collections.abc import Iterable

from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)


def normalize_tag(tag: str) -> str:
    """Strip leading '#' markers and surrounding whitespace."""
    return str(tag).strip().lstrip("#").strip()


class TagVocabulary:
    """Case-folded lookup of the tags known to exist in the vault."""

    def __init__(self, tags: Iterable[str]):
        self._canonical: dict[str, str] = {}
        for tag in tags:
            normalized = normalize_tag(tag)
            if normalized:
                # First spelling seen wins when a tag appears in several casings.
                self._canonical.setdefault(normalized.casefold(), normalized)

    def __len__(self) -> int:
        return len(self._canonical)

    def __contains__(self, tag: object) -> bool:
        return isinstance(tag, str) and normalize_tag(tag).casefold() in self._canonical

    def __iter__(self):
        return iter(self._canonical.values())

    def canonical(self, tag: str) -> str | None:
        """The vault's spelling of ``tag``, or None if it is unknown."""
        return self._canonical.get(normalize_tag(tag).casefold())

    @property
    def tags(self) -> list[str]:
        return list(self._canonical.values())

    def subset(self, tags: Iterable[str]) -> "TagVocabulary":
        """Vocabulary restricted to the given tags."""
        return TagVocabulary(t for t in (self.canonical(tag) for tag in tags) if t)


def validate(raw_tags: Iterable[str], vocabulary: TagVocabulary) -> tuple[list[str], list[str]]:
    """Split raw AI tags into accepted and rejected.

    Accepted tags use the vocabulary's casing, keep the caller's order and
    appear once. Rejected tags are logged; validation never raises.

    Returns:
        (accepted, rejected)
    """
    accepted: list[str] = []
    rejected: list[str] = []
    seen: set[str] = set()

    for raw in raw_tags:
        if not isinstance(raw, str):
            raw = str(raw)
        tag = normalize_tag(raw)
        if not tag:
            continue

        canonical = vocabulary.canonical(tag)
        if canonical is None:
            rejected.append(tag)
            logger.warning(f"Rejected tag not in vault: '{tag}'")
            continue

        key = canonical.casefold()
        if key in seen:
            continue
        seen.add(key)
        accepted.append(canonical)

    if rejected:
        logger.info(f"Tag validation: {len(accepted)} accepted, {len(rejected)} rejected")
    return accepted, rejected
