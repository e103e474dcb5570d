"""
Extraction of tag lists from chat model answers.

Models are asked for a bare JSON array but often wrap it in a code fence
or answer in prose. The JSON path is tried first; the text heuristics
only keep short tag-like fragments.
"""

import json
import re

from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

EXPLANATORY_KEYWORDS = (
    'here are', 'excluded', 'included', 'selected', 'returned',
    'most relevant', 'related to', 'synthesis of', 'can be used',
    'directly relevant', 'too narrow', 'too broad', 'subset of',
    'cover the core', 'areas of study', 'policy implications',
)

MAX_LINE_CHARS = 50
MIN_TAG_CHARS = 2
MAX_TAG_CHARS = 40
MAX_TAG_WORDS = 3

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")
_LEADING_JOINER = re.compile(r"^(and|or|the)\s+", re.IGNORECASE)
_TRAILING_PUNCT = re.compile(r"[:;.,!?]+$")
_BULLET = re.compile(r"^(?:[-*•]+|\d+[.)])\s+")


def strip_code_fences(content: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    content = content.strip()
    if content.startswith("```"):
        content = _FENCE_OPEN.sub("", content)
        content = _FENCE_CLOSE.sub("", content)
    return content.strip()


def _has_explanatory_keyword(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in EXPLANATORY_KEYWORDS)


def _acceptable(tag: str) -> bool:
    return (
        MIN_TAG_CHARS <= len(tag) <= MAX_TAG_CHARS
        and len(tag.split()) <= MAX_TAG_WORDS
    )


def _clean_line(line: str) -> str | None:
    tag = line.strip()
    tag = _BULLET.sub("", tag)
    tag = tag.lstrip("#")
    tag = _LEADING_JOINER.sub("", tag)
    tag = _TRAILING_PUNCT.sub("", tag)
    tag = re.sub(r'[\[\]"\'`]', "", tag).strip()

    if "," in tag:
        # handled by the comma pass
        return None

    if ":" in tag:
        # "tag: description" keeps only the tag part
        tag = tag.split(":", 1)[0].strip()

    if not _acceptable(tag):
        return None
    return tag


def extract_tags_from_text(content: str) -> list[str]:
    """Pull tag-like fragments out of a prose answer, in order of appearance."""
    extracted: dict[str, None] = {}

    for line in content.splitlines():
        if not line.strip():
            continue
        if _has_explanatory_keyword(line) or len(line.strip()) > MAX_LINE_CHARS:
            continue
        tag = _clean_line(line)
        if tag:
            extracted.setdefault(tag, None)

    # Comma-separated lists on a single line
    for part in content.split(","):
        tag = part.strip().lstrip("#")
        tag = re.sub(r'[\[\]":;.,!?]+$', "", tag)
        tag = re.sub(r'^[\["]+', "", tag).strip()
        if tag and "\n" not in tag and _acceptable(tag) and not _has_explanatory_keyword(tag):
            extracted.setdefault(tag, None)

    return list(extracted)


def parse_tag_response(content: str) -> list[str]:
    """Parse a model answer into raw tag strings (not yet validated)."""
    content = strip_code_fences(content)
    if not content:
        return []

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        logger.debug("Answer is not JSON, falling back to text extraction")
        return extract_tags_from_text(content)

    if isinstance(parsed, list):
        return [str(item) for item in parsed if isinstance(item, (str, int, float)) and str(item).strip()]
    if isinstance(parsed, str):
        return [parsed]
    if isinstance(parsed, dict):
        # Some models answer {"tags": [...]}
        for value in parsed.values():
            if isinstance(value, list):
                return [str(item) for item in value if isinstance(item, str) and item.strip()]

    logger.warning(f"Unexpected JSON answer of type {type(parsed).__name__}")
    return []
