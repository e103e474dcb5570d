"""
Tag extraction for Obsidian notes.

Tags come from YAML frontmatter (``tags``/``tag``, as a list or a
comma-separated string) and from inline ``#tag`` markers in the body.
"""

import re
from typing import Any

import yaml

from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

FRONTMATTER_PATTERN = r"^---\s*\n(.*?)\n---\s*\n"
TAG_PATTERN = r"(?:^|\s)#([a-zA-Z0-9_/-]+)(?=[\s.,;:!?)\]]|$)"
CODE_BLOCK_PATTERN = r"```.*?```"

FRONTMATTER_TAG_FIELDS = ("tags", "tag")


class NoteParser:
    """Extracts frontmatter and tags from Markdown."""

    def parse_frontmatter(self, content: str) -> tuple[dict[str, Any] | None, str]:
        """Extract YAML frontmatter from a Markdown file.

        Args:
            content: Markdown content

        Returns:
            Tuple of (frontmatter_dict, remaining_content)
        """
        match = re.search(FRONTMATTER_PATTERN, content, re.DOTALL)
        if not match:
            return None, content

        frontmatter_text = match.group(1)
        remaining_content = content[match.end():]

        try:
            frontmatter = yaml.safe_load(frontmatter_text)
            if not isinstance(frontmatter, dict):
                logger.debug(f"Frontmatter is not a dictionary: {frontmatter!r}")
                frontmatter = {}
            return frontmatter, remaining_content
        except yaml.YAMLError as e:
            logger.warning(f"Error parsing frontmatter: {e}")
            return {}, remaining_content

    def frontmatter_tags(self, frontmatter: dict[str, Any] | None) -> list[str]:
        tags: list[str] = []
        if not frontmatter:
            return tags

        for field in FRONTMATTER_TAG_FIELDS:
            value = frontmatter.get(field)
            if value is None:
                continue
            if isinstance(value, list):
                items = value
            elif isinstance(value, str):
                items = re.split(r"[,\s]+", value)
            else:
                items = [value]
            for item in items:
                if item is None:
                    continue
                tag = str(item).strip().lstrip("#").strip()
                if tag:
                    tags.append(tag)
        return tags

    def inline_tags(self, body: str) -> list[str]:
        body = re.sub(CODE_BLOCK_PATTERN, " ", body, flags=re.DOTALL)
        tags = []
        for match in re.finditer(TAG_PATTERN, body, re.MULTILINE):
            tag = match.group(1).strip("/")
            # "#2024" is a heading number or issue ref, not a tag
            if tag and not tag.isdigit():
                tags.append(tag)
        return tags

    def parse_tags(self, content: str) -> list[str]:
        """All tags of a note, first occurrence order, original casing.

        Tags differing only in case are reported once.
        """
        frontmatter, body = self.parse_frontmatter(content)
        seen: dict[str, str] = {}
        for tag in self.frontmatter_tags(frontmatter) + self.inline_tags(body):
            seen.setdefault(tag.lower(), tag)
        return list(seen.values())
