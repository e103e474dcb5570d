"""
Prompt templates for tag suggestion, refinement and region naming.

Templates are Jinja2 strings rendered with ``trim_blocks`` and
``lstrip_blocks`` so the block tags do not leak whitespace into prompts.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from jinja2 import DictLoader, Environment, StrictUndefined, TemplateError

from thoughtlands.models.concept import ConceptQuery
from thoughtlands.utils.errors import ServiceError
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

TAG_SYSTEM_MESSAGE = (
    "You are a tag selection assistant. You MUST ONLY return tags that appear "
    "in the provided list. Any tag not in the list will be automatically "
    "rejected. Return ONLY a JSON array of tag names, nothing else."
)

JSON_ARRAY_INSTRUCTION = (
    "Return ONLY a valid JSON array of tag names (without the # prefix). "
    "Do not include any explanatory text, comments, or descriptions. "
    'Example format: ["tag1", "tag2", "tag3"]'
)

BUILTIN_TEMPLATES = {
    "suggest_tags": """\
{% if vocabulary %}
CRITICAL CONSTRAINT: You MUST ONLY return tags from this exact list. Any tag not in this list will be rejected. Do NOT invent, create, or suggest any tags that are not in this list.

VALID TAGS ONLY ({{ vocabulary | length }} tags total):
{{ vocabulary | map('tagmark') | join(', ') }}

Given this concept: {{ concept_text }}

Find and return {{ scope_description }} from the VALID TAGS list above that relate to this concept. Be comprehensive - include tags that are directly related, indirectly related, or tangentially related to these concepts. You MUST select tags ONLY from the list above. Every tag you return MUST appear exactly (case-insensitive) in that list.
{% else %}
Given this concept: {{ concept_text }}

Suggest {{ scope_description }} that would be relevant to notes about this concept.
{% endif %}
{% if samples %}

To help you understand the relationships, here are some sample excerpts from notes with various tags in the vault:

{% for tag, excerpts in samples %}
Tag #{{ tag }}:
"{{ (excerpts[:2] | join(' ... '))[:200] }}..."

{% endfor %}
Use these examples to understand how tags relate to content, and choose tags that would be relevant to a synthesis of the concepts provided.
{% endif %}

{% if vocabulary %}FINAL REMINDER: Return ONLY tags from the VALID TAGS list above. Any tag not in that list will be automatically rejected. {% else %}IMPORTANT: {% endif %}{{ json_instruction }}""",

    "refine_tags": """\
Given this concept: {{ concept_text }}

Here are {{ tags | length }} candidate tags with sample excerpts from notes:

{% for tag in tags %}
{% set excerpts = samples.get(tag, []) %}
{% if excerpts %}
Tag #{{ tag }}:
{% for excerpt in excerpts[:3] %}
  - {{ excerpt[:200] }}
{% endfor %}

{% else %}
Tag #{{ tag }} (no samples available)

{% endif %}
{% endfor %}
Based on these concepts and the sample content, select up to {{ max_tags }} relevant tags from the candidate tags listed above that would help find notes related to a synthesis of these concepts. You MUST ONLY select tags from the candidate tags listed above. Do NOT invent, create, or suggest any tags that are not in that candidate list. Include tags that are directly relevant, indirectly relevant, or provide useful context. Be comprehensive rather than restrictive - it's better to include a tag that might be useful than to exclude it.

CRITICAL CONSTRAINT: Every tag you return MUST appear exactly in the candidate list. Any tag not in that list will be automatically rejected.

IMPORTANT: {{ json_instruction }}""",

    "region_name": """\
Given this concept: {{ concept_text }}

{% if tags %}
And these related tags: {{ tags[:10] | join(', ') }}

{% endif %}
Generate a concise, descriptive name (2-4 words) for a region that represents notes about {{ 'these concepts' if tags else 'this concept' }}. Return only the name, nothing else.""",
}


class PromptTemplateManager:
    """Renders the built-in prompt templates."""

    def __init__(self, templates: Mapping[str, str] | None = None):
        """Initialize the manager.

        Args:
            templates: Overrides or additions to the built-in templates
        """
        sources = dict(BUILTIN_TEMPLATES)
        if templates:
            sources.update(templates)

        self.env = Environment(
            loader=DictLoader(sources),
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
            autoescape=False,
        )
        self.env.filters["tagmark"] = lambda tag: f"#{tag}"
        self.env.globals["json_instruction"] = JSON_ARRAY_INSTRUCTION

    def list_templates(self) -> list[str]:
        return sorted(self.env.list_templates())

    def render(self, name: str, **variables: Any) -> str:
        """Render a named template.

        Raises:
            ServiceError: If the template is missing or fails to render
        """
        try:
            template = self.env.get_template(name)
            return template.render(**variables).strip()
        except TemplateError as e:
            logger.error(f"Template rendering failed for {name}: {e}")
            raise ServiceError(f"Template rendering failed for {name}: {e}") from e

    def suggest_prompt(
        self,
        query: ConceptQuery,
        vocabulary: Sequence[str],
        samples: Mapping[str, Sequence[str]] | None = None,
        max_sample_tags: int = 10,
    ) -> str:
        sample_items = [
            (tag, list(excerpts)) for tag, excerpts in (samples or {}).items() if excerpts
        ][:max_sample_tags]
        return self.render(
            "suggest_tags",
            concept_text=query.text,
            scope_description=query.scope.description,
            vocabulary=list(vocabulary),
            samples=sample_items,
        )

    def refine_prompt(
        self,
        query: ConceptQuery,
        tags: Sequence[str],
        samples: Mapping[str, Sequence[str]],
    ) -> str:
        return self.render(
            "refine_tags",
            concept_text=query.text,
            tags=list(tags),
            samples={tag: list(excerpts) for tag, excerpts in samples.items()},
            max_tags=query.max_tags,
        )

    def region_name_prompt(self, concepts: Sequence[str], tags: Sequence[str] = ()) -> str:
        concept_text = concepts[0] if len(concepts) == 1 else ", ".join(concepts)
        return self.render("region_name", concept_text=concept_text, tags=list(tags))
