"""
Configuration management for Thoughtlands.

This module provides centralized configuration using Pydantic settings
with support for environment variables and .env files.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ValidationResult(BaseModel):
    valid: bool = True
    errors: list[str] = []
    warnings: list[str] = []


AI_MODES = ("local", "openai")

DEFAULT_COLORS = [
    "#E67E22", "#3498DB", "#9B59B6", "#1ABC9C",
    "#E74C3C", "#F39C12", "#34495E", "#16A085",
]


class ThoughtlandsSettings(BaseSettings):
    """Thoughtlands configuration settings."""

    # Application
    app_name: str = "thoughtlands"
    app_version: str = "0.3.0"
    debug: bool = Field(default=False)

    # Vault settings
    vault_path: str = Field(default="", description="Path to the Obsidian vault")
    ignored_tags: list[str] = Field(default=[], description="Tags never used to build a region")
    ignored_paths: list[str] = Field(default=[], description="Path fragments excluded from regions")
    included_paths: list[str] = Field(default=[], description="Folders to include (empty = all)")
    included_tags: list[str] = Field(default=[], description="Notes must carry one of these tags (empty = all)")

    # Backend settings
    ai_mode: str = Field(default="local", description="Chat backend for tag selection: local (Ollama) or openai")
    ollama_url: str = Field(default="http://localhost:11434", description="Base URL of the Ollama server")
    ollama_embedding_model: str = Field(default="nomic-embed-text", description="Model used for embeddings")
    ollama_chat_model: str = Field(default="llama3.2", description="Model used for tag suggestion")
    request_timeout_seconds: float = Field(default=30.0, description="Per-request timeout")

    # OpenAI-compatible chat backend (ai_mode = openai)
    openai_api_key: str = Field(default="", description="Bearer token for the chat completions API")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="Base URL of the chat completions API")
    openai_chat_model: str = Field(default="gpt-3.5-turbo", description="Model used for tag suggestion in openai mode")
    openai_max_tokens: int = Field(default=500, description="Completion token limit per request")

    # Retry and throttling
    max_retries: int = Field(default=3, description="Maximum attempts per backend call")
    retry_base_delay: float = Field(default=1.0, description="First backoff delay in seconds")
    retry_max_delay: float = Field(default=5.0, description="Backoff ceiling in seconds")
    recovery_delay: float = Field(default=2.0, description="Extra pause after an HTTP 500")
    inter_request_delay: float = Field(default=0.2, description="Pause between sequential embedding requests")
    inter_batch_delay: float = Field(default=0.3, description="Pause between embedding batches")

    # Embedding settings
    embeddings_path: str = Field(default="~/.thoughtlands/embeddings.json", description="Embedding cache document")
    batch_size: int = Field(default=15, description="Notes per batch during the initial build")
    embedding_text_chars: int = Field(default=2000, description="Characters of note text sent for embedding")
    embedding_min_chars: int = Field(default=10, description="Notes shorter than this are skipped")
    memo_size: int = Field(default=256, description="Entries kept in the in-session embedding memo")
    memo_key_chars: int = Field(default=100, description="Text prefix length used as memo key")

    # Similarity settings
    embedding_similarity_threshold: float = Field(default=0.65, description="Minimum cosine similarity to keep a note")
    max_embedding_results: int = Field(default=20, description="Maximum notes added by the expand step")

    # Tag suggestion settings
    samples_per_tag: int = Field(default=3, description="Excerpts gathered per tag for refinement")
    tag_affinity_cache_size: int = Field(default=100, description="Concept sets whose suggested tags are remembered (0 disables)")
    default_colors: list[str] = Field(default=DEFAULT_COLORS)

    # Logging settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="", description="Optional log file path")
    structured_logging: bool = Field(default=False, description="Emit JSON log records")

    # Pydantic v2 settings configuration
    model_config = SettingsConfigDict(
        env_file="config/.env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="THOUGHTLANDS_",
        extra="ignore",
    )

    def get_vault_path(self) -> Path | None:
        """Get vault path as Path object."""
        if self.vault_path:
            return Path(self.vault_path).expanduser().resolve()
        return None

    def get_embeddings_path(self) -> Path:
        """Get the embedding cache document path."""
        return Path(self.embeddings_path).expanduser().resolve()

    def get_log_file_path(self) -> Path | None:
        """Get log file path as Path object."""
        if not self.log_file:
            return None
        path = Path(self.log_file).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def validate_settings(self) -> ValidationResult:
        """Validate settings and return status information."""
        status = ValidationResult()

        vault_path = self.get_vault_path()
        if vault_path and not vault_path.exists():
            status.errors.append(f"Vault path does not exist: {vault_path}")
            status.valid = False

        if self.ai_mode not in AI_MODES:
            status.errors.append(f"Unsupported ai_mode '{self.ai_mode}' (supported: {', '.join(AI_MODES)})")
            status.valid = False
        elif self.ai_mode == "openai" and not self.openai_api_key:
            status.errors.append("ai_mode 'openai' requires openai_api_key")
            status.valid = False

        if not (-1.0 <= self.embedding_similarity_threshold <= 1.0):
            status.errors.append("Similarity threshold must be between -1.0 and 1.0")
            status.valid = False

        if self.max_retries < 1:
            status.errors.append("max_retries must be at least 1")
            status.valid = False

        for name in ("retry_base_delay", "retry_max_delay", "recovery_delay",
                     "inter_request_delay", "inter_batch_delay"):
            if getattr(self, name) < 0:
                status.errors.append(f"{name} must not be negative")
                status.valid = False

        if self.batch_size < 1:
            status.errors.append("batch_size must be at least 1")
            status.valid = False

        if self.max_embedding_results == 0:
            status.warnings.append("max_embedding_results is 0; the expand step is disabled")

        if not self.default_colors:
            status.warnings.append("No default colors configured; regions will use #888888")

        return status

    def get_retry_config(self) -> dict[str, Any]:
        """Get retry and throttling configuration as a dictionary."""
        return {
            "max_attempts": self.max_retries,
            "base_delay": self.retry_base_delay,
            "max_delay": self.retry_max_delay,
            "recovery_delay": self.recovery_delay,
            "inter_request_delay": self.inter_request_delay,
            "inter_batch_delay": self.inter_batch_delay,
        }


# Global settings instance
settings = ThoughtlandsSettings()


def get_settings() -> ThoughtlandsSettings:
    """Get the global settings instance."""
    return settings


def reload_settings() -> ThoughtlandsSettings:
    """Reload settings from environment and return new instance."""
    global settings
    settings = ThoughtlandsSettings()
    return settings
