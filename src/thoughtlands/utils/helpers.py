"""
Common utility functions for the Thoughtlands CLI.
"""

import sys
from pathlib import Path

import click

from thoughtlands.utils.config import get_settings
from thoughtlands.utils.errors import ThoughtlandsError
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)


def validate_settings_or_exit() -> None:
    """Validate settings, echo warnings, and exit on errors."""
    settings = get_settings()
    validation_result = settings.validate_settings()

    for warning in validation_result.warnings:
        click.echo(f"Warning: {warning}")

    if not validation_result.valid:
        for error in validation_result.errors:
            click.echo(f"Error: {error}")
        sys.exit(1)


def resolve_vault_path_or_exit(vault: Path | None = None) -> Path:
    """
    Resolve vault path from parameter or settings, exit if none found.

    Args:
        vault: Optional vault path from command line

    Returns:
        Resolved vault path

    Raises:
        SystemExit: If no vault path can be resolved
    """
    settings = get_settings()
    vault_path = vault or settings.get_vault_path()

    if not vault_path:
        click.echo("Error: No vault path specified. Use --vault or set THOUGHTLANDS_VAULT_PATH.")
        sys.exit(1)

    vault_path = Path(vault_path).expanduser().resolve()

    if not vault_path.exists():
        click.echo(f"Error: Vault path not found: {vault_path}")
        sys.exit(1)

    if not vault_path.is_dir():
        click.echo(f"Error: Vault path is not a directory: {vault_path}")
        sys.exit(1)

    return vault_path


def echo_error(error: Exception) -> None:
    """Print an error with its suggestions, if it carries any."""
    click.echo(f"Error: {error}")
    if isinstance(error, ThoughtlandsError):
        for suggestion in error.suggestions:
            click.echo(f"  - {suggestion}")
