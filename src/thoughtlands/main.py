"""
Main entry point for the Thoughtlands CLI.

This module provides the command-line interface for checking the model
server, building the note embedding cache, and resolving concepts into
regions of an Obsidian vault.
"""

import asyncio
import sys
import traceback
from pathlib import Path

import click

from thoughtlands.core.container import ServiceContainer
from thoughtlands.core.interfaces import IChatClient, IEmbeddingClient, IEmbeddingGenerator
from thoughtlands.models.embedding import EmbeddingProgress
from thoughtlands.services.embedding.cache import EmbeddingCache
from thoughtlands.services.pipeline import ConceptResolutionPipeline, build_query
from thoughtlands.utils.config import get_settings
from thoughtlands.utils.errors import ThoughtlandsError
from thoughtlands.utils.helpers import echo_error, resolve_vault_path_or_exit, validate_settings_or_exit
from thoughtlands.utils.logging import configure_root_logging, setup_logging

logger = setup_logging(__name__)


def _fail(command: str, error: Exception) -> None:
    logger.error(f"💥 {command} error: {error}")
    if not isinstance(error, ThoughtlandsError):
        logger.error(f"🔍 Full traceback:\n{traceback.format_exc()}")
    echo_error(error)
    sys.exit(1)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Thoughtlands - map concepts onto regions of an Obsidian vault."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose

    settings = get_settings()
    configure_root_logging(
        level="DEBUG" if verbose or settings.debug else settings.log_level,
        structured=settings.structured_logging,
        log_file=settings.get_log_file_path(),
    )
    if verbose:
        logger.info("Verbose logging enabled")


@cli.command()
def status() -> None:
    """Check the model server and the embedding cache."""

    async def _status(container: ServiceContainer):
        async with container:
            chat = await container.get(IChatClient).check_status()
            embed = await container.get(IEmbeddingClient).check_status()
            cache_stats = container.get(EmbeddingCache).get_stats()
        return chat, embed, cache_stats

    try:
        validate_settings_or_exit()
        container = ServiceContainer(get_settings())
        container.configure_default_services()
        chat, embed, cache_stats = asyncio.run(_status(container))

        click.echo("=" * 50)
        click.echo("THOUGHTLANDS STATUS")
        click.echo("=" * 50)
        for label, backend in (("Chat", chat), ("Embedding", embed)):
            state = "ok" if backend.available and backend.model_installed else "unavailable"
            click.echo(f"{label} model: {backend.model_name} ({state})")
            if backend.error:
                click.echo(f"  {backend.error}")

        click.echo("\nEmbedding cache:")
        for key, value in cache_stats.items():
            click.echo(f"  {key}: {value}")

    except SystemExit:
        raise
    except Exception as e:
        _fail("Status", e)


@cli.command('build-embeddings')
@click.option('--vault', type=click.Path(path_type=Path), help='Path to Obsidian vault')
def build_embeddings(vault: Path | None) -> None:
    """Embed every note that lacks a current cache entry."""

    def progress_callback(progress: EmbeddingProgress) -> None:
        click.echo(f"Progress: {progress.completed}/{progress.total} ({progress.percentage}%)")

    async def _build(container: ServiceContainer):
        async with container:
            generator = container.get(IEmbeddingGenerator)
            return await generator.build_initial(on_progress=progress_callback)

    try:
        validate_settings_or_exit()
        vault_path = resolve_vault_path_or_exit(vault)
        container = ServiceContainer(get_settings())
        container.configure_default_services(vault_path)

        click.echo(f"Vault: {vault_path}")
        click.echo(f"Cache: {get_settings().get_embeddings_path()}")
        summary = asyncio.run(_build(container))

        click.echo("\n" + "=" * 50)
        click.echo("EMBEDDING BUILD " + ("COMPLETE" if summary.build_complete else "INCOMPLETE"))
        click.echo("=" * 50)
        click.echo(f"Total notes: {summary.total_notes}")
        click.echo(f"Needed embeddings: {summary.missing}")
        click.echo(f"Generated: {summary.generated}")
        click.echo(f"Skipped: {summary.skipped}")
        click.echo(f"Failed: {summary.failed}")
        click.echo(f"Pruned: {summary.pruned}")
        if not summary.build_complete:
            sys.exit(1)

    except KeyboardInterrupt:
        click.echo("\nBuild interrupted; generated embeddings were kept")
    except SystemExit:
        raise
    except Exception as e:
        _fail("Embedding build", e)


@cli.command()
@click.argument('concepts', nargs=-1, required=True)
@click.option('--scope', type=click.Choice(['narrow', 'regular', 'broad']), default='regular',
              help='How many tags to look for')
@click.option('--semantic', is_flag=True, help='Use embedding similarity only, no tags')
@click.option('--name', type=str, help='Region name (suggested by the model if omitted)')
@click.option('--color', type=str, help='Region color (from the palette if omitted)')
@click.option('--vault', type=click.Path(path_type=Path), help='Path to Obsidian vault')
def resolve(concepts: tuple[str, ...], scope: str, semantic: bool,
            name: str | None, color: str | None, vault: Path | None) -> None:
    """Resolve CONCEPTS into a region and print it as JSON."""

    async def _resolve(container: ServiceContainer):
        async with container:
            pipeline = container.get(ConceptResolutionPipeline)
            if semantic:
                return await pipeline.resolve_semantic(" ".join(concepts), name=name, color=color)
            return await pipeline.resolve(build_query(concepts, scope), name=name, color=color)

    try:
        validate_settings_or_exit()
        vault_path = resolve_vault_path_or_exit(vault)
        container = ServiceContainer(get_settings())
        container.configure_default_services(vault_path)

        region = asyncio.run(_resolve(container))
        click.echo(region.model_dump_json(indent=2))

    except SystemExit:
        raise
    except Exception as e:
        _fail("Resolve", e)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
