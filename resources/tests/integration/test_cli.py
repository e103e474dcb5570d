import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from thoughtlands.core.interfaces import IChatClient, IEmbeddingClient
from thoughtlands.main import cli
from thoughtlands.models.embedding import BackendStatus
from thoughtlands.models.region import Region, RegionSource
from thoughtlands.services.embedding.cache import EmbeddingCache
from thoughtlands.services.embedding.generator import BuildSummary
from thoughtlands.utils.config import ThoughtlandsSettings
from thoughtlands.utils.errors import NoTagsSuggested


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def settings(tmp_path):
    vault = tmp_path / "vault"
    vault.mkdir()
    return ThoughtlandsSettings(vault_path=str(vault), embeddings_path=str(tmp_path / "embeddings.json"))


@pytest.fixture
def patched_settings(settings):
    with patch('thoughtlands.main.get_settings', return_value=settings), \
            patch('thoughtlands.utils.helpers.get_settings', return_value=settings), \
            patch('thoughtlands.main.configure_root_logging'):
        yield settings


@pytest.fixture
def mock_container_class():
    with patch('thoughtlands.main.ServiceContainer') as mock_class:
        yield mock_class


def make_region():
    return Region(
        id="region_1700000000000_abcdefghi",
        name="Moral Landscapes",
        color="#E67E22",
        mode="concept",
        source=RegionSource(type="concept", concepts=["ethics"], tags=["ethics"]),
        notes=["Philosophy/Ethics.md"],
        created_at="2024-01-01T00:00:00.000Z",
        updated_at="2024-01-01T00:00:00.000Z",
    )


def test_resolve_prints_region_json(runner, patched_settings, mock_container_class):
    pipeline = MagicMock()
    pipeline.resolve = AsyncMock(return_value=make_region())
    mock_container_class.return_value.get.return_value = pipeline

    result = runner.invoke(cli, ['resolve', 'ethics', 'AI', '--scope', 'narrow'])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["name"] == "Moral Landscapes"
    query = pipeline.resolve.call_args.args[0]
    assert query.concepts == ("ethics", "AI")
    assert query.max_tags == 10


def test_resolve_semantic_mode(runner, patched_settings, mock_container_class):
    pipeline = MagicMock()
    pipeline.resolve_semantic = AsyncMock(return_value=make_region())
    mock_container_class.return_value.get.return_value = pipeline

    result = runner.invoke(cli, ['resolve', '--semantic', 'virtue', 'ethics'])

    assert result.exit_code == 0, result.output
    pipeline.resolve_semantic.assert_awaited_once_with("virtue ethics", name=None, color=None)


def test_resolve_failure_shows_suggestions(runner, patched_settings, mock_container_class):
    pipeline = MagicMock()
    pipeline.resolve = AsyncMock(side_effect=NoTagsSuggested(
        "AI did not return any valid tags from your vault.",
        suggestions=["Try different or broader concepts"],
    ))
    mock_container_class.return_value.get.return_value = pipeline

    result = runner.invoke(cli, ['resolve', 'physics'])

    assert result.exit_code == 1
    assert "Error: AI did not return any valid tags" in result.output
    assert "Try different or broader concepts" in result.output


def test_resolve_without_vault_path(runner):
    settings = ThoughtlandsSettings(vault_path="")
    with patch('thoughtlands.main.get_settings', return_value=settings), \
            patch('thoughtlands.utils.helpers.get_settings', return_value=settings), \
            patch('thoughtlands.main.configure_root_logging'):
        result = runner.invoke(cli, ['resolve', 'ethics'])

    assert result.exit_code == 1
    assert "Error: No vault path specified." in result.output


def test_build_embeddings_reports_incomplete_build(runner, patched_settings, mock_container_class):
    generator = MagicMock()
    generator.build_initial = AsyncMock(return_value=BuildSummary(
        total_notes=3, missing=3, generated=2, skipped=0, failed=1, build_complete=False,
    ))
    mock_container_class.return_value.get.return_value = generator

    result = runner.invoke(cli, ['build-embeddings'])

    assert result.exit_code == 1
    assert "EMBEDDING BUILD INCOMPLETE" in result.output
    assert "Failed: 1" in result.output


def test_status_reports_backends_and_cache(runner, patched_settings, mock_container_class):
    chat = MagicMock()
    chat.check_status = AsyncMock(return_value=BackendStatus(
        available=True, model_installed=True, model_name="llama3.2",
    ))
    embed = MagicMock()
    embed.check_status = AsyncMock(return_value=BackendStatus(
        available=True, model_installed=False, model_name="nomic-embed-text",
        error="Model nomic-embed-text is not installed",
    ))
    cache = MagicMock()
    cache.get_stats.return_value = {"entries": 12, "build_complete": False}
    services = {IChatClient: chat, IEmbeddingClient: embed, EmbeddingCache: cache}
    mock_container_class.return_value.get.side_effect = services.__getitem__

    result = runner.invoke(cli, ['status'])

    assert result.exit_code == 0, result.output
    assert "Chat model: llama3.2 (ok)" in result.output
    assert "Embedding model: nomic-embed-text (unavailable)" in result.output
    assert "entries: 12" in result.output
