"""
Tests for default wiring, plus an end-to-end run over the real SQLite store.
"""

from pathlib import Path

import pytest

from eplm.bootstrap import create_orchestrator, run_startup_seeds
from eplm.core.config import EPLMConfig
from eplm.integrations.process_manager import Pm2ProcessManager
from eplm.integrations.registry import RegistryClient
from eplm.lifecycle.reload import ReloadScheduler
from eplm.lifecycle.seeds import SEEDS_ENTRY, read_marker
from eplm.storage.records import SQLiteRecordStore
from eplm.storage.schemas import PostgresSchemaManager


def test_default_wiring(test_config: EPLMConfig):
    orchestrator = create_orchestrator(test_config, configure_logging=False)

    assert isinstance(orchestrator.registry, RegistryClient)
    assert isinstance(orchestrator.records, SQLiteRecordStore)
    assert isinstance(orchestrator.reload_scheduler.process_manager, Pm2ProcessManager)
    assert orchestrator.schema_manager is None
    assert orchestrator.extensions_dir.is_dir()
    assert Path(test_config.database.records_path).exists()


def test_schema_manager_with_dsn(temp_dir: Path):
    config = EPLMConfig(
        paths={"root_dir": temp_dir},
        database={
            "records_path": str(temp_dir / "eplm.db"),
            "schema_dsn": "postgresql://eplm@localhost/host",
        },
    )

    orchestrator = create_orchestrator(config, configure_logging=False)

    assert isinstance(orchestrator.schema_manager, PostgresSchemaManager)


@pytest.mark.asyncio
async def test_blog_extension_lifecycle(
    test_config, registry, fetcher, tooling, schema_manager, clock, process_manager, archives
):
    """Install 1.0.0, upgrade to 1.2.0 and uninstall against the SQLite store."""
    orchestrator = create_orchestrator(test_config, configure_logging=False)
    orchestrator.registry = registry
    orchestrator.fetcher = fetcher
    orchestrator.tooling = tooling
    orchestrator.schema_manager = schema_manager
    orchestrator.reload_scheduler = ReloadScheduler(
        process_manager, app_name=test_config.reload.app_name, timer_factory=clock.call_later
    )

    registry.publish("blog-ext", "1.0.0", name="Blog")
    seeds = "def get_seeders():\n    return [lambda: None]\n"
    fetcher.add("blog-ext", "1.0.0", archives.package_files("1.0.0", extra={str(SEEDS_ENTRY): seeds}))
    fetcher.add("blog-ext", "1.2.0", archives.package_files("1.2.0", extra={str(SEEDS_ENTRY): seeds}))

    await orchestrator.install("blog-ext")
    live = orchestrator.extension_dir("blog-ext")
    (live / "data").mkdir()
    (live / "data" / "posts.json").write_text('["hello"]')

    assert await run_startup_seeds(orchestrator) == ["blog-ext"]
    assert read_marker(live).version == "1.0.0"

    registry.versions["blog-ext"] = ["1.2.0", "1.0.0"]
    upgraded = await orchestrator.upgrade("blog-ext")

    assert upgraded.version == "1.2.0"
    assert orchestrator.records.find_by_identifier("blog-ext").version == "1.2.0"
    assert (live / "data" / "posts.json").read_text() == '["hello"]'
    # The marker lives under data/, so an upgrade does not re-seed
    assert await run_startup_seeds(orchestrator) == []

    schema_manager.existing.add("blog_ext")
    await orchestrator.uninstall("blog-ext")

    assert orchestrator.records.find_by_identifier("blog-ext") is None
    assert not live.exists()
    assert schema_manager.dropped == ["blog_ext"]
    assert orchestrator.config_store.enabled_identifiers() == []

    clock.advance(3.0)
    await orchestrator.reload_scheduler.drain()
    assert process_manager.reload_calls == ["buildingai-api"]
