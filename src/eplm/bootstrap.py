"""
EPLM Bootstrap

Wires the lifecycle orchestrator to its default collaborators from the global
configuration.
"""

from pathlib import Path
from typing import List, Optional

from .core.config import EPLMConfig, ensure_directories, get_config
from .core.logging import get_logger, setup_logging
from .integrations.process_manager import Pm2ProcessManager
from .integrations.registry import RegistryClient
from .lifecycle.orchestrator import LifecycleOrchestrator
from .lifecycle.reload import ReloadScheduler
from .lifecycle.seeds import SeedRunner
from .storage.config_file import ExtensionsConfigFile
from .storage.records import SQLiteRecordStore
from .storage.schemas import PostgresSchemaManager


def create_orchestrator(
    config: Optional[EPLMConfig] = None, configure_logging: bool = True
) -> LifecycleOrchestrator:
    """
    Build a LifecycleOrchestrator with the registry, SQLite record store,
    extensions.json, PostgreSQL schema manager and PM2 described by config.

    Args:
        config: Configuration to use (global configuration if None)
        configure_logging: Apply the logging section of config

    Returns:
        Ready-to-use orchestrator
    """
    config = config or get_config()

    if configure_logging:
        setup_logging(config=config)

    logger = get_logger(__name__)
    ensure_directories(config)

    process_manager = Pm2ProcessManager(
        app_name=config.reload.app_name,
        binary=config.reload.pm2_binary,
        cwd=config.paths.root_dir,
    )
    schema_manager = (
        PostgresSchemaManager(config.database.schema_dsn)
        if config.database.schema_dsn
        else None
    )
    if schema_manager is None:
        logger.info("No schema DSN configured, extension schemas will not be dropped")

    logger.info(f"Extension lifecycle manager ready (environment: {config.environment})")
    return LifecycleOrchestrator(
        config=config,
        registry=RegistryClient.from_config(config.registry),
        records=SQLiteRecordStore(Path(config.database.records_path)),
        config_store=ExtensionsConfigFile(config.paths.config_file),
        reload_scheduler=ReloadScheduler(
            process_manager,
            debounce_ms=config.reload.debounce_ms,
            app_name=config.reload.app_name,
        ),
        schema_manager=schema_manager,
    )


async def run_startup_seeds(orchestrator: LifecycleOrchestrator) -> List[str]:
    """Seed extensions installed since the last start."""
    runner = SeedRunner(orchestrator.extensions_dir)
    return await runner.run_pending(orchestrator.list_installed())
