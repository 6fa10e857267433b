"""
First-Install Seeding

Runs an extension's seed tasks the first time it is ever installed and records
completion in ``data/.installed`` so later restarts skip it.
"""

import asyncio
import importlib.util
import inspect
import json
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..core.logging import get_logger
from ..core.models import ExtensionRecord, ExtensionStatus, InstallMarker
from ..core.naming import to_safe_name

logger = get_logger(__name__)

MARKER_PATH = Path("data") / ".installed"
SEEDS_ENTRY = Path("build") / "db" / "seeds" / "__init__.py"

# live extension directory -> seed tasks (sync or async callables)
SeedLoader = Callable[[Path], List[Callable[[], Any]]]


def marker_path(extension_dir: Path) -> Path:
    return Path(extension_dir) / MARKER_PATH


def read_marker(extension_dir: Path) -> Optional[InstallMarker]:
    """
    Read the first-install marker of an extension.

    Returns:
        The marker, or None when it is absent or unreadable
    """
    path = marker_path(extension_dir)
    if not path.is_file():
        return None
    try:
        return InstallMarker.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, PydanticValidationError) as e:
        logger.warning(f"Ignoring unreadable install marker {path}: {e}")
        return None


def write_marker(extension_dir: Path, identifier: str, version: str) -> InstallMarker:
    """Record that identifier@version has been seeded."""
    marker = InstallMarker(identifier=identifier, version=version)
    path = marker_path(extension_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(marker.model_dump(mode="json"), indent=2), encoding="utf-8"
    )
    return marker


def load_seed_module(extension_dir: Path) -> List[Callable[[], Any]]:
    """
    Load seed tasks from ``build/db/seeds/__init__.py``.

    The module must expose ``get_seeders()`` returning a list of callables.
    An extension without the module has nothing to seed.
    """
    entry = Path(extension_dir) / SEEDS_ENTRY
    if not entry.is_file():
        return []

    module_name = f"eplm_seeds_{to_safe_name(Path(extension_dir).name).replace('-', '_')}"
    spec = importlib.util.spec_from_file_location(module_name, entry)
    if spec is None or spec.loader is None:
        return []
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    get_seeders = getattr(module, "get_seeders", None)
    if get_seeders is None:
        logger.warning(f"Seed module {entry} must define get_seeders()")
        return []
    return list(get_seeders() or [])


class SeedRunner:
    """Runs pending first-install seeds"""

    def __init__(self, extensions_dir: Path, loader: Optional[SeedLoader] = None):
        """
        Initialize seed runner

        Args:
            extensions_dir: Root of the live extension directories
            loader: Seed task loader (defaults to the on-disk seed module)
        """
        self.extensions_dir = Path(extensions_dir)
        self.loader = loader or load_seed_module

    def extension_dir(self, identifier: str) -> Path:
        return self.extensions_dir / to_safe_name(identifier)

    async def run_pending(self, records: Iterable[ExtensionRecord]) -> List[str]:
        """
        Seed every enabled extension that has no install marker yet.

        Failures are logged per extension and never raised.

        Returns:
            Identifiers that were seeded and marked
        """
        seeded = []
        logger.info("Checking for newly installed extensions...")

        for record in records:
            if record.status != ExtensionStatus.ENABLED:
                continue

            extension_dir = self.extension_dir(record.identifier)
            if read_marker(extension_dir) is not None:
                logger.debug(f"Extension {record.identifier} already installed, skipping seeds")
                continue

            logger.info(
                f"First time installation detected for {record.identifier}, running seeds..."
            )
            try:
                await self._run_tasks(record.identifier, extension_dir)
                await asyncio.to_thread(
                    write_marker, extension_dir, record.identifier, record.version
                )
            except Exception as e:
                logger.error(f"Failed to execute seeds for {record.identifier}: {e}")
                continue

            logger.info(f"Extension {record.identifier} marked as installed")
            seeded.append(record.identifier)

        logger.info("Extension seed check completed")
        return seeded

    async def _run_tasks(self, identifier: str, extension_dir: Path) -> None:
        tasks = self.loader(extension_dir)
        if not tasks:
            logger.info(f"Extension {identifier} has no seeders to run")
            return

        for task in tasks:
            result = task()
            if inspect.isawaitable(result):
                await result
        logger.info(f"Extension {identifier} seeds executed successfully ({len(tasks)} tasks)")
