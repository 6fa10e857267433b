"""
Lifecycle Orchestrator

Installs, upgrades, scaffolds and uninstalls extensions, keeping the live
directory, published web assets, metadata record and extensions.json entry of
each identifier consistent with each other.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from ..core.config import EPLMConfig
from ..core.exceptions import (
    AlreadyExistsError,
    InvalidPackageStructureError,
    LifecycleError,
    NotFoundError,
    TemplateNotFoundError,
    VersionNotFoundError,
)
from ..core.logging import get_logger, log_structured
from ..core.models import (
    ConfigEntry,
    ConfigManifest,
    CreateExtensionRequest,
    DownloadMode,
    ExtensionDetail,
    ExtensionOrigin,
    ExtensionRecord,
    ExtensionStatus,
)
from ..core.naming import require_identifier, schema_name, to_safe_name
from ..packages.assets import AssetPublisher
from ..packages.cache import PackageCache, PackageFetcher
from ..packages.fsops import remove_tree
from ..packages.stager import PACKAGE_MARKERS, TEMPLATE_MARKERS, ArchiveStager
from ..packages.swapper import DirectorySwapper
from .commands import CommandRunner, ExtensionTooling
from .descriptors import apply_author_name, apply_create_request
from .interfaces import ConfigStore, ExtensionRegistry, RecordStore, SchemaManager
from .reload import ReloadScheduler

logger = get_logger(__name__)

CONFIG_SECTION = "applications"


@dataclass
class _Written:
    """Artifacts an install or scaffold has created so far."""

    live_dir: bool = False
    record: bool = False
    config_entry: bool = False
    assets: bool = False


@dataclass
class _KeyedLock:
    """Lock for one safe name and the number of callers holding or awaiting it."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class LifecycleOrchestrator:
    """
    Drives extension lifecycle operations.

    Every public operation holds a per-identifier lock for its whole duration,
    so two calls for the same extension never interleave their filesystem or
    persistence steps.
    """

    def __init__(
        self,
        config: EPLMConfig,
        registry: ExtensionRegistry,
        records: RecordStore,
        config_store: ConfigStore,
        reload_scheduler: ReloadScheduler,
        schema_manager: Optional[SchemaManager] = None,
        tooling: Optional[ExtensionTooling] = None,
        fetcher: Optional[PackageFetcher] = None,
    ):
        """
        Initialize lifecycle orchestrator

        Args:
            config: EPLM configuration (paths, registry and command settings)
            registry: Remote package registry
            records: Extension metadata store
            config_store: extensions.json document
            reload_scheduler: Shared debounced reload scheduler
            schema_manager: Per-extension schema manager (schemas are left
                alone when None)
            tooling: Dependency install and build commands
            fetcher: Package fetcher (built from config when None)
        """
        self.config = config
        self.registry = registry
        self.records = records
        self.config_store = config_store
        self.reload_scheduler = reload_scheduler
        self.schema_manager = schema_manager

        paths = config.paths
        self.extensions_dir = Path(paths.extensions_dir)
        self.cache = PackageCache(paths.temp_dir)
        self.fetcher = fetcher or PackageFetcher(
            self.cache,
            timeout=config.registry.timeout,
            max_retries=config.registry.max_retries,
            retry_delay=config.registry.retry_delay,
        )
        self.stager = ArchiveStager(paths.temp_dir)
        self.swapper = DirectorySwapper(paths.temp_dir)
        self.publisher = AssetPublisher(paths.public_web_dir)
        self.tooling = tooling or ExtensionTooling(
            paths.root_dir,
            install_command=config.commands.install_dependencies,
            build_command=config.commands.build_extension,
            runner=CommandRunner(timeout=config.commands.timeout),
        )

        self._locks: Dict[str, _KeyedLock] = {}

    def extension_dir(self, identifier: str) -> Path:
        """Live directory of an extension."""
        return self.extensions_dir / to_safe_name(identifier)

    @asynccontextmanager
    async def _locked(self, identifier: str) -> AsyncIterator[None]:
        # Identifiers that map to the same safe name share a directory
        key = to_safe_name(identifier)
        keyed = self._locks.get(key)
        if keyed is None:
            keyed = self._locks[key] = _KeyedLock()

        keyed.users += 1
        try:
            async with keyed.lock:
                yield
        finally:
            keyed.users -= 1
            if keyed.users == 0:
                del self._locks[key]

    # ------------------------------------------------------------------
    # install
    # ------------------------------------------------------------------

    async def install(
        self, identifier: str, version: Optional[str] = None
    ) -> ExtensionRecord:
        """
        Install an extension from the registry.

        Args:
            identifier: Extension identifier
            version: Version to install (latest when None)

        Returns:
            The created metadata record

        Raises:
            ValidationError: If identifier is empty
            AlreadyExistsError: If the extension is already installed
            VersionNotFoundError: If the registry lists no version
            DownloadFailedError: If the package cannot be downloaded
            InvalidPackageStructureError: If the package lacks build output
            AssetPublishError: If web assets cannot be published
            DependencyInstallError: If shared dependencies fail to install
        """
        identifier = require_identifier(identifier)
        async with self._locked(identifier):
            record = await self._install(identifier, version)

        log_structured(
            logger, logging.INFO, "Extension installed",
            operation="install", identifier=identifier, version=record.version,
            origin=record.origin.value,
        )
        return record

    async def _install(self, identifier: str, version: Optional[str]) -> ExtensionRecord:
        if self.records.find_by_identifier(identifier) is not None:
            raise AlreadyExistsError(f"Extension {identifier} is already installed")

        # 1. Resolve metadata and version
        detail = await self.registry.get_detail(identifier)
        if not version:
            version = await self._resolve_latest_version(identifier)

        # 2. Fetch the archive, reusing a cached download
        ticket = await self.registry.get_download_url(
            identifier, version, DownloadMode.INSTALL
        )
        archive = await self.fetcher.fetch(ticket.url, identifier, version)

        # 3. Stage and promote into a new live directory
        live_dir = self.extension_dir(identifier)
        written = _Written()
        try:
            async with self._staged_download(archive) as staged_root:
                if live_dir.exists():
                    raise AlreadyExistsError(
                        f"Extension directory already exists: {live_dir}",
                        {"identifier": identifier},
                    )
                written.live_dir = True
                await self.swapper.promote(staged_root, live_dir, DownloadMode.INSTALL)

            # 4. Persist only after the directory is known to be valid
            record = self.records.create(
                self._record_from_detail(identifier, version, detail)
            )
            written.record = True

            self.config_store.add_entry(
                identifier, self._config_entry(record), section=CONFIG_SECTION
            )
            written.config_entry = True
            logger.info(f"Updated extensions.json: enabled {identifier}@{version}")

            # 5. Web assets and shared dependencies
            written.assets = True
            await self.publisher.publish_from(identifier, live_dir)
            await self.tooling.install_dependencies()
        except Exception:
            await self._rollback(identifier, written)
            raise

        # 6. Point of no return
        self.reload_scheduler.arm()
        logger.info(f"Extension installed successfully: {identifier}@{version}")
        return record

    # ------------------------------------------------------------------
    # upgrade
    # ------------------------------------------------------------------

    async def upgrade(self, identifier: str) -> ExtensionRecord:
        """
        Upgrade an installed extension to the latest registry version.

        User data, runtime storage and installed dependencies survive unless
        the new package ships its own copy. A failure while promoting leaves
        the previous version in place.

        Returns:
            The updated metadata record

        Raises:
            NotFoundError: If the extension is not installed
        """
        identifier = require_identifier(identifier)
        async with self._locked(identifier):
            record = await self._upgrade(identifier)

        log_structured(
            logger, logging.INFO, "Extension upgraded",
            operation="upgrade", identifier=identifier, version=record.version,
            status=record.status.value,
        )
        return record

    async def _upgrade(self, identifier: str) -> ExtensionRecord:
        record = self.records.find_by_identifier(identifier)
        if record is None:
            raise NotFoundError(f"Extension {identifier} is not installed")

        detail = await self.registry.get_detail(identifier)
        latest = await self._resolve_latest_version(identifier)
        logger.info(f"Upgrading {identifier} from {record.version} to {latest}")

        ticket = await self.registry.get_download_url(
            identifier, latest, DownloadMode.UPGRADE
        )
        archive = await self.fetcher.fetch(ticket.url, identifier, latest)

        live_dir = self.extension_dir(identifier)
        async with self._staged_download(archive) as staged_root:
            await self.swapper.promote(staged_root, live_dir, DownloadMode.UPGRADE)

        updated = self._record_from_detail(identifier, latest, detail).model_copy(
            update={
                "id": record.id,
                "status": record.status,
                "origin": record.origin,
                "created_at": record.created_at,
                "updated_at": datetime.now(UTC),
            }
        )
        updated = self.records.update(updated)

        self.config_store.add_entry(
            identifier, self._config_entry(updated), section=CONFIG_SECTION
        )

        await self.publisher.publish_from(identifier, live_dir)
        await self.tooling.install_dependencies()

        self.reload_scheduler.arm()
        logger.info(f"Extension upgraded successfully: {identifier} to {latest}")
        return updated

    # ------------------------------------------------------------------
    # uninstall
    # ------------------------------------------------------------------

    async def uninstall(self, identifier: str) -> ExtensionRecord:
        """
        Remove an installed extension.

        The metadata record is deleted last, so an interrupted uninstall can
        simply be run again. Schema removal, asset retraction and the registry
        notification are best-effort.

        Returns:
            The record that was removed

        Raises:
            NotFoundError: If the extension is not installed
        """
        identifier = require_identifier(identifier)
        async with self._locked(identifier):
            record = await self._uninstall(identifier)

        log_structured(
            logger, logging.INFO, "Extension uninstalled",
            operation="uninstall", identifier=identifier, version=record.version,
        )
        return record

    async def _uninstall(self, identifier: str) -> ExtensionRecord:
        record = self.records.find_by_identifier(identifier)
        if record is None:
            raise NotFoundError(f"Extension {identifier} is not installed")

        # 1. Live directory
        live_dir = self.extension_dir(identifier)
        try:
            if await asyncio.to_thread(remove_tree, live_dir):
                logger.info(f"Removed extension directory: {live_dir}")
            else:
                logger.info(f"Extension directory not found: {live_dir}. Skipping removal.")
        except OSError as e:
            raise LifecycleError(
                f"Failed to remove extension directory: {e}", {"identifier": identifier}
            )

        # 2. Published web assets
        await self.publisher.retract(identifier)

        # 3. extensions.json entry
        if self.config_store.remove_entry(identifier):
            logger.info(f"Removed {identifier} from extensions.json")

        # 4. Private schema
        await self._drop_schema(identifier)

        # 5. Metadata record
        self.records.delete(identifier)

        # 6. Registry notification
        try:
            await self.registry.notify_uninstall(identifier, record.version)
        except Exception as e:
            logger.warning(f"Failed to notify registry about uninstall of {identifier}: {e}")

        self.reload_scheduler.arm()
        logger.info(f"Extension uninstalled successfully: {identifier}")
        return record

    async def _drop_schema(self, identifier: str) -> None:
        if self.schema_manager is None:
            return

        name = schema_name(identifier)
        try:
            logger.info(f"Checking for extension schema: {name}")
            if await self.schema_manager.schema_exists(name):
                await self.schema_manager.drop_schema(name)
                logger.info(f"Extension schema dropped successfully: {name}")
            else:
                logger.info(f"Extension schema does not exist: {name}")
        except Exception as e:
            logger.error(
                f"Failed to drop extension schema: {e}. Manual cleanup may be required."
            )

    # ------------------------------------------------------------------
    # scaffold
    # ------------------------------------------------------------------

    async def scaffold(self, request: CreateExtensionRequest) -> ExtensionRecord:
        """
        Create a local extension from the starter template and build it.

        Raises:
            AlreadyExistsError: If a record or directory exists for the identifier
            TemplateNotFoundError: If the starter template archive is missing
            InvalidPackageStructureError: If the template lacks package.json
            DependencyInstallError: If shared dependencies fail to install
            BuildFailedError: If the extension build fails
        """
        identifier = require_identifier(request.identifier)
        async with self._locked(identifier):
            record = await self._scaffold(identifier, request)

        log_structured(
            logger, logging.INFO, "Extension scaffolded",
            operation="scaffold", identifier=identifier, version=record.version,
            origin=record.origin.value,
        )
        return record

    async def _scaffold(
        self, identifier: str, request: CreateExtensionRequest
    ) -> ExtensionRecord:
        if self.records.find_by_identifier(identifier) is not None:
            raise AlreadyExistsError(f"Extension {identifier} already exists")

        live_dir = self.extension_dir(identifier)
        if live_dir.exists():
            raise AlreadyExistsError(f"Extension directory already exists: {live_dir}")

        template = self.config.template_path
        if not template.is_file():
            raise TemplateNotFoundError(
                f"Extension template not found: {template}", {"template": str(template)}
            )

        written = _Written()
        try:
            async with self.stager.stage(template, TEMPLATE_MARKERS) as staged_root:
                await self.swapper.create(staged_root, live_dir)
                written.live_dir = True

            await asyncio.to_thread(apply_create_request, live_dir, request)

            record = self.records.create(
                ExtensionRecord(
                    identifier=identifier,
                    name=request.name,
                    version=request.version or "0.0.1",
                    description=request.description,
                    icon=request.icon,
                    type=request.type,
                    supported_terminals=list(request.supported_terminals),
                    author=request.author,
                    homepage=request.homepage or None,
                    documentation=request.documentation,
                    status=ExtensionStatus.ENABLED,
                    origin=ExtensionOrigin.LOCAL,
                )
            )
            written.record = True

            self.config_store.add_entry(
                identifier, self._config_entry(record), section=CONFIG_SECTION
            )
            written.config_entry = True

            await self.tooling.install_dependencies()
            await self.tooling.build_extension(live_dir)

            written.assets = True
            await self.publisher.publish_from(identifier, live_dir)
        except Exception:
            await self._rollback(identifier, written)
            raise

        self.reload_scheduler.arm()
        logger.info(f"Extension created successfully: {identifier}")
        return record

    # ------------------------------------------------------------------
    # management
    # ------------------------------------------------------------------

    async def set_enabled(self, identifier: str, enabled: bool) -> ExtensionRecord:
        """
        Enable or disable an installed extension.

        Raises:
            NotFoundError: If the extension is not installed
        """
        identifier = require_identifier(identifier)
        async with self._locked(identifier):
            record = self.records.find_by_identifier(identifier)
            if record is None:
                raise NotFoundError(f"Extension {identifier} is not installed")

            status = ExtensionStatus.ENABLED if enabled else ExtensionStatus.DISABLED
            record = self.records.update(
                record.model_copy(update={"status": status, "updated_at": datetime.now(UTC)})
            )

            if not self.config_store.set_enabled(identifier, enabled):
                logger.warning(f"{identifier} has no extensions.json entry, re-adding it")
                self.config_store.add_entry(
                    identifier, self._config_entry(record), section=CONFIG_SECTION
                )

        self.reload_scheduler.arm()
        logger.info(f"Extension {identifier} {'enabled' if enabled else 'disabled'}")
        return record

    async def update_author_name(self, identifier: str, author_name: str) -> None:
        """Rename the author in the descriptors, extensions.json and the record."""
        identifier = require_identifier(identifier)
        if not author_name:
            return

        async with self._locked(identifier):
            live_dir = self.extension_dir(identifier)
            if not live_dir.is_dir():
                logger.warning(f"Extension directory not found: {live_dir}")
                return

            await asyncio.to_thread(apply_author_name, live_dir, author_name)
            self.config_store.update_author_name(identifier, author_name)

            record = self.records.find_by_identifier(identifier)
            if record is not None:
                author = record.author.model_copy(update={"name": author_name})
                self.records.update(
                    record.model_copy(update={"author": author, "updated_at": datetime.now(UTC)})
                )

    def list_installed(self) -> List[ExtensionRecord]:
        """All installed extension records."""
        return self.records.list_all()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _resolve_latest_version(self, identifier: str) -> str:
        versions = await self.registry.get_versions(identifier)
        if not versions:
            raise VersionNotFoundError(
                "No available version found for this extension",
                {"identifier": identifier},
            )
        return versions[0].version

    @asynccontextmanager
    async def _staged_download(self, archive: Path) -> AsyncIterator[Path]:
        try:
            async with self.stager.stage(archive, PACKAGE_MARKERS) as staged_root:
                yield staged_root
        except InvalidPackageStructureError as e:
            # A corrupt download must not be served from the cache again
            if e.details.get("corrupt_archive"):
                self.cache.evict(archive)
            raise

    async def _rollback(self, identifier: str, written: _Written) -> None:
        logger.warning(f"Rolling back partial operation for {identifier}")

        if written.assets:
            await self.publisher.retract(identifier)

        if written.config_entry:
            try:
                self.config_store.remove_entry(identifier)
            except Exception as e:
                logger.error(f"Rollback failed to remove config entry of {identifier}: {e}")

        if written.record:
            try:
                self.records.delete(identifier)
            except Exception as e:
                logger.error(f"Rollback failed to delete record of {identifier}: {e}")

        if written.live_dir:
            live_dir = self.extension_dir(identifier)
            try:
                await asyncio.to_thread(remove_tree, live_dir)
            except OSError as e:
                logger.error(f"Rollback failed to remove {live_dir}: {e}")

    @staticmethod
    def _record_from_detail(
        identifier: str, version: str, detail: ExtensionDetail
    ) -> ExtensionRecord:
        return ExtensionRecord(
            identifier=identifier,
            name=detail.name,
            version=version,
            description=detail.description,
            icon=detail.icon,
            type=detail.type,
            supported_terminals=list(detail.supported_terminals),
            author=detail.author,
            homepage=detail.homepage,
            documentation=detail.content,
            status=ExtensionStatus.ENABLED,
            origin=ExtensionOrigin.MARKET,
        )

    @staticmethod
    def _config_entry(record: ExtensionRecord) -> ConfigEntry:
        return ConfigEntry(
            manifest=ConfigManifest(
                identifier=record.identifier,
                name=record.name,
                version=record.version,
                description=record.description,
                author=record.author,
            ),
            is_local=record.is_local,
            enabled=record.status == ExtensionStatus.ENABLED,
        )
