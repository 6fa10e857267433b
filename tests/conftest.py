"""
Pytest configuration and shared fixtures for EPLM tests.
"""

import json
import tempfile
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Tuple

import pytest

from eplm.core.config import EPLMConfig
from eplm.core.exceptions import (
    AlreadyExistsError,
    BuildFailedError,
    DependencyInstallError,
    StorageError,
)
from eplm.core.models import (
    DownloadMode,
    DownloadTicket,
    ExtensionDetail,
    ExtensionRecord,
    ReloadResult,
    VersionInfo,
)
from eplm.lifecycle.commands import ExtensionTooling
from eplm.lifecycle.interfaces import (
    ExtensionRegistry,
    ProcessManager,
    RecordStore,
    SchemaManager,
)
from eplm.lifecycle.orchestrator import LifecycleOrchestrator
from eplm.lifecycle.reload import ReloadScheduler
from eplm.packages.cache import PackageCache
from eplm.storage.config_file import ExtensionsConfigFile


# ----------------------------------------------------------------------
# Archive builders
# ----------------------------------------------------------------------


def build_zip(path: Path, files: Dict[str, Any], prefix: str = "") -> Path:
    """Write a zip archive holding files (name -> str/bytes), optionally wrapped in prefix/."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            if isinstance(content, str):
                content = content.encode("utf-8")
            zf.writestr(f"{prefix}{name}", content)
    return path


def package_files(
    version: str = "1.0.0",
    with_build: bool = True,
    with_public: bool = True,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """File set of a built extension package."""
    files: Dict[str, Any] = {
        "manifest.json": json.dumps({"version": version}),
    }
    if with_build:
        files["build/main.js"] = f"// backend {version}"
    if with_public:
        files[".output/public/index.html"] = f"<html>{version}</html>"
    files.update(extra or {})
    return files


def template_files() -> Dict[str, Any]:
    """File set of the starter template."""
    return {
        "package.json": json.dumps({"name": "starter", "version": "0.0.0", "author": "x"}),
        "manifest.json": json.dumps(
            {
                "identifier": "starter",
                "name": "Starter",
                "version": "0.0.0",
                "author": {"avatar": "", "name": "x", "homepage": ""},
            }
        ),
        "src/index.ts": "export {};",
    }


# ----------------------------------------------------------------------
# Fake collaborators
# ----------------------------------------------------------------------


class FakeRegistry(ExtensionRegistry):
    """In-memory registry with newest-first version lists."""

    def __init__(self) -> None:
        self.versions: Dict[str, List[str]] = {}
        self.details: Dict[str, Dict[str, Any]] = {}
        self.download_requests: List[Tuple[str, str, DownloadMode]] = []
        self.uninstall_notifications: List[Tuple[str, str]] = []
        self.fail_notify = False

    def publish(self, identifier: str, *versions: str, **detail: Any) -> None:
        self.versions[identifier] = list(versions)
        self.details[identifier] = {"identifier": identifier, **detail}

    async def get_versions(self, identifier: str) -> List[VersionInfo]:
        return [VersionInfo(version=v) for v in self.versions.get(identifier, [])]

    async def get_download_url(
        self, identifier: str, version: str, mode: DownloadMode
    ) -> DownloadTicket:
        self.download_requests.append((identifier, version, mode))
        return DownloadTicket(
            url=f"http://registry.test/files/{identifier}-{version}.zip", version=version
        )

    async def get_detail(self, identifier: str) -> ExtensionDetail:
        data = self.details.get(identifier, {"identifier": identifier})
        return ExtensionDetail.model_validate(data)

    async def notify_uninstall(self, identifier: str, version: str) -> None:
        if self.fail_notify:
            raise RuntimeError("registry offline")
        self.uninstall_notifications.append((identifier, version))


class FakeFetcher:
    """Serves archives from memory through the real package cache."""

    def __init__(self, cache: PackageCache) -> None:
        self.cache = cache
        self.archives: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.prefixes: Dict[Tuple[str, str], str] = {}
        self.raw: Dict[Tuple[str, str], bytes] = {}
        self.downloads: List[Tuple[str, str]] = []

    def add(self, identifier: str, version: str, files: Dict[str, Any], prefix: str = "") -> None:
        self.archives[(identifier, version)] = files
        self.prefixes[(identifier, version)] = prefix

    async def fetch(self, url: str, identifier: str, version: str) -> Path:
        cached = self.cache.resolve(identifier, version)
        if cached:
            return cached

        self.downloads.append((identifier, version))
        target = self.cache.target_for(identifier, version, url.rsplit("/", 1)[-1])
        key = (identifier, version)
        if key in self.raw:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(self.raw[key])
            return target
        return build_zip(target, self.archives[key], self.prefixes.get(key, ""))


class InMemoryRecordStore(RecordStore):
    def __init__(self) -> None:
        self.records: Dict[str, ExtensionRecord] = {}
        self.fail_create = False

    def create(self, record: ExtensionRecord) -> ExtensionRecord:
        if self.fail_create:
            raise StorageError("database unavailable")
        if record.identifier in self.records:
            raise AlreadyExistsError(f"Extension {record.identifier} already exists")
        self.records[record.identifier] = record
        return record

    def update(self, record: ExtensionRecord) -> ExtensionRecord:
        if record.identifier not in self.records:
            raise StorageError(f"Extension record not found: {record.identifier}")
        self.records[record.identifier] = record
        return record

    def delete(self, identifier: str) -> bool:
        return self.records.pop(identifier, None) is not None

    def find_by_identifier(self, identifier: str) -> Optional[ExtensionRecord]:
        return self.records.get(identifier)

    def list_all(self) -> List[ExtensionRecord]:
        return list(self.records.values())


class FakeSchemaManager(SchemaManager):
    def __init__(self) -> None:
        self.existing: set = set()
        self.dropped: List[str] = []
        self.fail_drop = False

    async def schema_exists(self, name: str) -> bool:
        return name in self.existing

    async def drop_schema(self, name: str) -> None:
        if self.fail_drop:
            raise RuntimeError("permission denied for schema")
        self.existing.discard(name)
        self.dropped.append(name)


class FakeProcessManager(ProcessManager):
    def __init__(self, available: bool = True, succeed: bool = True) -> None:
        self.available = available
        self.succeed = succeed
        self.reload_calls: List[Optional[str]] = []

    def is_available(self) -> bool:
        return self.available

    async def reload(self, app_name: Optional[str] = None) -> ReloadResult:
        self.reload_calls.append(app_name)
        if self.succeed:
            return ReloadResult(success=True, message="reloaded")
        return ReloadResult(success=False, message="process not found")


class FakeTooling(ExtensionTooling):
    """Records tool invocations; builds produce the package markers."""

    def __init__(self, root_dir: Path) -> None:
        super().__init__(root_dir)
        self.install_calls = 0
        self.build_calls: List[Path] = []
        self.fail_install = False
        self.fail_build = False

    async def install_dependencies(self) -> None:
        self.install_calls += 1
        if self.fail_install:
            raise DependencyInstallError("Failed to install dependencies: exit 1")

    async def build_extension(self, extension_dir: Path) -> None:
        self.build_calls.append(Path(extension_dir))
        if self.fail_build:
            raise BuildFailedError("Failed to build extension: exit 1")
        (extension_dir / "build").mkdir(exist_ok=True)
        public = extension_dir / ".output" / "public"
        public.mkdir(parents=True, exist_ok=True)
        (public / "index.html").write_text("<html>built</html>")


class _FakeHandle:
    def __init__(self, clock: "FakeClock", due: float, callback: Callable[[], None]) -> None:
        self.clock = clock
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Manually advanced replacement for loop.call_later."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: List[_FakeHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> _FakeHandle:
        handle = _FakeHandle(self, self.now + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[_FakeHandle]:
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        for handle in list(self.handles):
            if not handle.cancelled and handle.due <= self.now:
                self.handles.remove(handle)
                handle.callback()


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def test_config(temp_dir: Path) -> EPLMConfig:
    """Provide a test configuration rooted in temp_dir."""
    return EPLMConfig(
        environment="test",
        debug=True,
        paths={"root_dir": temp_dir},
        database={"records_path": str(temp_dir / "storage" / "eplm.db")},
        logging={"level": "DEBUG"},
    )


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def records() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def config_store(test_config: EPLMConfig) -> ExtensionsConfigFile:
    return ExtensionsConfigFile(test_config.paths.config_file)


@pytest.fixture
def schema_manager() -> FakeSchemaManager:
    return FakeSchemaManager()


@pytest.fixture
def process_manager() -> FakeProcessManager:
    return FakeProcessManager()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reload_scheduler(process_manager: FakeProcessManager, clock: FakeClock) -> ReloadScheduler:
    return ReloadScheduler(
        process_manager, debounce_ms=3000, app_name="host-api", timer_factory=clock.call_later
    )


@pytest.fixture
def tooling(temp_dir: Path) -> FakeTooling:
    return FakeTooling(temp_dir)


@pytest.fixture
def fetcher(test_config: EPLMConfig) -> FakeFetcher:
    return FakeFetcher(PackageCache(test_config.paths.temp_dir))


@pytest.fixture
def orchestrator(
    test_config: EPLMConfig,
    registry: FakeRegistry,
    records: InMemoryRecordStore,
    config_store: ExtensionsConfigFile,
    reload_scheduler: ReloadScheduler,
    schema_manager: FakeSchemaManager,
    tooling: FakeTooling,
    fetcher: FakeFetcher,
) -> LifecycleOrchestrator:
    """Orchestrator wired to fakes, a real config file and the real package pipeline."""
    return LifecycleOrchestrator(
        config=test_config,
        registry=registry,
        records=records,
        config_store=config_store,
        reload_scheduler=reload_scheduler,
        schema_manager=schema_manager,
        tooling=tooling,
        fetcher=fetcher,
    )


class ArchiveKit:
    """Archive builders exposed to test modules."""

    build_zip = staticmethod(build_zip)
    package_files = staticmethod(package_files)
    template_files = staticmethod(template_files)


@pytest.fixture
def archives() -> ArchiveKit:
    return ArchiveKit()
