"""
Collaborator Interfaces

Abstract boundaries of the services the lifecycle orchestrator drives but does
not own: the package registry, the metadata store, the extensions config file,
the per-extension schema manager and the host process manager.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..core.models import (
    ConfigEntry,
    DownloadMode,
    DownloadTicket,
    ExtensionDetail,
    ExtensionRecord,
    ReloadResult,
    VersionInfo,
)


class ExtensionRegistry(ABC):
    """Remote package registry."""

    @abstractmethod
    async def get_versions(self, identifier: str) -> List[VersionInfo]:
        """Published versions, newest first."""

    @abstractmethod
    async def get_download_url(
        self, identifier: str, version: str, mode: DownloadMode
    ) -> DownloadTicket:
        """Issue a download URL for one version."""

    @abstractmethod
    async def get_detail(self, identifier: str) -> ExtensionDetail:
        """Descriptive metadata for an extension."""

    @abstractmethod
    async def notify_uninstall(self, identifier: str, version: str) -> None:
        """Report an uninstall back to the registry."""


class RecordStore(ABC):
    """Persistence of ExtensionRecord, unique on identifier."""

    @abstractmethod
    def create(self, record: ExtensionRecord) -> ExtensionRecord:
        ...

    @abstractmethod
    def update(self, record: ExtensionRecord) -> ExtensionRecord:
        ...

    @abstractmethod
    def delete(self, identifier: str) -> bool:
        ...

    @abstractmethod
    def find_by_identifier(self, identifier: str) -> Optional[ExtensionRecord]:
        ...

    @abstractmethod
    def list_all(self) -> List[ExtensionRecord]:
        ...


class ConfigStore(ABC):
    """The extensions.json document read by the host at boot."""

    @abstractmethod
    def add_entry(
        self, identifier: str, entry: ConfigEntry, section: str = "applications"
    ) -> None:
        ...

    @abstractmethod
    def remove_entry(self, identifier: str) -> bool:
        ...

    @abstractmethod
    def set_enabled(self, identifier: str, enabled: bool) -> bool:
        ...

    @abstractmethod
    def update_author_name(self, identifier: str, author_name: str) -> bool:
        ...

    @abstractmethod
    def read(self) -> Optional[Dict[str, Any]]:
        ...


class SchemaManager(ABC):
    """Per-extension database schemas."""

    @abstractmethod
    async def schema_exists(self, name: str) -> bool:
        ...

    @abstractmethod
    async def drop_schema(self, name: str) -> None:
        ...


class ProcessManager(ABC):
    """Control surface of the host process manager."""

    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    async def reload(self, app_name: Optional[str] = None) -> ReloadResult:
        """Zero-downtime restart of the host; never raises."""
