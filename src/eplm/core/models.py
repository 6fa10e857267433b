"""
EPLM Core Data Models

Defines the data structures exchanged between the lifecycle orchestrator, its
components and the external collaborators.
"""

import uuid
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExtensionStatus(str, Enum):
    """Whether the host loads the extension."""

    ENABLED = "enabled"
    DISABLED = "disabled"


class ExtensionOrigin(str, Enum):
    """Where an installed extension came from."""

    LOCAL = "local"
    MARKET = "market"


class DownloadMode(str, Enum):
    """Download intent reported to the registry and used for promotion."""

    INSTALL = "install"
    UPGRADE = "upgrade"


class ExtensionAuthor(BaseModel):
    """Extension author as stored in descriptors and extensions.json."""

    avatar: str = Field(default="", description="Avatar URL")
    name: str = Field(default="", description="Display name")
    homepage: str = Field(default="", description="Author homepage")

    @classmethod
    def normalize(cls, value: Any) -> "ExtensionAuthor":
        """Coerce a registry/descriptor author (object, string or None)."""
        if isinstance(value, ExtensionAuthor):
            return value
        if isinstance(value, dict):
            return cls(
                avatar=value.get("avatar") or "",
                name=value.get("name") or "",
                homepage=value.get("homepage") or "",
            )
        if isinstance(value, str):
            return cls(name=value)
        return cls()


class ExtensionRecord(BaseModel):
    """Persistent metadata for one installed extension."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4, description="Record ID")
    identifier: str = Field(description="Stable extension identifier")
    name: str = Field(default="", description="Display name")
    version: str = Field(description="Installed version")
    description: str = Field(default="", description="Extension description")
    icon: Optional[str] = Field(default=None, description="Icon URL")
    type: Optional[str] = Field(default=None, description="Extension type")
    supported_terminals: List[str] = Field(
        default_factory=list, description="Terminals the extension supports"
    )
    author: ExtensionAuthor = Field(default_factory=ExtensionAuthor)
    homepage: Optional[str] = Field(default=None, description="Project homepage")
    documentation: Optional[str] = Field(default=None, description="Documentation")
    status: ExtensionStatus = Field(default=ExtensionStatus.ENABLED)
    origin: ExtensionOrigin = Field(default=ExtensionOrigin.MARKET)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Creation timestamp"
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Last update timestamp"
    )

    @field_validator("identifier")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Extension identifier cannot be empty")
        return v

    @property
    def is_local(self) -> bool:
        return self.origin == ExtensionOrigin.LOCAL


class ExtensionDetail(BaseModel):
    """Descriptive metadata returned by the registry."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    identifier: str
    name: str = ""
    description: str = ""
    icon: Optional[str] = None
    type: Optional[str] = None
    supported_terminals: List[str] = Field(
        default_factory=list, alias="supportTerminal"
    )
    author: ExtensionAuthor = Field(default_factory=ExtensionAuthor)
    homepage: Optional[str] = None
    content: Optional[str] = Field(default=None, description="Documentation body")

    @field_validator("author", mode="before")
    @classmethod
    def coerce_author(cls, v: Any) -> ExtensionAuthor:
        return ExtensionAuthor.normalize(v)

    @field_validator("supported_terminals", mode="before")
    @classmethod
    def coerce_terminals(cls, v: Any) -> List[str]:
        if v is None:
            return []
        return [str(item) for item in v]


class VersionInfo(BaseModel):
    """One published version of an extension."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: str
    explain: str = ""
    created_at: Optional[str] = Field(default=None, alias="createdAt")


class DownloadTicket(BaseModel):
    """Signed download location handed out by the registry."""

    model_config = ConfigDict(extra="ignore")

    url: str
    version: Optional[str] = None
    explain: str = ""


class CreateExtensionRequest(BaseModel):
    """Parameters for scaffolding a local extension from the starter template."""

    name: str = Field(min_length=1, max_length=100)
    identifier: str = Field(min_length=1, max_length=100)
    version: str = Field(default="0.0.1", max_length=20)
    description: str = ""
    icon: Optional[str] = None
    type: Optional[str] = None
    supported_terminals: List[str] = Field(default_factory=list)
    author: ExtensionAuthor = Field(default_factory=ExtensionAuthor)
    homepage: str = ""
    documentation: Optional[str] = None

    @field_validator("name", "identifier")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Value cannot be blank")
        return v


class ConfigManifest(BaseModel):
    """Manifest block of an extensions.json entry."""

    identifier: str
    name: str = ""
    version: str
    description: str = ""
    author: ExtensionAuthor = Field(default_factory=ExtensionAuthor)

    @field_validator("author", mode="before")
    @classmethod
    def coerce_author(cls, v: Any) -> ExtensionAuthor:
        return ExtensionAuthor.normalize(v)


class ConfigEntry(BaseModel):
    """One extension entry in extensions.json."""

    model_config = ConfigDict(populate_by_name=True)

    manifest: ConfigManifest
    is_local: bool = Field(default=False, alias="isLocal")
    enabled: bool = True
    installed_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), alias="installedAt"
    )

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ReloadResult(BaseModel):
    """Outcome of a process manager operation."""

    success: bool
    message: Optional[str] = None


class InstallMarker(BaseModel):
    """Contents of ``data/.installed`` written after first-install seeding."""

    installed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    version: str
    identifier: str
