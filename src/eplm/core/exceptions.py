"""
EPLM Exception Hierarchy

Defines the exception hierarchy shared by the lifecycle components and their
collaborators.
"""

from typing import Any, Dict, Optional


class EPLMException(Exception):
    """Base exception for all EPLM errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ValidationError(EPLMException):
    """Invalid caller input (empty identifier, malformed request)."""

    pass


class ConfigurationError(EPLMException):
    """Configuration-related errors."""

    pass


class StorageError(EPLMException):
    """Metadata store or config file read/write errors."""

    pass


class RegistryError(EPLMException):
    """Remote package registry errors."""

    pass


class SchemaError(EPLMException):
    """Per-extension database schema errors."""

    pass


class CommandError(EPLMException):
    """External command (dependency install, build) exited unsuccessfully."""

    pass


class LifecycleError(EPLMException):
    """Fatal error that aborts an install, upgrade, scaffold or uninstall."""

    pass


class DownloadFailedError(LifecycleError):
    """The package archive could not be fetched."""

    pass


class InvalidPackageStructureError(LifecycleError):
    """The package is missing its required marker directories or files."""

    pass


class AlreadyExistsError(LifecycleError):
    """Install or scaffold target is already present."""

    pass


class NotFoundError(LifecycleError):
    """Upgrade, uninstall or toggle target is absent."""

    pass


class VersionNotFoundError(LifecycleError):
    """The registry lists no version for the extension."""

    pass


class TemplateNotFoundError(LifecycleError):
    """The starter template archive is missing."""

    pass


class AssetPublishError(LifecycleError):
    """Public web assets could not be copied into the shared public directory."""

    pass


class DependencyInstallError(LifecycleError):
    """Shared dependency installation failed."""

    pass


class BuildFailedError(LifecycleError):
    """Building a scaffolded extension in place failed."""

    pass
