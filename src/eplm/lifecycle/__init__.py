"""
EPLM Lifecycle

Install, upgrade, scaffold and uninstall orchestration, debounced host reloads,
external build tooling and first-install seeding.
"""

from .commands import CommandRunner, ExtensionTooling
from .orchestrator import LifecycleOrchestrator
from .reload import ReloadScheduler
from .seeds import SeedRunner

__all__ = [
    "CommandRunner",
    "ExtensionTooling",
    "LifecycleOrchestrator",
    "ReloadScheduler",
    "SeedRunner",
]
