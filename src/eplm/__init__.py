"""
EPLM - Extension Package Lifecycle Manager

Installs, upgrades, scaffolds and uninstalls extension packages of a host
application and reloads the host once they change.
"""

__version__ = "0.1.0"

from .core.config import EPLMConfig, get_config
from .core.exceptions import EPLMException, LifecycleError
from .lifecycle.orchestrator import LifecycleOrchestrator
from .lifecycle.reload import ReloadScheduler

__all__ = [
    "EPLMConfig",
    "get_config",
    "EPLMException",
    "LifecycleError",
    "LifecycleOrchestrator",
    "ReloadScheduler",
]
