"""
EPLM Core

Configuration, logging, exceptions, data models and naming helpers shared by
every lifecycle component.
"""

from .config import EPLMConfig, get_config, load_config, reload_config
from .exceptions import EPLMException, LifecycleError
from .models import ExtensionRecord, ExtensionStatus, ExtensionOrigin, DownloadMode

__all__ = [
    "EPLMConfig",
    "get_config",
    "load_config",
    "reload_config",
    "EPLMException",
    "LifecycleError",
    "ExtensionRecord",
    "ExtensionStatus",
    "ExtensionOrigin",
    "DownloadMode",
]
