"""
EPLM Integrations

Clients for the remote extension registry and the host process manager.
"""

from .process_manager import Pm2ProcessManager
from .registry import RegistryClient

__all__ = [
    "Pm2ProcessManager",
    "RegistryClient",
]
