"""
EPLM Storage

Extension metadata records, the extensions.json config file and per-extension
database schemas.
"""

from .config_file import ExtensionsConfigFile
from .records import SQLiteRecordStore
from .schemas import PostgresSchemaManager

__all__ = [
    "ExtensionsConfigFile",
    "SQLiteRecordStore",
    "PostgresSchemaManager",
]
