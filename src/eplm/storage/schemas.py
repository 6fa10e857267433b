"""
Extension Schema Manager

Checks for and drops the private PostgreSQL schema each extension owns.
"""

import asyncio
from typing import Any, Callable, Optional

import psycopg2
from psycopg2 import sql

from ..core.exceptions import SchemaError
from ..core.logging import get_logger
from ..lifecycle.interfaces import SchemaManager

logger = get_logger(__name__)


class PostgresSchemaManager(SchemaManager):
    """Per-extension schemas in PostgreSQL, queried off the event loop"""

    def __init__(self, dsn: str, connect: Optional[Callable[[str], Any]] = None):
        """
        Initialize schema manager

        Args:
            dsn: PostgreSQL connection string
            connect: Connection factory (``psycopg2.connect`` by default)
        """
        self.dsn = dsn
        self._connect = connect or psycopg2.connect

    def _execute(self, query: Any, params: Optional[tuple] = None, fetch: bool = False) -> Any:
        conn = self._connect(self.dsn)
        try:
            with conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, params)
                    return cursor.fetchone() if fetch else None
        except psycopg2.Error as e:
            raise SchemaError(f"Schema query failed: {e}")
        finally:
            conn.close()

    async def schema_exists(self, name: str) -> bool:
        row = await asyncio.to_thread(
            self._execute,
            "SELECT 1 FROM information_schema.schemata WHERE schema_name = %s",
            (name,),
            True,
        )
        return row is not None

    async def drop_schema(self, name: str) -> None:
        """Drop a schema and everything in it."""
        query = sql.SQL("DROP SCHEMA IF EXISTS {} CASCADE").format(sql.Identifier(name))
        await asyncio.to_thread(self._execute, query)
        logger.info(f"Dropped schema: {name}")
