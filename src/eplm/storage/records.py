"""
Extension Record Store

SQLite persistence of installed extension metadata, unique on identifier.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from ..core.exceptions import AlreadyExistsError, StorageError
from ..core.logging import get_logger
from ..core.models import ExtensionAuthor, ExtensionRecord
from ..lifecycle.interfaces import RecordStore

logger = get_logger(__name__)

_COLUMNS = (
    "id, identifier, name, version, description, icon, type, supported_terminals_json, "
    "author_json, homepage, documentation, status, origin, created_at, updated_at"
)


class SQLiteRecordStore(RecordStore):
    """
    SQLite-backed store for ExtensionRecord.

    The database file and its parent directory are created on first use and
    the schema is brought up to date through numbered migrations.
    """

    def __init__(self, db_path: Path) -> None:
        """
        Initialize the record store.

        Args:
            db_path: SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_database()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection, committing on success."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _initialize_database(self) -> None:
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INTEGER PRIMARY KEY,
                        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """
                )
                cursor = conn.execute("SELECT MAX(version) as version FROM schema_version")
                current_version = cursor.fetchone()["version"] or 0
                self._apply_migrations(conn, current_version)

            logger.debug(f"Extension record store initialized at {self.db_path}")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize record store: {e}")

    def _apply_migrations(self, conn: sqlite3.Connection, current_version: int) -> None:
        migrations = [
            # Migration 1: Initial schema
            """
            CREATE TABLE IF NOT EXISTS extensions (
                id TEXT PRIMARY KEY,
                identifier TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL DEFAULT '',
                version TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                icon TEXT NULL,
                type TEXT NULL,
                supported_terminals_json TEXT NOT NULL DEFAULT '[]',
                author_json TEXT NOT NULL DEFAULT '{}',
                homepage TEXT NULL,
                documentation TEXT NULL,
                status TEXT NOT NULL,
                origin TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_extensions_status ON extensions (status);
            """,
        ]

        for i, migration in enumerate(migrations, 1):
            if i > current_version:
                try:
                    conn.executescript(migration)
                    conn.execute("INSERT INTO schema_version (version) VALUES (?)", (i,))
                    logger.info(f"Applied migration {i}")
                except sqlite3.Error as e:
                    raise StorageError(f"Failed to apply migration {i}: {e}")

    @staticmethod
    def _to_row(record: ExtensionRecord) -> tuple:
        return (
            str(record.id),
            record.identifier,
            record.name,
            record.version,
            record.description,
            record.icon,
            record.type,
            json.dumps(record.supported_terminals),
            json.dumps(record.author.model_dump()),
            record.homepage,
            record.documentation,
            record.status.value,
            record.origin.value,
            record.created_at.isoformat(),
            record.updated_at.isoformat(),
        )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> ExtensionRecord:
        return ExtensionRecord(
            id=row["id"],
            identifier=row["identifier"],
            name=row["name"],
            version=row["version"],
            description=row["description"],
            icon=row["icon"],
            type=row["type"],
            supported_terminals=json.loads(row["supported_terminals_json"]),
            author=ExtensionAuthor.normalize(json.loads(row["author_json"])),
            homepage=row["homepage"],
            documentation=row["documentation"],
            status=row["status"],
            origin=row["origin"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def create(self, record: ExtensionRecord) -> ExtensionRecord:
        """
        Insert a new record.

        Raises:
            AlreadyExistsError: If a record with the same identifier exists
            StorageError: On any other database failure
        """
        try:
            with self._get_connection() as conn:
                conn.execute(
                    f"INSERT INTO extensions ({_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    self._to_row(record),
                )
        except sqlite3.IntegrityError as e:
            raise AlreadyExistsError(
                f"Extension {record.identifier} already exists",
                {"identifier": record.identifier, "error": str(e)},
            )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to create record for {record.identifier}: {e}")

        logger.info(f"Created extension record: {record.identifier}@{record.version}")
        return record

    def update(self, record: ExtensionRecord) -> ExtensionRecord:
        """
        Replace the stored fields of an existing record.

        Raises:
            StorageError: If no record matches or the update fails
        """
        row = self._to_row(record)
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    """
                    UPDATE extensions SET
                        id = ?, name = ?, version = ?, description = ?, icon = ?,
                        type = ?, supported_terminals_json = ?, author_json = ?,
                        homepage = ?, documentation = ?, status = ?, origin = ?,
                        created_at = ?, updated_at = ?
                    WHERE identifier = ?
                """,
                    (row[0],) + row[2:] + (record.identifier,),
                )
                if cursor.rowcount == 0:
                    raise StorageError(f"Extension record not found: {record.identifier}")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to update record for {record.identifier}: {e}")

        return record

    def delete(self, identifier: str) -> bool:
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM extensions WHERE identifier = ?", (identifier,)
                )
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete record for {identifier}: {e}")

        if deleted:
            logger.info(f"Deleted extension record: {identifier}")
        return deleted

    def find_by_identifier(self, identifier: str) -> Optional[ExtensionRecord]:
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM extensions WHERE identifier = ?",
                    (identifier,),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to load record for {identifier}: {e}")

        return self._from_row(row) if row else None

    def list_all(self) -> List[ExtensionRecord]:
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    f"SELECT {_COLUMNS} FROM extensions ORDER BY created_at, identifier"
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list extension records: {e}")

        return [self._from_row(row) for row in rows]
