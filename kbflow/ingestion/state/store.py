# kbflow/ingestion/state/store.py
"""
SQLite-backed metadata store for FileRecords.

One database file per knowledge base ({base storage dir}/metadata.db) holds
the `file_metadata` table. Every query is additionally scoped by
knowledge_base_id.

Key responsibilities:
- Upsert records by (knowledge_base_id, file_path)
- Lookup/delete by path or by backend handle
- Prefix queries for whole directories

Key non-responsibilities:
- NO backend access (that's the pipeline's job)
- NO diffing logic

The store is not designed for concurrent writers within one knowledge base.
"""

from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import Iterator, List, Optional, Union

from kbflow.core.exceptions import MetadataStoreError
from kbflow.logging.logger import get_logger
from kbflow.logging.tags import STORAGE

from .schema import FileRecord

logger = get_logger(__name__)

TABLE_NAME = "file_metadata"

_COLUMNS = (
    "knowledge_base_id, file_path, content_hash, size, last_modified_timestamp, "
    "external_unique_id, loader_type, created_at, updated_at"
)


def directory_prefix(directory: Union[str, Path]) -> str:
    """
    Normalize a directory path into a record prefix.

    The prefix always ends with the path separator so that /a/b never
    matches /a/bc.
    """
    prefix = str(directory)
    if not prefix.endswith(os.sep):
        prefix = f"{prefix}{os.sep}"
    return prefix


class MetadataStore:
    """
    FileRecord table of one knowledge base.

    Usage:
        store = MetadataStore("my-base", db_path)
        store.upsert(record)
        records = store.list_under("/docs")
        store.close()
    """

    SCHEMA_SQL = f"""
        CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            knowledge_base_id TEXT NOT NULL,
            file_path TEXT NOT NULL,
            content_hash TEXT NOT NULL,
            size INTEGER NOT NULL,
            last_modified_timestamp INTEGER NOT NULL,
            external_unique_id TEXT NOT NULL UNIQUE,
            loader_type TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
            updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
            UNIQUE (knowledge_base_id, file_path)
        );

        CREATE TRIGGER IF NOT EXISTS update_{TABLE_NAME}_updated_at
        AFTER UPDATE ON {TABLE_NAME}
        FOR EACH ROW
        BEGIN
            UPDATE {TABLE_NAME}
            SET updated_at = strftime('%Y-%m-%d %H:%M:%f', 'now')
            WHERE id = OLD.id;
        END;
    """

    def __init__(self, knowledge_base_id: str, db_path: Union[str, Path]) -> None:
        self.knowledge_base_id = knowledge_base_id
        self._path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def db_path(self) -> Path:
        return self._path

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self._path))
                conn.row_factory = sqlite3.Row
                conn.executescript(self.SCHEMA_SQL)
                conn.commit()
            except (sqlite3.Error, OSError) as e:
                raise MetadataStoreError(f"Failed to open metadata store {self._path}: {e}") from e
            self._conn = conn
            logger.debug(f"{STORAGE} Opened metadata store at {self._path}")
        return self._conn

    def initialize(self) -> None:
        """Create the table and trigger if they don't exist."""
        _ = self.conn

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            cursor = self.conn.execute(sql, params)
            self.conn.commit()
            return cursor
        except sqlite3.Error as e:
            self.conn.rollback()
            raise MetadataStoreError(f"Metadata store query failed: {e}") from e

    def _select(self, sql: str, params: tuple = ()) -> List[FileRecord]:
        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise MetadataStoreError(f"Metadata store query failed: {e}") from e
        return [FileRecord(**dict(row)) for row in rows]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert(self, record: FileRecord) -> None:
        """
        Insert or fully replace the record for (knowledge_base_id, file_path).

        created_at survives replacement; updated_at is refreshed by the trigger.
        A stale row of another path holding the same backend handle is dropped:
        handles are issued fresh per add, so the older row is out of date.
        """
        kb_id = self.knowledge_base_id
        try:
            with self.conn:
                stale = self.conn.execute(
                    f"DELETE FROM {TABLE_NAME} "
                    "WHERE knowledge_base_id = ? AND external_unique_id = ? AND file_path != ?",
                    (kb_id, record.external_unique_id, record.file_path),
                )
                if stale.rowcount:
                    logger.warning(
                        f"{STORAGE} Dropped stale record sharing handle "
                        f"{record.external_unique_id} with {record.file_path}"
                    )
                self.conn.execute(
                    f"""
                    INSERT INTO {TABLE_NAME} (
                        knowledge_base_id, file_path, content_hash, size,
                        last_modified_timestamp, external_unique_id, loader_type
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (knowledge_base_id, file_path) DO UPDATE SET
                        content_hash = excluded.content_hash,
                        size = excluded.size,
                        last_modified_timestamp = excluded.last_modified_timestamp,
                        external_unique_id = excluded.external_unique_id,
                        loader_type = excluded.loader_type
                    """,
                    (
                        kb_id,
                        record.file_path,
                        record.content_hash,
                        record.size,
                        record.last_modified_timestamp,
                        record.external_unique_id,
                        record.loader_type,
                    ),
                )
        except sqlite3.Error as e:
            raise MetadataStoreError(f"Failed to upsert {record.file_path}: {e}") from e

    def delete_by_path(self, file_path: str) -> bool:
        """Delete the record of a path. Returns True if a record was removed."""
        cursor = self._execute(
            f"DELETE FROM {TABLE_NAME} WHERE knowledge_base_id = ? AND file_path = ?",
            (self.knowledge_base_id, file_path),
        )
        return cursor.rowcount > 0

    def delete_by_unique_id(self, unique_id: str) -> bool:
        """Delete the record holding a backend handle. Returns True if removed."""
        cursor = self._execute(
            f"DELETE FROM {TABLE_NAME} WHERE knowledge_base_id = ? AND external_unique_id = ?",
            (self.knowledge_base_id, unique_id),
        )
        return cursor.rowcount > 0

    def delete_under(self, directory: Union[str, Path]) -> int:
        """Delete every record under a directory. Returns the number removed."""
        prefix = directory_prefix(directory)
        cursor = self._execute(
            f"DELETE FROM {TABLE_NAME} "
            "WHERE knowledge_base_id = ? AND substr(file_path, 1, length(?)) = ?",
            (self.knowledge_base_id, prefix, prefix),
        )
        logger.debug(f"{STORAGE} Deleted {cursor.rowcount} records under {prefix}")
        return cursor.rowcount

    def clear(self) -> int:
        """Delete every record of this knowledge base. Returns the number removed."""
        cursor = self._execute(
            f"DELETE FROM {TABLE_NAME} WHERE knowledge_base_id = ?",
            (self.knowledge_base_id,),
        )
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_by_path(self, file_path: str) -> Optional[FileRecord]:
        records = self._select(
            f"SELECT {_COLUMNS} FROM {TABLE_NAME} WHERE knowledge_base_id = ? AND file_path = ?",
            (self.knowledge_base_id, file_path),
        )
        return records[0] if records else None

    def get_by_unique_id(self, unique_id: str) -> Optional[FileRecord]:
        records = self._select(
            f"SELECT {_COLUMNS} FROM {TABLE_NAME} "
            "WHERE knowledge_base_id = ? AND external_unique_id = ?",
            (self.knowledge_base_id, unique_id),
        )
        return records[0] if records else None

    def list_under(self, directory: Union[str, Path]) -> List[FileRecord]:
        """All records whose path lies under a directory, ordered by path."""
        prefix = directory_prefix(directory)
        return self._select(
            f"SELECT {_COLUMNS} FROM {TABLE_NAME} "
            "WHERE knowledge_base_id = ? AND substr(file_path, 1, length(?)) = ? "
            "ORDER BY file_path",
            (self.knowledge_base_id, prefix, prefix),
        )

    def list_all(self) -> List[FileRecord]:
        return self._select(
            f"SELECT {_COLUMNS} FROM {TABLE_NAME} WHERE knowledge_base_id = ? ORDER BY file_path",
            (self.knowledge_base_id,),
        )

    def __iter__(self) -> Iterator[FileRecord]:
        return iter(self.list_all())

    def __len__(self) -> int:
        try:
            row = self.conn.execute(
                f"SELECT COUNT(*) FROM {TABLE_NAME} WHERE knowledge_base_id = ?",
                (self.knowledge_base_id,),
            ).fetchone()
        except sqlite3.Error as e:
            raise MetadataStoreError(f"Metadata store query failed: {e}") from e
        return int(row[0])

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "MetadataStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["TABLE_NAME", "MetadataStore", "directory_prefix"]
