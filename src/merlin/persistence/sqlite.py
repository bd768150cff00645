"""SQLite driver.

Stores each collection as a table of JSON documents::

    CREATE TABLE "users" (id TEXT PRIMARY KEY, doc TEXT NOT NULL)

Filtering happens in process through ``Query``; indexes are created on
``json_extract`` expressions so other tools querying the file benefit.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import uuid
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from merlin.delta import Delta
from merlin.persistence.driver import InsertTransform
from merlin.query import Query

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_FIELD_PATH = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*(\.[A-Za-z_$][A-Za-z0-9_$]*)*$")


class SQLiteDriver:
    """Simple SQLite document driver."""

    def __init__(self, db_path: Path | str = ":memory:", id_key: str = "id"):
        self.db_path = str(db_path)
        self.id_key = id_key
        self.conn: sqlite3.Connection | None = None
        self._tables: set[str] = set()

    async def connect(self, url: str | None = None, opts: dict[str, Any] | None = None) -> None:
        """Open the database file.

        Args:
            url: Optional ``sqlite:///path`` URL overriding the constructor path
            opts: ``idKey`` overrides the id field name
        """
        opts = opts or {}
        if url:
            self.db_path = sqlite_path(url)
        self.id_key = opts.get("idKey", self.id_key)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._tables = set()
        logger.info("Connected to SQLite database %s", self.db_path)

    async def disconnect(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def _connection(self) -> sqlite3.Connection:
        if not self.conn:
            raise RuntimeError("Database not connected")
        return self.conn

    def _table(self, collection: str) -> str:
        """Quoted table name, creating the table on first use."""
        if not _IDENTIFIER.match(collection):
            raise ValueError(f"Invalid collection name: {collection}")
        table = f'"{collection}"'
        if collection not in self._tables:
            conn = self._connection()
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {table} (id TEXT PRIMARY KEY, doc TEXT NOT NULL)"
            )
            conn.commit()
            self._tables.add(collection)
        return table

    def _documents(self, collection: str) -> list[dict[str, Any]]:
        table = self._table(collection)
        cursor = self._connection().execute(f"SELECT doc FROM {table} ORDER BY rowid")
        return [json.loads(row[0]) for row in cursor.fetchall()]

    def _matching(self, collection: str, query: Query) -> list[dict[str, Any]]:
        return query.apply(self._documents(collection))

    async def index(self, collection: str, opts: dict[str, Any] | None, field_path: str) -> None:
        if not _FIELD_PATH.match(field_path):
            raise ValueError(f"Invalid field path: {field_path}")
        table = self._table(collection)
        name = f'"ix_{collection}_{field_path.replace(".", "_").replace("$", "_")}"'
        unique = "UNIQUE " if (opts or {}).get("unique") else ""
        conn = self._connection()
        conn.execute(
            f"CREATE {unique}INDEX IF NOT EXISTS {name} "
            f"ON {table} (json_extract(doc, '$.{field_path}'))"
        )
        conn.commit()

    async def count(
        self, collection: str, opts: dict[str, Any], query: Query
    ) -> AsyncIterator[int]:
        yield len(self._matching(collection, query))

    async def find(
        self, collection: str, opts: dict[str, Any], query: Query
    ) -> AsyncIterator[dict[str, Any]]:
        for document in self._matching(collection, query):
            yield document

    def insert(self, collection: str, opts: dict[str, Any]) -> InsertTransform:
        async def transform(
            records: AsyncIterator[dict[str, Any]],
        ) -> AsyncIterator[dict[str, Any]]:
            table = self._table(collection)
            conn = self._connection()
            async for record in records:
                document = dict(record)
                if document.get(self.id_key) is None:
                    document[self.id_key] = uuid.uuid4().hex
                conn.execute(
                    f"INSERT INTO {table} (id, doc) VALUES (?, ?)",
                    [str(document[self.id_key]), json.dumps(document, default=str)],
                )
                conn.commit()
                yield document

        return transform

    async def update(
        self, collection: str, opts: dict[str, Any], query: Query, delta: Delta
    ) -> AsyncIterator[int]:
        table = self._table(collection)
        conn = self._connection()
        matched = self._matching(collection, query)
        for document in matched:
            patched = delta.patch(document)
            conn.execute(
                f"UPDATE {table} SET id = ?, doc = ? WHERE id = ?",
                [
                    str(patched[self.id_key]),
                    json.dumps(patched, default=str),
                    str(document[self.id_key]),
                ],
            )
        conn.commit()
        yield len(matched)

    async def remove(
        self, collection: str, opts: dict[str, Any], query: Query
    ) -> AsyncIterator[int]:
        table = self._table(collection)
        conn = self._connection()
        matched = self._matching(collection, query)
        conn.executemany(
            f"DELETE FROM {table} WHERE id = ?",
            [[str(document[self.id_key])] for document in matched],
        )
        conn.commit()
        yield len(matched)


def sqlite_path(url: str) -> str:
    """Extract the file path from ``sqlite:///path``; empty means in-memory."""
    path = url.replace("sqlite:///", "", 1) if url.startswith("sqlite:///") else url
    return path or ":memory:"
