"""In-memory driver.

Documents are kept per collection in insertion order and copied on the
way in and out, so callers never share state with the store. Useful for
tests and for inspecting metadata without a database.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import AsyncIterator
from typing import Any

from merlin.delta import Delta
from merlin.persistence.driver import InsertTransform
from merlin.query import Query

logger = logging.getLogger(__name__)


class MemoryDriver:
    """Dict-backed driver."""

    def __init__(self, id_key: str = "id"):
        self.id_key = id_key
        self.collections: dict[str, dict[Any, dict[str, Any]]] = {}
        self.indexes: dict[str, list[str]] = {}
        self.connected = False

    async def connect(self, url: str | None = None, opts: dict[str, Any] | None = None) -> None:
        opts = opts or {}
        self.id_key = opts.get("idKey", self.id_key)
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    def _collection(self, name: str) -> dict[Any, dict[str, Any]]:
        return self.collections.setdefault(name, {})

    def _matching(self, collection: str, query: Query) -> list[dict[str, Any]]:
        return query.apply(self._collection(collection).values())

    async def index(self, collection: str, opts: dict[str, Any] | None, field_path: str) -> None:
        paths = self.indexes.setdefault(collection, [])
        if field_path not in paths:
            paths.append(field_path)

    async def count(
        self, collection: str, opts: dict[str, Any], query: Query
    ) -> AsyncIterator[int]:
        yield len(self._matching(collection, query))

    async def find(
        self, collection: str, opts: dict[str, Any], query: Query
    ) -> AsyncIterator[dict[str, Any]]:
        for document in self._matching(collection, query):
            yield copy.deepcopy(document)

    def insert(self, collection: str, opts: dict[str, Any]) -> InsertTransform:
        async def transform(
            records: AsyncIterator[dict[str, Any]],
        ) -> AsyncIterator[dict[str, Any]]:
            store = self._collection(collection)
            async for record in records:
                document = copy.deepcopy(record)
                if document.get(self.id_key) is None:
                    document[self.id_key] = uuid.uuid4().hex
                store[document[self.id_key]] = document
                logger.debug("Inserted %s into %s", document[self.id_key], collection)
                yield copy.deepcopy(document)

        return transform

    async def update(
        self, collection: str, opts: dict[str, Any], query: Query, delta: Delta
    ) -> AsyncIterator[int]:
        store = self._collection(collection)
        matched = self._matching(collection, query)
        for document in matched:
            patched = delta.patch(document)
            del store[document[self.id_key]]
            store[patched[self.id_key]] = patched
        yield len(matched)

    async def remove(
        self, collection: str, opts: dict[str, Any], query: Query
    ) -> AsyncIterator[int]:
        store = self._collection(collection)
        matched = self._matching(collection, query)
        for document in matched:
            del store[document[self.id_key]]
        yield len(matched)
