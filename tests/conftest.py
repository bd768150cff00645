"""Shared fixtures for Merlin tests."""

import copy
from typing import Any

import pytest

from merlin import Merlin
from merlin.persistence import MemoryDriver


class RecordingDriver:
    """Driver that records every call and serves canned results.

    ``records`` are returned by find(), ``count_value`` by count(),
    update() and remove(). Inserted records get sequential ids.
    """

    def __init__(self, records: list[dict[str, Any]] | None = None, count_value: int = 0):
        self.records = list(records or [])
        self.count_value = count_value
        self.calls: list[tuple[Any, ...]] = []
        self.inserted: list[dict[str, Any]] = []
        self.id_key = "id"
        self._next_id = 1

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]

    async def connect(self, url=None, opts=None):
        self.calls.append(("connect", url, opts))
        self.id_key = (opts or {}).get("idKey", self.id_key)

    async def disconnect(self):
        self.calls.append(("disconnect",))

    async def index(self, collection, opts, field_path):
        self.calls.append(("index", collection, opts, field_path))

    async def count(self, collection, opts, query):
        self.calls.append(("count", collection, opts, query))
        yield self.count_value

    async def find(self, collection, opts, query):
        self.calls.append(("find", collection, opts, query))
        for record in copy.deepcopy(self.records):
            yield record

    def insert(self, collection, opts):
        self.calls.append(("insert", collection, opts))

        async def transform(records):
            async for record in records:
                document = dict(record)
                if document.get(self.id_key) is None:
                    document[self.id_key] = f"id-{self._next_id}"
                    self._next_id += 1
                self.inserted.append(document)
                yield dict(document)

        return transform

    async def update(self, collection, opts, query, delta):
        self.calls.append(("update", collection, opts, query, delta))
        yield self.count_value

    async def remove(self, collection, opts, query):
        self.calls.append(("remove", collection, opts, query))
        yield self.count_value


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def recording_driver():
    return RecordingDriver()


@pytest.fixture
def recording_merlin(recording_driver):
    """Orchestrator backed by a RecordingDriver."""
    merlin = Merlin()
    merlin.set_driver(recording_driver)
    return merlin


@pytest.fixture
def memory_merlin():
    """Orchestrator backed by a fresh MemoryDriver."""
    merlin = Merlin()
    merlin.set_driver(MemoryDriver)
    return merlin
