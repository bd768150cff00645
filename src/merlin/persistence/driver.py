"""Driver Protocol — the interface every storage driver implements."""

from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol, runtime_checkable

from merlin.delta import Delta
from merlin.query import Query

InsertTransform = Callable[[AsyncIterator[dict[str, Any]]], AsyncIterator[dict[str, Any]]]


@runtime_checkable
class Driver(Protocol):
    """Interface all storage drivers must implement.

    Reads and writes are asynchronous sequences so results can be streamed:
    ``find`` yields records, ``count``/``update``/``remove`` yield integers
    (summed by the caller), and ``insert`` returns a transform that persists
    each incoming record and yields the stored version (with its id).
    """

    async def connect(self, url: str | None, opts: dict[str, Any]) -> None: ...

    async def disconnect(self) -> None: ...

    async def index(self, collection: str, opts: dict[str, Any], field_path: str) -> None: ...

    def count(
        self, collection: str, opts: dict[str, Any], query: Query
    ) -> AsyncIterator[int]: ...

    def find(
        self, collection: str, opts: dict[str, Any], query: Query
    ) -> AsyncIterator[dict[str, Any]]: ...

    def insert(self, collection: str, opts: dict[str, Any]) -> InsertTransform: ...

    def update(
        self, collection: str, opts: dict[str, Any], query: Query, delta: Delta
    ) -> AsyncIterator[int]: ...

    def remove(
        self, collection: str, opts: dict[str, Any], query: Query
    ) -> AsyncIterator[int]: ...
