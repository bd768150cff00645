"""Shared plumbing for pipeline streams."""

from __future__ import annotations

from collections.abc import AsyncIterator, Generator
from typing import Any

from merlin.errors import StreamConsumedError


async def close_iterator(iterator: Any) -> None:
    """Close an async iterator if it supports it.

    Stages close their source when they stop, so an early exit at the
    consumer stops the whole chain down to the driver.
    """
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


class Stream:
    """A single-use pipeline.

    Exactly one consumption method may be called; a second raises
    StreamConsumedError. Awaiting the stream runs its default aggregation.
    """

    def __init__(self, source: AsyncIterator[Any]):
        self._source = source
        self._consumed = False

    def _claim(self) -> AsyncIterator[Any]:
        if self._consumed:
            raise StreamConsumedError(f"{type(self).__name__} has already been consumed")
        self._consumed = True
        return self._source

    @property
    def consumed(self) -> bool:
        return self._consumed

    async def _aggregate(self) -> Any:
        raise NotImplementedError

    def __await__(self) -> Generator[Any, None, Any]:
        return self._aggregate().__await__()
