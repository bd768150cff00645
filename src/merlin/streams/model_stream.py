"""Model stream: turns driver records into model instances.

Usage:
    users = await User.find({"active": True})            # ModelSet
    first = await User.find({"active": True}).first()   # Model | None
    async for user in User.find():
        ...
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from enum import Enum
from typing import IO, TYPE_CHECKING, Any

from merlin.streams.base import Stream, close_iterator

if TYPE_CHECKING:
    from merlin.model import Model
    from merlin.model_set import ModelSet
    from merlin.static_model import StaticModel

logger = logging.getLogger(__name__)


class Terminal(Enum):
    """Aggregation used when a stream is awaited directly."""

    ALL = "all"
    FIRST = "first"


class ModelStream(Stream):
    """Materializes records into instances of one model.

    In raw mode records are passed through as plain dicts, after the same
    reserved-property check.
    """

    def __init__(
        self,
        model: StaticModel,
        source: AsyncIterator[Any],
        *,
        raw_mode: bool = False,
        terminal: Terminal = Terminal.ALL,
    ):
        super().__init__(source)
        self.model = model
        self.raw_mode = raw_mode
        self.terminal = terminal

    def _materialize(self, record: Any) -> Any:
        if isinstance(record, self.model.model_class):
            return record
        self.model.check_reserved(record)
        if self.raw_mode:
            return record
        return self.model.model_class(record, new_model=False)

    async def _items(self) -> AsyncIterator[Any]:
        source = self._claim()
        try:
            async for record in source:
                yield self._materialize(record)
        finally:
            await close_iterator(source)

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._items()

    # =========================================================================
    # Consumption modes
    # =========================================================================

    async def for_each(self, handler: Callable[[Any], Awaitable[None] | None]) -> int:
        """Call ``handler`` for each item in order, awaiting coroutine results.

        Returns:
            Number of items handled
        """
        handled = 0
        async with aclosing(self._items()) as items:
            async for item in items:
                result = handler(item)
                if inspect.isawaitable(result):
                    await result
                handled += 1
        return handled

    async def first(self) -> Model | dict[str, Any] | None:
        return await self.at(0)

    async def at(self, index: int) -> Model | dict[str, Any] | None:
        """The item at ``index``, or None if the stream is shorter.

        Reading stops as soon as the item is reached.
        """
        if index < 0:
            raise ValueError("at() needs a non-negative index; use last() for the end")
        async with aclosing(self._items()) as items:
            position = 0
            async for item in items:
                if position == index:
                    return item
                position += 1
        return None

    async def last(self) -> Model | dict[str, Any] | None:
        found = None
        async with aclosing(self._items()) as items:
            async for item in items:
                found = item
        return found

    async def all(self) -> ModelSet | list[dict[str, Any]]:
        """Every item, as a ModelSet (or a list in raw mode)."""
        from merlin.model_set import ModelSet

        collected: ModelSet | list[dict[str, Any]]
        if self.raw_mode:
            collected = []
        else:
            collected = ModelSet(self.model)
        async with aclosing(self._items()) as items:
            async for item in items:
                collected.append(item)
        return collected

    async def pipe_json(self, fp: IO[str]) -> int:
        """Write the stream to ``fp`` as a JSON array.

        Returns:
            Number of items written
        """
        written = 0
        fp.write("[")
        async with aclosing(self._items()) as items:
            async for item in items:
                if written:
                    fp.write(",")
                data = item if isinstance(item, dict) else item.record(include_sub_records=True)
                fp.write(json.dumps(data, default=str))
                written += 1
        fp.write("]")
        logger.debug("Wrote %d %s record(s) as JSON", written, self.model.model_name)
        return written

    async def _aggregate(self) -> Any:
        if self.terminal == Terminal.FIRST:
            return await self.first()
        return await self.all()
