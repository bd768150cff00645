"""Populate stream: attaches related models to each record.

For every record, each relation and reference of the model is looked up on
its target model, narrowed by any sub-query the caller put at that path.
The lookups for one record run concurrently; the record moves on only
after all of them finished. If one fails, the others are cancelled and
awaited before the error is raised, so nothing keeps running after the
stream has failed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from merlin.paths import set_path
from merlin.relations import Resolution, resolutions
from merlin.streams.base import close_iterator

if TYPE_CHECKING:
    from merlin.static_model import StaticModel

logger = logging.getLogger(__name__)


class PopulateStream:
    """Async iterator of records with related models attached.

    Args:
        model: The model whose records flow through
        source: Records from the previous stage
        sub_queries: Caller filters keyed by attachment path
        raw_mode: Attach plain dicts/lists instead of models
    """

    def __init__(
        self,
        model: StaticModel,
        source: AsyncIterator[dict[str, Any]],
        sub_queries: dict[str, dict[str, Any]] | None = None,
        *,
        raw_mode: bool = False,
    ):
        self.model = model
        self.sub_queries = sub_queries or {}
        self.raw_mode = raw_mode
        self._source = source
        self._iterator = self._run()

    def __aiter__(self) -> PopulateStream:
        return self

    async def __anext__(self) -> dict[str, Any]:
        return await self._iterator.__anext__()

    async def aclose(self) -> None:
        await self._iterator.aclose()

    async def _run(self) -> AsyncIterator[dict[str, Any]]:
        lookups = resolutions(self.model)
        try:
            async for record in self._source:
                if lookups:
                    await self.populate(record, lookups)
                yield record
        finally:
            await close_iterator(self._source)

    async def populate(self, record: dict[str, Any], lookups: list[Resolution]) -> None:
        tasks = [asyncio.ensure_future(self._lookup(record, lookup)) for lookup in lookups]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        for lookup, value in zip(lookups, results):
            set_path(record, lookup.path, value)

    async def _lookup(self, record: dict[str, Any], lookup: Resolution) -> Any:
        sub_query = self.sub_queries.get(lookup.path)
        query = lookup.scoped_query(record, sub_query, id_key=self.model.id_key)
        target = lookup.target
        if query is None:
            return target.empty_set(raw_mode=self.raw_mode) if lookup.many else None

        logger.debug(
            "Populating %s.%s from %s with %r",
            self.model.model_name,
            lookup.path,
            target.model_name,
            query,
        )
        if lookup.many:
            return await target.find(query, raw_mode=self.raw_mode).all()
        return await target.find_one(query, raw_mode=self.raw_mode).first()
