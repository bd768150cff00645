"""Model-level operations.

A StaticModel is the queryable entity type: one per registered model,
created by the orchestrator, holding the model's name, collection, schema,
defaults, relation graph and hooks. It wraps the model class (instance
behaviour) and builds the read/write pipelines on top of the driver.

Read pipeline::

    driver.find -> afterFind (per record) -> PopulateStream -> ModelStream

Operations return their stream immediately; nothing runs until it is
consumed. Awaiting a stream runs it and aggregates the result:

    users = await User.find({"active": True})          # ModelSet
    user = await User.find_by_id("u1")                 # User | None
    total = await User.count()                         # int
    await User.update({"active": False}, {"$set": {"archived": True}})
"""

from __future__ import annotations

import copy
import functools
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from typing import TYPE_CHECKING, Any

from merlin.config import MerlinConfig
from merlin.delta import Delta
from merlin.errors import PathNotFoundError, ReservedPropertyError, SubQueryError
from merlin.hooks import HookHub
from merlin.model import Model
from merlin.model_set import ModelSet
from merlin.paths import copy_along, delete_path, get_path, set_path
from merlin.persistence.driver import Driver
from merlin.query import Query, is_operator_dict
from merlin.relations import (
    RelationKind,
    RelationOptions,
    Resolution,
    link,
    normalize_options,
    resolutions,
)
from merlin.schema import Schema
from merlin.streams import CountStream, ModelStream, PopulateStream, Terminal, close_iterator

if TYPE_CHECKING:
    from merlin.merlin import Merlin

logger = logging.getLogger(__name__)


class StaticModel(HookHub):
    """The entity type of one registered model.

    Attributes:
        merlin: Owning orchestrator
        model_name: Registered name, e.g. ``"BlogPost"``
        collection_name: Backing collection, e.g. ``"blogPosts"``
        model_class: Class of the instances this type materializes
        schema: Optional schema (validation, methods, hooks)
        defaults: Values applied to missing fields on insert, by path
        relations: Edges this model owns, keyed by key path
        references: Edges pointing at this model, by owner name then key path
    """

    def __init__(
        self,
        merlin: Merlin,
        model_name: str,
        collection_name: str,
        model_class: type[Model],
        schema: Schema | None = None,
        defaults: dict[str, Any] | None = None,
    ):
        super().__init__()
        self.merlin = merlin
        self.model_name = model_name
        self.collection_name = collection_name
        self.model_class = model_class
        self.schema = schema
        self.defaults: dict[str, Any] = {}
        if schema is not None:
            self.defaults.update(schema.defaults())
        self.defaults.update(defaults or {})
        self.relations: dict[str, Any] = {}
        self.references: dict[str, dict[str, Any]] = {}

    def __repr__(self) -> str:
        return f"<StaticModel {self.model_name} ({self.collection_name})>"

    def __call__(self, record: dict[str, Any] | None = None, **kwargs: Any) -> Model:
        """Construct a new instance: ``User({"name": "Ada"})``."""
        return self.model_class(record, **kwargs)

    def __getattr__(self, name: str) -> Any:
        # Schema statics, bound to this model
        schema = self.__dict__.get("schema")
        if schema is not None and name in schema.statics:
            return functools.partial(schema.statics[name], self)
        raise AttributeError(f"{type(self).__name__} '{self.__dict__.get('model_name')}' has no attribute '{name}'")

    @property
    def config(self) -> MerlinConfig:
        return self.merlin.config

    @property
    def id_key(self) -> str:
        return self.merlin.config.id_key

    @property
    def driver(self) -> Driver:
        return self.merlin.driver

    def empty_set(self, raw_mode: bool = False) -> ModelSet | list[Any]:
        return [] if raw_mode else ModelSet(self)

    # =========================================================================
    # Relation declarations
    # =========================================================================

    def has_one(self, model_name: str, opts: RelationOptions = None) -> StaticModel:
        """This model stores the id of one ``model_name``."""
        return self._relate(model_name, RelationKind.ONE_TO_ONE, opts)

    def has_many(self, model_name: str, opts: RelationOptions = None) -> StaticModel:
        """This model stores a list of ``model_name`` ids."""
        return self._relate(model_name, RelationKind.ONE_TO_MANY, opts)

    def many_have_one(self, model_name: str, opts: RelationOptions = None) -> StaticModel:
        """Many records of this model store the id of the same ``model_name``."""
        return self._relate(model_name, RelationKind.MANY_TO_ONE, opts)

    def belongs_to_one(self, model_name: str, opts: RelationOptions = None) -> StaticModel:
        """``model_name`` stores the id of one record of this model."""
        return self._belong(model_name, RelationKind.ONE_TO_ONE, opts)

    def belongs_to_many(self, model_name: str, opts: RelationOptions = None) -> StaticModel:
        """``model_name`` stores a list of ids of this model."""
        return self._belong(model_name, RelationKind.ONE_TO_MANY, opts)

    def many_belong_to_one(self, model_name: str, opts: RelationOptions = None) -> StaticModel:
        """Many ``model_name`` records store the id of one record of this model."""
        return self._belong(model_name, RelationKind.MANY_TO_ONE, opts)

    def _relate(self, model_name: str, kind: RelationKind, opts: RelationOptions) -> StaticModel:
        target = self.merlin.get_model(model_name)
        link(self, target, kind, normalize_options(opts, "fieldPath"))
        return self

    def _belong(self, model_name: str, kind: RelationKind, opts: RelationOptions) -> StaticModel:
        owner = self.merlin.get_model(model_name)
        link(owner, self, kind, normalize_options(opts, "foreignFieldPath"))
        return self

    # =========================================================================
    # Resolution
    # =========================================================================

    def attachments(self) -> list[Resolution]:
        """Every relation and reference, relations first."""
        return resolutions(self)

    def sub_record_paths(self) -> list[str]:
        """Paths where related models get attached on this model's records."""
        paths: list[str] = []
        for relation in self.relations.values():
            paths.append(relation.field_path)
        for by_key in self.references.values():
            for reference in by_key.values():
                paths.append(reference.foreign_field_path)
        return list(dict.fromkeys(paths))

    def resolve(self, field_path: str) -> Resolution:
        """Find the relation or reference attached at ``field_path``.

        Raises:
            PathNotFoundError: If nothing is attached there
        """
        for lookup in self.attachments():
            if lookup.path == field_path:
                return lookup
        raise PathNotFoundError(self.model_name, field_path)

    def check_reserved(self, record: dict[str, Any]) -> None:
        """Reject records with fields named like public model attributes.

        Raises:
            ReservedPropertyError: On the first colliding field
        """
        for key in record:
            if isinstance(key, str) and not key.startswith("_") and hasattr(self.model_class, key):
                raise ReservedPropertyError(self.model_name, key)

    def _depopulate(self, query: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
        """Split sub-queries at attachment paths off the filter.

        ``True`` at a path means "populate without a filter"; operator
        conditions like ``{"$exists": True}`` stay in the filter.
        """
        filter = dict(query)
        sub_queries: dict[str, Any] = {}
        for path in self.sub_record_paths():
            if path not in filter:
                continue
            value = filter[path]
            if value is True:
                sub_queries[path] = {}
            elif isinstance(value, dict) and not is_operator_dict(value):
                sub_queries[path] = value
            else:
                continue
            del filter[path]
        return filter, sub_queries

    def _reject_sub_queries(self, query: dict[str, Any]) -> None:
        _, sub_queries = self._depopulate(query)
        if sub_queries:
            raise SubQueryError(self.model_name, sorted(sub_queries))

    def _validates(self, skip_validation: bool) -> bool:
        return (
            self.schema is not None
            and not skip_validation
            and not self.config.skip_schema_validation
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def find(
        self,
        query: dict[str, Any] | None = None,
        opts: dict[str, Any] | None = None,
        *,
        raw_mode: bool = False,
    ) -> ModelStream:
        """Stream the records matching ``query``.

        Filters placed at relation or reference paths are sub-queries: they
        are removed from the filter and used to populate those paths.
        """
        return self._find(query, opts, raw_mode, Terminal.ALL)

    def find_one(
        self,
        query: dict[str, Any] | None = None,
        opts: dict[str, Any] | None = None,
        *,
        raw_mode: bool = False,
    ) -> ModelStream:
        limited = dict(query or {})
        limited["$limit"] = 1
        return self._find(limited, opts, raw_mode, Terminal.FIRST)

    def find_by_id(
        self, id: Any, opts: dict[str, Any] | None = None, *, raw_mode: bool = False
    ) -> ModelStream:
        return self.find_one({self.id_key: id}, opts, raw_mode=raw_mode)

    def all(self, opts: dict[str, Any] | None = None, *, raw_mode: bool = False) -> ModelStream:
        return self.find({}, opts, raw_mode=raw_mode)

    def _find(
        self,
        query: dict[str, Any] | None,
        opts: dict[str, Any] | None,
        raw_mode: bool,
        terminal: Terminal,
    ) -> ModelStream:
        query = {} if query is None else query
        opts = {} if opts is None else opts
        self.emit("query", query)

        filter, sub_queries = self._depopulate(query)
        records: AsyncIterator[dict[str, Any]] = self._read(Query(filter), opts)
        if sub_queries and self.config.auto_populate_by_query:
            records = PopulateStream(self, records, sub_queries, raw_mode=raw_mode)
        return ModelStream(self, records, raw_mode=raw_mode, terminal=terminal)

    async def _read(self, query: Query, opts: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        await self.trigger("beforeFind", query, opts)
        logger.debug("find %s %r %r", self.collection_name, query.query, query.opts)
        source = self.driver.find(self.collection_name, opts, query)
        try:
            async for record in source:
                await self.trigger("afterFind", record, opts)
                yield record
        finally:
            await close_iterator(source)

    def count(
        self, query: dict[str, Any] | None = None, opts: dict[str, Any] | None = None
    ) -> CountStream:
        query = {} if query is None else query
        opts = {} if opts is None else opts
        self.emit("query", query)
        return CountStream(self._count(Query(query), opts))

    async def _count(self, query: Query, opts: dict[str, Any]) -> AsyncIterator[int]:
        await self.trigger("beforeCount", query, opts)
        source = self.driver.count(self.collection_name, opts, query)
        try:
            async for count in source:
                await self.trigger("afterCount", count, opts)
                yield count
        finally:
            await close_iterator(source)

    # =========================================================================
    # Inserts
    # =========================================================================

    def insert(
        self,
        records: Any,
        opts: dict[str, Any] | None = None,
        *,
        raw_mode: bool = False,
        skip_validation: bool = False,
    ) -> ModelStream:
        """Insert records and stream back the stored versions.

        Args:
            records: A record, a model instance, or a (async) iterable of them
            opts: Passed to hooks and the driver
            raw_mode: Stream plain dicts instead of instances
            skip_validation: Skip schema validation for this call

        Each record has attached sub-models stripped and defaults applied,
        is checked for reserved field names and validated, then passed
        through ``beforeInsert``. A list of records is checked completely
        before the first one is written. Consuming the stream writes every
        record, even when only the first result is read.
        """
        opts = {} if opts is None else opts
        validate = self._validates(skip_validation)
        prepared = self._prepare_inserts(records, opts, validate)
        inserted = self.driver.insert(self.collection_name, opts)(prepared)
        return ModelStream(self, self._after_insert(inserted, opts), raw_mode=raw_mode)

    def create(
        self,
        record: dict[str, Any] | Model,
        opts: dict[str, Any] | None = None,
        *,
        raw_mode: bool = False,
        skip_validation: bool = False,
    ) -> ModelStream:
        """Insert one record; awaiting the stream gives the stored instance."""
        stream = self.insert([record], opts, raw_mode=raw_mode, skip_validation=skip_validation)
        stream.terminal = Terminal.FIRST
        return stream

    def _prepare(self, record: dict[str, Any] | Model) -> dict[str, Any]:
        if isinstance(record, Model):
            prepared = record.record()
        else:
            paths = self.sub_record_paths()
            detached = copy_along(record, paths)
            for path in paths:
                delete_path(detached, path)
            prepared = copy.deepcopy(detached)
        for path, default in self.defaults.items():
            if get_path(prepared, path) is None:
                value = default() if callable(default) else copy.deepcopy(default)
                set_path(prepared, path, value)
        self.check_reserved(prepared)
        return prepared

    async def _prepare_inserts(
        self, records: Any, opts: dict[str, Any], validate: bool
    ) -> AsyncIterator[dict[str, Any]]:
        if isinstance(records, AsyncIterable):
            async for record in records:
                prepared = self._prepare(record)
                if validate:
                    await self.schema.validate(prepared)
                await self.trigger("beforeInsert", prepared, opts)
                yield prepared
            return

        if isinstance(records, (dict, Model)):
            records = [records]
        batch = [self._prepare(record) for record in _iterable(records)]
        if validate:
            for prepared in batch:
                await self.schema.validate(prepared)
        for prepared in batch:
            await self.trigger("beforeInsert", prepared, opts)
            yield prepared

    async def _after_insert(
        self, inserted: AsyncIterator[dict[str, Any]], opts: dict[str, Any]
    ) -> AsyncIterator[dict[str, Any]]:
        # Every record reaches the driver before the first one is yielded
        stored: list[dict[str, Any]] = []
        try:
            async for record in inserted:
                await self.trigger("afterInsert", record, opts)
                stored.append(record)
        finally:
            await close_iterator(inserted)
        for record in stored:
            yield record

    # =========================================================================
    # Updates and removals
    # =========================================================================

    def update(
        self,
        query: dict[str, Any] | None,
        delta: dict[str, Any] | Delta,
        opts: dict[str, Any] | None = None,
        *,
        skip_validation: bool = False,
    ) -> CountStream:
        """Apply ``delta`` to every matching record.

        Raises:
            SubQueryError: Immediately, if ``query`` holds sub-queries
        """
        query = {} if query is None else query
        opts = {} if opts is None else opts
        self._reject_sub_queries(query)
        self.emit("query", query)
        change = delta if isinstance(delta, Delta) else Delta(delta)
        validate = self._validates(skip_validation)
        return CountStream(self._update(Query(query), change, opts, validate))

    def update_one(
        self,
        query: dict[str, Any] | None,
        delta: dict[str, Any] | Delta,
        opts: dict[str, Any] | None = None,
        *,
        skip_validation: bool = False,
    ) -> CountStream:
        limited = dict(query or {})
        limited["$limit"] = 1
        return self.update(limited, delta, opts, skip_validation=skip_validation)

    def update_by_id(
        self,
        id: Any,
        delta: dict[str, Any] | Delta,
        opts: dict[str, Any] | None = None,
        *,
        skip_validation: bool = False,
    ) -> CountStream:
        return self.update_one({self.id_key: id}, delta, opts, skip_validation=skip_validation)

    async def _update(
        self, query: Query, delta: Delta, opts: dict[str, Any], validate: bool
    ) -> AsyncIterator[int]:
        await self.trigger("beforeUpdate", query, delta, opts)
        patch = delta.patch({})
        self.check_reserved(patch)
        if validate:
            await self.schema.validate(patch, partial=True)
        logger.debug("update %s %r %r", self.collection_name, query.query, delta.diff)
        source = self.driver.update(self.collection_name, opts, query, delta)
        try:
            async for count in source:
                await self.trigger("afterUpdate", count, opts)
                yield count
        finally:
            await close_iterator(source)

    def remove(
        self, query: dict[str, Any] | None = None, opts: dict[str, Any] | None = None
    ) -> CountStream:
        """Remove every matching record.

        Raises:
            SubQueryError: Immediately, if ``query`` holds sub-queries
        """
        query = {} if query is None else query
        opts = {} if opts is None else opts
        self._reject_sub_queries(query)
        self.emit("query", query)
        return CountStream(self._remove(Query(query), opts))

    def remove_one(
        self, query: dict[str, Any] | None = None, opts: dict[str, Any] | None = None
    ) -> CountStream:
        limited = dict(query or {})
        limited["$limit"] = 1
        return self.remove(limited, opts)

    def remove_by_id(self, id: Any, opts: dict[str, Any] | None = None) -> CountStream:
        return self.remove_one({self.id_key: id}, opts)

    async def _remove(self, query: Query, opts: dict[str, Any]) -> AsyncIterator[int]:
        await self.trigger("beforeRemove", query, opts)
        logger.debug("remove %s %r", self.collection_name, query.query)
        source = self.driver.remove(self.collection_name, opts, query)
        try:
            async for count in source:
                await self.trigger("afterRemove", count, opts)
                yield count
        finally:
            await close_iterator(source)

    # =========================================================================
    # Indexes
    # =========================================================================

    async def index(self, field_path: str, opts: dict[str, Any] | None = None) -> None:
        opts = {} if opts is None else opts
        self.emit("index", field_path, opts)
        await self.driver.index(self.collection_name, opts, field_path)


def _iterable(records: Any) -> Iterable[Any]:
    if not isinstance(records, Iterable):
        raise TypeError(f"Cannot insert {type(records).__name__}; expected records")
    return records


def augment_model(
    merlin: Merlin,
    model_name: str,
    collection_name: str,
    model_class: type[Model],
    schema: Schema | None = None,
    defaults: dict[str, Any] | None = None,
) -> StaticModel:
    """Turn a model class into a queryable entity type.

    A class already bound to another orchestrator is subclassed so both
    registrations keep their own state.
    """
    if model_class._static is not None:
        model_class = type(model_class.__name__, (model_class,), {"__module__": model_class.__module__})
    static = StaticModel(merlin, model_name, collection_name, model_class, schema, defaults)
    model_class._static = static
    return static
