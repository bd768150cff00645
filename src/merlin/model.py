"""Model instances.

A model instance holds one record. Record fields live on the instance as
attributes (``user.name``); ``record()`` reads them back as a plain dict.
The last state known to be persisted is kept as a snapshot so that saving
an existing instance only sends what changed.

Lifecycle:
- init: constructing, before the first record is applied
- ready: the first record has been applied; attributes that existed
  before it are reserved and never treated as record fields

Record fields that collide with a reserved attribute or a class attribute
are stored under an escaped name (``$$save``) and un-escaped by
``record()``.
"""

from __future__ import annotations

import copy
import json
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from merlin.delta import Delta
from merlin.errors import ConfigurationError, NewModelError, RecordNotFoundError
from merlin.model_set import ModelSet
from merlin.paths import copy_along, delete_path, get_path, set_path
from merlin.relations import RelationKind, ResolutionKind
from merlin.schema import Schema

if TYPE_CHECKING:
    from merlin.static_model import StaticModel

logger = logging.getLogger(__name__)

ESCAPE_PREFIX = "$$"


class ModelStatus(Enum):
    INIT = "init"
    READY = "ready"


class SubRecordKind(Enum):
    """What is attached at a relation or reference path."""

    ENTITY = "entity"
    ENTITY_SET = "entitySet"
    RAW = "raw"

    def serialize(self, value: Any) -> Any:
        if self is SubRecordKind.ENTITY:
            return value.record(include_sub_records=True)
        if self is SubRecordKind.ENTITY_SET:
            return value.records(include_sub_records=True)
        return copy.deepcopy(value)


class Model:
    """Base class for model instances.

    Only classes registered through ``Merlin.model()`` can be instantiated;
    registration binds the class to its StaticModel.
    """

    _static: ClassVar[StaticModel | None] = None

    def __init__(self, record: dict[str, Any] | None = None, *, new_model: bool = True):
        if type(self)._static is None:
            raise ConfigurationError(
                f"{type(self).__name__} is not registered with a Merlin orchestrator"
            )
        self._status = ModelStatus.INIT
        self._new_model = new_model
        self._cache: dict[str, Any] = {}
        self._sub_records: dict[str, SubRecordKind] = {}
        self._reserved: frozenset[str] = frozenset()
        self._set_record(record or {})
        self._cache = self.record()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.record()!r}>"

    # =========================================================================
    # State
    # =========================================================================

    @property
    def model_type(self) -> StaticModel:
        return type(self)._static

    @property
    def model_status(self) -> ModelStatus:
        return self._status

    @property
    def new_model(self) -> bool:
        """True until the instance has been persisted."""
        return self._new_model

    @property
    def cache(self) -> dict[str, Any]:
        """Snapshot of the last synchronized record (a copy)."""
        return copy.deepcopy(self._cache)

    def _field_name(self, key: str) -> str:
        if key in self._reserved or hasattr(type(self), key):
            return ESCAPE_PREFIX + key
        return key

    def _live_record(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for name, value in self.__dict__.items():
            if name in self._reserved:
                continue
            if name.startswith(ESCAPE_PREFIX):
                name = name[len(ESCAPE_PREFIX):]
            data[name] = value
        return data

    def _set_record(self, record: dict[str, Any]) -> None:
        if self._status == ModelStatus.INIT:
            self._reserved = frozenset(self.__dict__)
            self._status = ModelStatus.READY
        else:
            for name in [n for n in self.__dict__ if n not in self._reserved]:
                del self.__dict__[name]
        for key, value in record.items():
            self.__dict__[self._field_name(key)] = value
        self._attach_sub_records()

    def _get(self, path: str) -> Any:
        head, _, rest = path.partition(".")
        value = self.__dict__.get(self._field_name(head))
        return get_path(value, rest) if rest else value

    def _assign(self, path: str, value: Any) -> None:
        head, _, rest = path.partition(".")
        name = self._field_name(head)
        if not rest:
            self.__dict__[name] = value
            return
        node = self.__dict__.get(name)
        if not isinstance(node, dict):
            node = {}
            self.__dict__[name] = node
        set_path(node, rest, value)

    def _attach_sub_records(self) -> None:
        """Wrap values at relation and reference paths into models.

        The kind of each attachment is recorded so that serialization never
        has to guess what it is looking at.
        """
        self._sub_records = {}
        for lookup in self.model_type.attachments():
            value = self._get(lookup.path)
            if value is None:
                continue
            target = lookup.target
            if isinstance(value, ModelSet):
                kind = SubRecordKind.RAW if value.raw_mode else SubRecordKind.ENTITY_SET
            elif isinstance(value, Model):
                kind = SubRecordKind.ENTITY
            elif isinstance(value, list):
                value = ModelSet(target, value)
                self._assign(lookup.path, value)
                kind = SubRecordKind.ENTITY_SET
            elif isinstance(value, dict):
                value = target.model_class(value, new_model=target.id_key not in value)
                self._assign(lookup.path, value)
                kind = SubRecordKind.ENTITY
            else:
                kind = SubRecordKind.RAW
            self._sub_records[lookup.path] = kind

    # =========================================================================
    # Records
    # =========================================================================

    def record(self, include_sub_records: bool = False) -> dict[str, Any]:
        """The record as a plain dict (a deep copy).

        Args:
            include_sub_records: Also serialize the models attached at
                relation and reference paths
        """
        data = self._live_record()
        paths = self.model_type.sub_record_paths()
        detached = copy_along(data, paths)
        for path in paths:
            delete_path(detached, path)
        result = copy.deepcopy(detached)
        if include_sub_records:
            for path, kind in self._sub_records.items():
                value = get_path(data, path)
                if value is not None:
                    set_path(result, path, kind.serialize(value))
        return result

    def to_json(self) -> str:
        return json.dumps(self.record(include_sub_records=True), default=str)

    def get_delta(self) -> Delta:
        """Changes since the last synchronization, sub-records excluded."""
        return Delta.between(self._cache, self.record())

    @property
    def id_value(self) -> Any:
        return self._get(self.model_type.id_key)

    # =========================================================================
    # Persistence
    # =========================================================================

    async def _run(self, hook_name: str, fn: Any) -> Any:
        schema: Schema | None = self.model_type.schema
        if schema is None:
            return await fn(self)
        return await schema.execute(hook_name, self, fn)

    async def save(self) -> Model:
        """Insert a new instance, or update an existing one with its delta.

        Runs the schema's ``save`` pre/post hooks around the write.
        """
        await self._run("save", Model._persist)
        return self

    async def _persist(self) -> None:
        static = self.model_type
        if self._new_model:
            attached = {path: self._get(path) for path in self._sub_records}
            persisted = await static.insert([self.record()], raw_mode=True).first()
            self._set_record(persisted or {})
            for path, value in attached.items():
                self._assign(path, value)
            self._attach_sub_records()
            self._new_model = False
            self._cache = self.record()
            logger.debug("Inserted %s %s", static.model_name, self.id_value)
            return

        delta = self.get_delta()
        if delta.is_empty:
            return
        await static.update_by_id(self.id_value, delta.diff)
        self._cache = self.record()
        logger.debug("Updated %s %s with %r", static.model_name, self.id_value, delta.diff)

    async def remove(self) -> None:
        """Remove the stored record and clear this instance's id.

        Raises:
            NewModelError: If the instance was never persisted
        """
        if self._new_model:
            raise NewModelError(f"Cannot remove a new {type(self).__name__}; save it first")
        await self._run("remove", Model._delete)

    async def _delete(self) -> None:
        static = self.model_type
        await static.remove_by_id(self.id_value)
        self.__dict__.pop(self._field_name(static.id_key), None)
        self._new_model = True
        self._cache = self.record()

    async def reset(self) -> Model:
        """Discard local changes and reload from storage.

        Raises:
            NewModelError: If the instance was never persisted
            RecordNotFoundError: If the stored record no longer exists
        """
        if self._new_model:
            raise NewModelError(f"Cannot reset a new {type(self).__name__}")
        static = self.model_type
        record = await static.find_by_id(self.id_value, raw_mode=True).first()
        if record is None:
            raise RecordNotFoundError(f"{static.model_name} {self.id_value!r} no longer exists")
        self._set_record(record)
        self._cache = self.record()
        return self

    def clone(self) -> Model:
        """A new, unsaved instance with a deep copy of the full record."""
        return type(self)(self.record(include_sub_records=True))

    # =========================================================================
    # Relations
    # =========================================================================

    async def fetch(self, path: str, query: dict[str, Any] | None = None) -> Any:
        """Load what is related at ``path`` without attaching it.

        Raises:
            PathNotFoundError: If ``path`` is not a relation or reference
        """
        static = self.model_type
        lookup = static.resolve(path)
        scoped = lookup.scoped_query(self._live_record(), query, id_key=static.id_key)
        target = lookup.target
        if scoped is None:
            return target.empty_set() if lookup.many else None
        if lookup.many:
            return await target.find(scoped).all()
        return await target.find_one(scoped).first()

    async def populate(self, *paths: str) -> Model:
        """Load and attach related models; all paths when none are given."""
        static = self.model_type
        targets = list(paths) or static.sub_record_paths()
        for path in targets:
            self._assign(path, await self.fetch(path))
        self._attach_sub_records()
        return self

    async def save_all(self) -> Model:
        """Save this instance and every attached sub-model, depth first.

        Relation targets are saved first so their ids can be written into
        this record's keys. Then this instance is saved. Then models
        attached through references get this instance's id in their key
        and are saved. The first failure stops the cascade.
        """
        static = self.model_type
        attached = static.attachments()

        for lookup in attached:
            if lookup.kind != ResolutionKind.RELATION:
                continue
            kind = self._sub_records.get(lookup.path)
            value = self._get(lookup.path)
            if kind == SubRecordKind.ENTITY:
                await value.save_all()
                key = value.id_value
                if lookup.descriptor.kind == RelationKind.ONE_TO_MANY:
                    key = [key]
                self._assign(lookup.descriptor.key_path, key)
            elif kind == SubRecordKind.ENTITY_SET:
                await value.save_all()
                self._assign(lookup.descriptor.key_path, [item.id_value for item in value])

        await self.save()

        for lookup in attached:
            if lookup.kind != ResolutionKind.REFERENCE:
                continue
            kind = self._sub_records.get(lookup.path)
            value = self._get(lookup.path)
            if kind == SubRecordKind.ENTITY:
                children = [value]
            elif kind == SubRecordKind.ENTITY_SET:
                children = list(value)
            else:
                continue
            for child in children:
                child._link_owner(lookup.descriptor, self.id_value)
                await child.save_all()
        return self

    def _link_owner(self, descriptor: Any, owner_id: Any) -> None:
        if descriptor.kind == RelationKind.ONE_TO_MANY:
            keys = list(self._get(descriptor.key_path) or [])
            if owner_id not in keys:
                keys.append(owner_id)
            self._assign(descriptor.key_path, keys)
        else:
            self._assign(descriptor.key_path, owner_id)

    async def remove_all(self) -> None:
        """Remove every attached, persisted sub-model, then this instance.

        Children are removed depth first, in declaration order, relations
        before references. The first failure stops the cascade.

        Raises:
            NewModelError: If this instance was never persisted
        """
        if self._new_model:
            raise NewModelError(f"Cannot remove a new {type(self).__name__}; save it first")
        for lookup in self.model_type.attachments():
            kind = self._sub_records.get(lookup.path)
            value = self._get(lookup.path)
            if kind == SubRecordKind.ENTITY:
                if not value.new_model:
                    await value.remove_all()
            elif kind == SubRecordKind.ENTITY_SET:
                await value.remove_all()
        await self.remove()


def build_model_class(name: str, schema: Schema | None = None, base: type[Model] = Model) -> type[Model]:
    """Create the model class for a schema.

    Schema methods become instance methods; top-level virtuals become
    properties. Dotted virtual paths are kept on the schema only.
    """
    namespace: dict[str, Any] = {"__qualname__": name, "__module__": base.__module__}
    if schema is not None:
        namespace.update(schema.methods)
        for path, virtual in schema.virtuals.items():
            if "." in path:
                logger.debug("Virtual '%s' on %s is nested; not exposed as a property", path, name)
                continue
            namespace[path] = property(virtual.get, virtual.set)
    return type(name, (base,), namespace)
