"""Relation graph between models.

Every relation declared on an owning model (the one storing the foreign
key) has a mirrored reference on the foreign model. Both sides are always
written together, under the orchestrator's registry lock, by ``link()``.

    has_one / has_many / many_have_one
        this model owns the key
    belongs_to_one / belongs_to_many / many_belong_to_one
        the foreign model owns the key pointing back at this model

Example:
    User.has_many("Post")           # users.postIds -> posts, Post.user
    Post.belongs_to_one("Author")   # authors.postId -> post, Post.author
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from merlin.config import MerlinConfig
from merlin.naming import lower_camel, pluralize, singularize
from merlin.paths import get_path

if TYPE_CHECKING:
    from merlin.static_model import StaticModel

logger = logging.getLogger(__name__)

RelationOptions = str | dict[str, Any] | None


class RelationKind(Enum):
    ONE_TO_ONE = "oneToOne"
    ONE_TO_MANY = "oneToMany"
    MANY_TO_ONE = "manyToOne"


class ResolutionKind(Enum):
    RELATION = "relation"
    REFERENCE = "reference"


@dataclass(frozen=True)
class RelationDescriptor:
    """One edge, stored on the owning model keyed by ``key_path``.

    Attributes:
        kind: Cardinality of the edge
        model_name: The model at the other end
        key_path: Field on the owning model's records holding the foreign id(s)
        field_path: Where the foreign value is attached on the owning model
        foreign_field_path: Where the owner is attached on the foreign model
    """

    kind: RelationKind
    model_name: str
    key_path: str
    field_path: str
    foreign_field_path: str

    def to_dict(self) -> dict[str, str]:
        return {
            "type": self.kind.value,
            "modelName": self.model_name,
            "keyPath": self.key_path,
            "fieldPath": self.field_path,
            "foreignFieldPath": self.foreign_field_path,
        }


@dataclass(frozen=True)
class ReferenceDescriptor(RelationDescriptor):
    """Mirror of a relation, stored on the foreign model.

    ``model_name`` names the owning model; the other attributes are the
    relation's, unchanged.
    """


# =============================================================================
# Declaration
# =============================================================================


def relation_paths(
    kind: RelationKind,
    owner_name: str,
    target_name: str,
    opts: dict[str, Any],
    config: MerlinConfig,
) -> tuple[str, str, str]:
    """Key, field and foreign field paths for an edge from owner to target.

    Explicit ``keyPath``, ``fieldPath`` and ``foreignFieldPath`` options
    win; the key defaults to a name derived from the field path.
    """
    field_path = opts.get("fieldPath")
    if kind == RelationKind.ONE_TO_MANY:
        field_path = field_path or pluralize(lower_camel(target_name))
        key_path = opts.get("keyPath") or config.plural_key(singularize(field_path))
    else:
        field_path = field_path or lower_camel(target_name)
        key_path = opts.get("keyPath") or config.singular_key(field_path)

    foreign_field_path = opts.get("foreignFieldPath")
    if not foreign_field_path:
        owner = lower_camel(owner_name)
        foreign_field_path = pluralize(owner) if kind == RelationKind.MANY_TO_ONE else owner
    return key_path, field_path, foreign_field_path


def normalize_options(opts: RelationOptions, shorthand: str) -> dict[str, Any]:
    """Expand a bare path string into ``{shorthand: path}``."""
    if opts is None:
        return {}
    if isinstance(opts, str):
        return {shorthand: opts}
    return dict(opts)


def link(
    owner: StaticModel,
    target: StaticModel,
    kind: RelationKind,
    opts: dict[str, Any],
) -> RelationDescriptor:
    """Create the relation on ``owner`` and its reference on ``target``.

    Both maps are updated while holding the registry lock, so the edge is
    visible from both ends or from neither.
    """
    key_path, field_path, foreign_field_path = relation_paths(
        kind, owner.model_name, target.model_name, opts, owner.config
    )
    relation = RelationDescriptor(
        kind=kind,
        model_name=target.model_name,
        key_path=key_path,
        field_path=field_path,
        foreign_field_path=foreign_field_path,
    )
    reference = mirrored(relation, owner.model_name)
    with owner.merlin.registry_lock:
        owner.relations[key_path] = relation
        target.references.setdefault(owner.model_name, {})[key_path] = reference
    logger.debug(
        "Linked %s.%s -> %s (%s)", owner.model_name, key_path, target.model_name, kind.value
    )
    return relation


# =============================================================================
# Resolution
# =============================================================================


@dataclass(frozen=True)
class Resolution:
    """A field path resolved to the model that supplies its value."""

    kind: ResolutionKind
    descriptor: RelationDescriptor
    target: StaticModel

    @property
    def path(self) -> str:
        if self.kind == ResolutionKind.RELATION:
            return self.descriptor.field_path
        return self.descriptor.foreign_field_path

    @property
    def many(self) -> bool:
        """True when the lookup yields a set rather than one model."""
        if self.kind == ResolutionKind.RELATION:
            return self.descriptor.kind == RelationKind.ONE_TO_MANY
        return self.descriptor.kind == RelationKind.MANY_TO_ONE

    def scoped_query(
        self,
        record: dict[str, Any],
        sub_query: dict[str, Any] | None = None,
        id_key: str = "id",
    ) -> dict[str, Any] | None:
        """Query for the related records of ``record``.

        Returns:
            The caller's sub-query merged with the key condition, or None
            when ``record`` has no key to look up by
        """
        query = dict(sub_query or {})
        if self.kind == ResolutionKind.RELATION:
            key = get_path(record, self.descriptor.key_path)
            if key is None:
                return None
            if self.many:
                keys = key if isinstance(key, list) else [key]
                if not keys:
                    return None
                query[self.target.id_key] = {"$in": keys}
            else:
                query[self.target.id_key] = key
        else:
            record_id = record.get(id_key)
            if record_id is None:
                return None
            query[self.descriptor.key_path] = record_id
        return query


def resolutions(model: StaticModel) -> list[Resolution]:
    """Every relation and reference of ``model`` as resolutions, relations first."""
    found: list[Resolution] = []
    for relation in list(model.relations.values()):
        found.append(
            Resolution(
                kind=ResolutionKind.RELATION,
                descriptor=relation,
                target=model.merlin.get_model(relation.model_name),
            )
        )
    for by_key in list(model.references.values()):
        for reference in list(by_key.values()):
            found.append(
                Resolution(
                    kind=ResolutionKind.REFERENCE,
                    descriptor=reference,
                    target=model.merlin.get_model(reference.model_name),
                )
            )
    return found


def mirrored(descriptor: RelationDescriptor, model_name: str) -> ReferenceDescriptor:
    """The reference a relation implies on its foreign model."""
    values = {f.name: getattr(descriptor, f.name) for f in dataclasses.fields(descriptor)}
    values["model_name"] = model_name
    return ReferenceDescriptor(**values)
