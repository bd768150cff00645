"""Load model definitions from YAML files.

One file per model::

    model: BlogPost
    collection: posts          # optional
    fields:
      title: {type: name, required: true}
      body: text
      meta:
        views: {type: integer, min: 0, default: 0}
    defaults:
      published: false
    relations:
      - kind: manyHaveOne
        model: User
        fieldPath: author
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from merlin.merlin import Merlin
from merlin.static_model import StaticModel

# Relation kind in YAML -> declaration method on StaticModel
RELATION_METHODS: dict[str, str] = {
    "hasOne": "has_one",
    "hasMany": "has_many",
    "manyHaveOne": "many_have_one",
    "belongsToOne": "belongs_to_one",
    "belongsToMany": "belongs_to_many",
    "manyBelongToOne": "many_belong_to_one",
}

_PATH_OPTIONS = ("keyPath", "fieldPath", "foreignFieldPath")


@dataclass
class RelationDefinition:
    kind: str
    model: str
    path: str | None = None
    key_path: str | None = None
    field_path: str | None = None
    foreign_field_path: str | None = None

    @property
    def method(self) -> str:
        return RELATION_METHODS[self.kind]

    def options(self) -> str | dict[str, str] | None:
        """Declaration options: the bare path, or the explicit paths."""
        explicit = {
            name: value
            for name, value in zip(
                _PATH_OPTIONS, (self.key_path, self.field_path, self.foreign_field_path)
            )
            if value
        }
        if not explicit:
            return self.path
        if self.path:
            shorthand = "foreignFieldPath" if self.kind.startswith(("belong", "manyBelong")) else "fieldPath"
            explicit.setdefault(shorthand, self.path)
        return explicit


@dataclass
class ModelDefinition:
    name: str
    fields: dict[str, Any] = field(default_factory=dict)
    collection: str | None = None
    defaults: dict[str, Any] = field(default_factory=dict)
    relations: list[RelationDefinition] = field(default_factory=list)
    source: Path | None = None


class MetadataLoader:
    """Loads model definitions from a directory of YAML files."""

    def __init__(self, metadata_path: Path):
        self.metadata_path = Path(metadata_path)
        self.models: dict[str, ModelDefinition] = {}

    def load_all(self) -> None:
        """Load every ``*.yaml``/``*.yml`` file, then check cross references.

        Raises:
            ValueError: For duplicate model names, unknown relation kinds or
                relations to models that are not defined
        """
        if not self.metadata_path.is_dir():
            raise ValueError(f"Metadata directory not found: {self.metadata_path}")

        files = sorted(self.metadata_path.glob("*.yaml")) + sorted(self.metadata_path.glob("*.yml"))
        for yaml_file in files:
            with open(yaml_file) as f:
                data = yaml.safe_load(f)
            if data and "model" in data:
                definition = self._resolve_model(data, yaml_file)
                if definition.name in self.models:
                    raise ValueError(
                        f"Model '{definition.name}' is defined in both "
                        f"{self.models[definition.name].source} and {yaml_file}"
                    )
                self.models[definition.name] = definition

        self._validate_relations()

    def _resolve_model(self, data: dict, source: Path) -> ModelDefinition:
        relations = []
        for item in data.get("relations") or []:
            kind = item.get("kind")
            if kind not in RELATION_METHODS:
                raise ValueError(
                    f"Model '{data['model']}' has unknown relation kind '{kind}'; "
                    f"expected one of {', '.join(RELATION_METHODS)}"
                )
            relations.append(
                RelationDefinition(
                    kind=kind,
                    model=item["model"],
                    path=item.get("path"),
                    key_path=item.get("keyPath"),
                    field_path=item.get("fieldPath"),
                    foreign_field_path=item.get("foreignFieldPath"),
                )
            )
        return ModelDefinition(
            name=data["model"],
            fields=data.get("fields") or {},
            collection=data.get("collection"),
            defaults=data.get("defaults") or {},
            relations=relations,
            source=source,
        )

    def _validate_relations(self) -> None:
        for definition in self.models.values():
            for relation in definition.relations:
                if relation.model not in self.models:
                    raise ValueError(
                        f"Model '{definition.name}' relates to unknown model '{relation.model}'"
                    )

    def list_models(self) -> list[str]:
        return list(self.models)

    def get_model(self, name: str) -> ModelDefinition | None:
        return self.models.get(name)

    def register(self, merlin: Merlin) -> dict[str, StaticModel]:
        """Register every loaded model on ``merlin``, then declare relations.

        Models are registered first so relations may point in any direction.
        """
        registered: dict[str, StaticModel] = {}
        for name, definition in self.models.items():
            registered[name] = merlin.model(
                name,
                definition.fields or True,
                collection_name=definition.collection,
                defaults=definition.defaults,
            )
        for name, definition in self.models.items():
            static = registered[name]
            for relation in definition.relations:
                getattr(static, relation.method)(relation.model, relation.options())
        return registered
