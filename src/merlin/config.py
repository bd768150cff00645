"""Orchestrator configuration."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any

from merlin.errors import ConfigurationError

MODEL_NAME_PLACEHOLDER = "{modelName}"

_TRUE_VALUES = ("1", "true", "yes", "on")

# Keys accepted by from_dict, camelCase as used in YAML/JSON documents
_CAMEL_KEYS = {
    "idKey": "id_key",
    "singularForeignKey": "singular_foreign_key",
    "pluralForeignKey": "plural_foreign_key",
    "autoPopulateByQuery": "auto_populate_by_query",
    "skipSchemaValidation": "skip_schema_validation",
    "databaseUrl": "database_url",
}


@dataclass(frozen=True)
class MerlinConfig:
    """Immutable settings shared by an orchestrator and its models.

    Foreign key templates must contain ``{modelName}``, which is replaced
    by the lower-camel-cased name of the related model.
    """

    id_key: str = "id"
    singular_foreign_key: str = "{modelName}Id"
    plural_foreign_key: str = "{modelName}Ids"
    auto_populate_by_query: bool = True
    skip_schema_validation: bool = False
    database_url: str | None = None

    def __post_init__(self) -> None:
        if not self.id_key:
            raise ConfigurationError("id_key must not be empty")
        for name in ("singular_foreign_key", "plural_foreign_key"):
            template = getattr(self, name)
            if MODEL_NAME_PLACEHOLDER not in template:
                raise ConfigurationError(
                    f"{name} must contain {MODEL_NAME_PLACEHOLDER}, got '{template}'"
                )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MerlinConfig:
        """Build from a mapping with camelCase or snake_case keys.

        Raises:
            ConfigurationError: For unknown keys
        """
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_KEYS.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown configuration option '{key}'")
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def from_env(cls) -> MerlinConfig:
        """Create config from environment variables.

        Resolution order for the database URL:
        1. MERLIN_DATABASE_URL
        2. DATABASE_URL (standard)
        3. None (driver must be set explicitly)
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("MERLIN_ID_KEY"):
            kwargs["id_key"] = os.environ["MERLIN_ID_KEY"]
        if os.environ.get("MERLIN_SINGULAR_FOREIGN_KEY"):
            kwargs["singular_foreign_key"] = os.environ["MERLIN_SINGULAR_FOREIGN_KEY"]
        if os.environ.get("MERLIN_PLURAL_FOREIGN_KEY"):
            kwargs["plural_foreign_key"] = os.environ["MERLIN_PLURAL_FOREIGN_KEY"]
        if "MERLIN_AUTO_POPULATE" in os.environ:
            kwargs["auto_populate_by_query"] = _env_flag("MERLIN_AUTO_POPULATE")
        if "MERLIN_SKIP_VALIDATION" in os.environ:
            kwargs["skip_schema_validation"] = _env_flag("MERLIN_SKIP_VALIDATION")

        url = os.environ.get("MERLIN_DATABASE_URL") or os.environ.get("DATABASE_URL")
        if url:
            kwargs["database_url"] = url
        return cls(**kwargs)

    def replace(self, **changes: Any) -> MerlinConfig:
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)

    def singular_key(self, name: str) -> str:
        return self.singular_foreign_key.replace(MODEL_NAME_PLACEHOLDER, name)

    def plural_key(self, name: str) -> str:
        return self.plural_foreign_key.replace(MODEL_NAME_PLACEHOLDER, name)


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUE_VALUES
