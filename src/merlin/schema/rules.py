"""Schema rule types."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

# Rule attributes recognised in rule mappings, camelCase -> field name
_RULE_KEYS = {
    "type": "type",
    "required": "required",
    "min": "min",
    "max": "max",
    "minLength": "min_length",
    "min_length": "min_length",
    "maxLength": "max_length",
    "max_length": "max_length",
    "pattern": "pattern",
    "enum": "enum",
    "options": "enum",
    "default": "default",
}


@dataclass(frozen=True)
class SchemaRule:
    """Type and constraints declared for one field path.

    Attributes:
        type: Type tag (see merlin.schema.types)
        required: Value must be present and non-empty
        min / max: Numeric bounds (inclusive)
        min_length / max_length: String length or array size bounds
        pattern: Regex the string value must match
        enum: Allowed values
        default: Value (or zero-argument callable) applied on insert
        extra: Unrecognised attributes, kept for plugins
    """

    type: str
    required: bool = False
    min: float | None = None
    max: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    enum: tuple[Any, ...] | None = None
    default: Any = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaRule:
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            name = _RULE_KEYS.get(key)
            if name is None:
                extra[key] = value
            elif name == "enum" and value is not None:
                kwargs[name] = tuple(value)
            else:
                kwargs[name] = value
        return cls(extra=extra, **kwargs)

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type}
        if self.required:
            result["required"] = True
        for key, name in (
            ("min", "min"),
            ("max", "max"),
            ("minLength", "min_length"),
            ("maxLength", "max_length"),
            ("pattern", "pattern"),
        ):
            value = getattr(self, name)
            if value is not None:
                result[key] = value
        if self.enum is not None:
            result["enum"] = list(self.enum)
        if self.default is not None and not callable(self.default):
            result["default"] = self.default
        result.update(self.extra)
        return result


@dataclass(frozen=True)
class VirtualRule:
    """Computed field: not stored, read and written through callables."""

    get: Callable[[Any], Any] | None = None
    set: Callable[[Any, Any], None] | None = None
