"""Model schemas: field rules, virtuals, methods, statics, hooks, plugins."""

from merlin.schema.rules import SchemaRule, VirtualRule
from merlin.schema.schema import Schema
from merlin.schema.types import FIELD_TYPES, FieldType, get_field_type
from merlin.schema.validator import RecordValidator, build_json_schema

__all__ = [
    "FIELD_TYPES",
    "FieldType",
    "RecordValidator",
    "Schema",
    "SchemaRule",
    "VirtualRule",
    "build_json_schema",
    "get_field_type",
]
