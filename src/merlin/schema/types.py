"""Field type registry mapping schema type tags to JSON Schema fragments."""

from dataclasses import dataclass, field
from typing import Any

EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

URL_PATTERN = r"^[hH][tT][tT][pP][sS]?://[^\s/$.?#].[^\s]*$"

UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

DATETIME_PATTERN = r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?$"


@dataclass
class FieldType:
    name: str
    json_types: list[str]
    keywords: dict[str, Any] = field(default_factory=dict)
    # JSON Schema keywords that min_length/max_length map to
    length_keywords: tuple[str, str] = ("minLength", "maxLength")

    def fragment(self, nullable: bool) -> dict[str, Any]:
        """JSON Schema fragment for a value of this type."""
        fragment: dict[str, Any] = dict(self.keywords)
        if self.json_types:
            types = list(self.json_types)
            if nullable:
                types.append("null")
            fragment["type"] = types[0] if len(types) == 1 else types
        return fragment


# Built-in field types
FIELD_TYPES: dict[str, FieldType] = {
    "id": FieldType(name="id", json_types=["string", "integer"]),
    "uuid": FieldType(name="uuid", json_types=["string"], keywords={"pattern": UUID_PATTERN}),
    "string": FieldType(name="string", json_types=["string"]),
    "name": FieldType(name="name", json_types=["string"]),
    "text": FieldType(name="text", json_types=["string"]),
    "email": FieldType(name="email", json_types=["string"], keywords={"pattern": EMAIL_PATTERN}),
    "url": FieldType(name="url", json_types=["string"], keywords={"pattern": URL_PATTERN}),
    "date": FieldType(name="date", json_types=["string"], keywords={"pattern": DATE_PATTERN}),
    "datetime": FieldType(
        name="datetime", json_types=["string"], keywords={"pattern": DATETIME_PATTERN}
    ),
    "number": FieldType(name="number", json_types=["number"]),
    "integer": FieldType(name="integer", json_types=["integer"]),
    "boolean": FieldType(name="boolean", json_types=["boolean"]),
    "array": FieldType(
        name="array", json_types=["array"], length_keywords=("minItems", "maxItems")
    ),
    "object": FieldType(name="object", json_types=["object"]),
    "any": FieldType(name="any", json_types=[]),
}


def get_field_type(type_name: str) -> FieldType:
    """Get field type by name, defaulting to string."""
    return FIELD_TYPES.get(type_name, FIELD_TYPES["string"])


def is_known_type(type_name: str) -> bool:
    return type_name in FIELD_TYPES
