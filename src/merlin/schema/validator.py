"""Record validation against schema rules.

Required checks run directly against the record. Types and constraints are
compiled into a JSON Schema (draft 2020-12) document and checked with
jsonschema, which reports every violation in one pass.
"""

from __future__ import annotations

from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as JsonSchemaError

from merlin.errors import FieldError
from merlin.paths import get_path, split
from merlin.schema.rules import SchemaRule
from merlin.schema.types import get_field_type

# jsonschema keyword -> error code
_KEYWORD_CODES = {
    "minimum": "MIN_VALUE",
    "maximum": "MAX_VALUE",
    "minLength": "MIN_LENGTH",
    "minItems": "MIN_LENGTH",
    "maxLength": "MAX_LENGTH",
    "maxItems": "MAX_LENGTH",
    "enum": "INVALID_OPTION",
}


def rule_fragment(rule: SchemaRule) -> dict[str, Any]:
    """JSON Schema fragment for one rule. ``None`` is always accepted here;
    required-ness is checked separately."""
    field_type = get_field_type(rule.type)
    fragment = field_type.fragment(nullable=True)

    if rule.min is not None:
        fragment["minimum"] = rule.min
    if rule.max is not None:
        fragment["maximum"] = rule.max

    length_keys = field_type.length_keywords
    if rule.min_length is not None:
        fragment[length_keys[0]] = rule.min_length
    if rule.max_length is not None:
        fragment[length_keys[1]] = rule.max_length

    if rule.pattern:
        # Kept separate from any built-in type pattern so both apply
        fragment["allOf"] = [{"pattern": rule.pattern}]
    if rule.enum is not None:
        allowed = list(rule.enum)
        if None not in allowed:
            allowed.append(None)
        fragment["enum"] = allowed
    return fragment


def build_json_schema(rules: dict[str, SchemaRule]) -> dict[str, Any]:
    """Nest dotted rule paths into one object schema.

    Undeclared fields are allowed.
    """
    root: dict[str, Any] = {"type": "object", "properties": {}}
    for path, rule in rules.items():
        parts = split(path)
        node = root
        for part in parts[:-1]:
            properties = node.setdefault("properties", {})
            child = properties.get(part)
            if child is None:
                child = {"type": ["object", "null"], "properties": {}}
                properties[part] = child
            node = child
        node.setdefault("properties", {})[parts[-1]] = rule_fragment(rule)
    return root


class RecordValidator:
    """Validates records against a fixed set of rules."""

    def __init__(self, rules: dict[str, SchemaRule]):
        self.rules = dict(rules)
        self._validator = Draft202012Validator(build_json_schema(self.rules))

    def validate(self, record: dict[str, Any], partial: bool = False) -> list[FieldError]:
        """Collect every violation in ``record``.

        Args:
            record: Plain record to check
            partial: Skip required checks (for update patches)

        Returns:
            List of field errors, empty when the record is valid
        """
        errors: list[FieldError] = []
        missing: set[str] = set()

        if not partial:
            for path, rule in self.rules.items():
                if rule.required and _is_empty(get_path(record, path)):
                    missing.add(path)
                    errors.append(
                        FieldError(field=path, message=f"{path} is required", code="REQUIRED")
                    )

        found = sorted(self._validator.iter_errors(record), key=_field_path)
        for error in found:
            path = _field_path(error)
            if path in missing:
                continue
            errors.append(
                FieldError(field=path, message=error.message, code=self._error_code(path, error))
            )
        return errors

    def _error_code(self, path: str, error: JsonSchemaError) -> str:
        rule = self.rules.get(path)
        if error.validator == "type":
            tag = rule.type if rule else "type"
            return f"INVALID_{tag.upper()}"
        if error.validator == "pattern":
            if rule and rule.pattern and error.validator_value == rule.pattern:
                return "PATTERN_MISMATCH"
            tag = rule.type if rule else "format"
            return f"INVALID_{tag.upper()}"
        return _KEYWORD_CODES.get(str(error.validator), "INVALID")


def _field_path(error: JsonSchemaError) -> str:
    """Dotted path of the offending value, e.g. ``profile.age``."""
    return ".".join(str(part) for part in error.absolute_path)


def _is_empty(value: Any) -> bool:
    """Check if a value is considered empty."""
    if value is None:
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    if isinstance(value, (list, dict)) and len(value) == 0:
        return True
    return False
