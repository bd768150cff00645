"""Exception types raised by Merlin.

Configuration problems are raised synchronously at the call site.
Everything else propagates out of the awaited operation that hit it.
Driver errors are never wrapped.
"""

from __future__ import annotations

from dataclasses import dataclass


class MerlinError(Exception):
    """Base class for all Merlin errors."""

    pass


class ConfigurationError(MerlinError):
    """Orchestrator, model or relation set up incorrectly."""

    pass


class HookError(MerlinError):
    """A hook handler misbehaved in a way the hub cannot honour."""

    pass


class StreamConsumedError(MerlinError):
    """A stream was consumed a second time."""

    pass


@dataclass
class FieldError:
    """A single field-level schema violation."""

    field: str
    message: str
    code: str = "INVALID"

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message, "code": self.code}

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class SchemaValidationError(MerlinError):
    """A record violates one or more schema rules.

    All violations found in one pass are reported together.
    """

    def __init__(self, errors: list[FieldError]):
        self.errors = errors
        summary = "; ".join(str(e) for e in errors)
        super().__init__(f"Schema validation failed: {summary}")


class PathNotFoundError(MerlinError):
    """A field path is not a relation or reference of the model."""

    def __init__(self, model_name: str, path: str):
        self.model_name = model_name
        self.path = path
        super().__init__(f"{model_name} has no relation or reference at '{path}'")


class SubQueryError(MerlinError):
    """Write operations only target their own collection."""

    def __init__(self, model_name: str, paths: list[str]):
        self.model_name = model_name
        self.paths = paths
        super().__init__(
            f"{model_name} update/remove queries cannot contain sub-queries "
            f"(found at {', '.join(paths)})"
        )


class NewModelError(MerlinError):
    """The operation needs a persisted model."""

    pass


class RecordNotFoundError(MerlinError):
    """The stored record backing a model no longer exists."""

    pass


class ReservedPropertyError(MerlinError):
    """A record field collides with a model attribute."""

    def __init__(self, model_name: str, field: str):
        self.model_name = model_name
        self.field = field
        super().__init__(
            f"Field '{field}' of a {model_name} record collides with a reserved "
            "model property"
        )
