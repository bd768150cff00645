"""Declarative model schema.

A Schema collects everything a model class is built from: field rules,
virtual fields, instance methods, static methods, pre/post hooks and
plugins.

Usage:
    schema = Schema({"name": {"type": "string", "required": True}, "age": "integer"})
    schema.method("greet", lambda self: f"Hello {self.name}")
    schema.pre("save", normalize_name)
    merlin.model("User", schema)
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any

from merlin.errors import FieldError, SchemaValidationError
from merlin.schema.rules import SchemaRule, VirtualRule
from merlin.schema.types import is_known_type
from merlin.schema.validator import RecordValidator

logger = logging.getLogger(__name__)

Plugin = Callable[["Schema", dict[str, Any]], Any]


class Schema:
    """Field rules, virtuals, methods, statics and hooks for one model."""

    def __init__(self, rules: dict[str, Any] | None = None):
        self.rules: dict[str, SchemaRule] = {}
        self.virtuals: dict[str, VirtualRule] = {}
        self.methods: dict[str, Callable[..., Any]] = {}
        self.statics: dict[str, Callable[..., Any]] = {}
        self.pre_hooks: dict[str, list[Callable[..., Any]]] = {}
        self.post_hooks: dict[str, list[Callable[..., Any]]] = {}
        self._plugins: list[Plugin] = []
        self._validator: RecordValidator | None = None
        if rules:
            self.add(rules)

    # =========================================================================
    # Field rules
    # =========================================================================

    def add(self, rules: dict[str, Any], prefix: str = "") -> Schema:
        """Merge nested rule mappings into dotted-path rules.

        A string value is shorthand for ``{"type": value}``. Nested mappings
        are walked until a node with a string ``type`` is reached.
        """
        for key, value in rules.items():
            path = f"{prefix}.{key}" if prefix else key
            if isinstance(value, str):
                self._add_rule(path, SchemaRule(type=value))
            elif isinstance(value, SchemaRule):
                self._add_rule(path, value)
            elif isinstance(value, dict) and isinstance(value.get("type"), str):
                self._add_rule(path, SchemaRule.from_dict(value))
            elif isinstance(value, dict):
                self.add(value, path)
            else:
                raise TypeError(f"Invalid schema rule at '{path}': {value!r}")
        return self

    def _add_rule(self, path: str, rule: SchemaRule) -> None:
        if not is_known_type(rule.type):
            logger.warning("Unknown type '%s' at '%s', validating as string", rule.type, path)
        self.rules[path] = rule
        self._validator = None

    def get(self, path: str) -> SchemaRule | None:
        return self.rules.get(path)

    def paths(self) -> list[str]:
        return list(self.rules)

    def defaults(self) -> dict[str, Any]:
        """Default values keyed by path. Callables are left uncalled."""
        return {path: rule.default for path, rule in self.rules.items() if rule.has_default}

    # =========================================================================
    # Methods, statics, virtuals
    # =========================================================================

    def method(self, name: str, fn: Callable[..., Any] | None = None) -> Any:
        """Set an instance method, or get it when ``fn`` is omitted."""
        if fn is None:
            return self.methods.get(name)
        self.methods[name] = fn
        return self

    def static(self, name: str, fn: Callable[..., Any] | None = None) -> Any:
        """Set a static method, or get it when ``fn`` is omitted.

        Statics receive the model's StaticModel as first argument.
        """
        if fn is None:
            return self.statics.get(name)
        self.statics[name] = fn
        return self

    def virtual(
        self,
        path: str,
        get: Callable[[Any], Any] | None = None,
        set: Callable[[Any, Any], None] | None = None,
    ) -> Schema:
        self.virtuals[path] = VirtualRule(get=get, set=set)
        return self

    # =========================================================================
    # Hooks
    # =========================================================================

    def pre(self, hook_name: str, handler: Callable[..., Any]) -> Schema:
        self.pre_hooks.setdefault(hook_name, []).append(handler)
        return self

    def post(self, hook_name: str, handler: Callable[..., Any]) -> Schema:
        self.post_hooks.setdefault(hook_name, []).append(handler)
        return self

    async def execute(
        self, hook_name: str, ctx: Any, fn: Callable[..., Any], *args: Any
    ) -> Any:
        """Run ``fn`` wrapped by the pre and post hooks of ``hook_name``.

        Pre handlers are called as ``handler(ctx, *args)``, then
        ``fn(ctx)``, then post handlers as ``handler(ctx, result)``. Each
        step may be a coroutine and runs only after the previous one
        finished. The first exception stops everything after it.

        Returns:
            The result of ``fn``
        """
        for handler in list(self.pre_hooks.get(hook_name, [])):
            await _call(handler, ctx, *args)

        result = await _call(fn, ctx)

        for handler in list(self.post_hooks.get(hook_name, [])):
            await _call(handler, ctx, result)
        return result

    # =========================================================================
    # Plugins
    # =========================================================================

    def plugin(self, fn: Plugin, opts: dict[str, Any] | None = None) -> Schema:
        """Apply ``fn(schema, opts)`` once; repeated registrations are ignored.

        A plugin that raises is not recorded, so it can be registered again.
        """
        if any(applied is fn for applied in self._plugins):
            return self
        fn(self, opts or {})
        self._plugins.append(fn)
        return self

    # =========================================================================
    # Validation
    # =========================================================================

    def errors(self, record: dict[str, Any], partial: bool = False) -> list[FieldError]:
        """Field errors for ``record`` without raising."""
        if self._validator is None:
            self._validator = RecordValidator(self.rules)
        return self._validator.validate(record, partial=partial)

    async def validate(self, record: dict[str, Any], partial: bool = False) -> None:
        """Validate ``record`` against every rule.

        Raises:
            SchemaValidationError: With all field errors, if any rule is violated
        """
        errors = self.errors(record, partial=partial)
        if errors:
            raise SchemaValidationError(errors)


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result
