"""Merlin: an object-document mapper over pluggable storage drivers."""

from merlin.config import MerlinConfig
from merlin.delta import Delta
from merlin.errors import (
    ConfigurationError,
    FieldError,
    HookError,
    MerlinError,
    NewModelError,
    PathNotFoundError,
    RecordNotFoundError,
    ReservedPropertyError,
    SchemaValidationError,
    StreamConsumedError,
    SubQueryError,
)
from merlin.hooks import HookHub
from merlin.merlin import Merlin, MerlinStatus
from merlin.model import Model, build_model_class
from merlin.model_set import ModelSet
from merlin.persistence import Driver, MemoryDriver, SQLiteDriver, create_driver
from merlin.query import Query
from merlin.relations import RelationKind
from merlin.schema import Schema
from merlin.static_model import StaticModel

__version__ = "0.3.0"

__all__ = [
    "ConfigurationError",
    "Delta",
    "Driver",
    "FieldError",
    "HookError",
    "HookHub",
    "MemoryDriver",
    "Merlin",
    "MerlinConfig",
    "MerlinError",
    "MerlinStatus",
    "Model",
    "ModelSet",
    "NewModelError",
    "PathNotFoundError",
    "Query",
    "RecordNotFoundError",
    "RelationKind",
    "ReservedPropertyError",
    "SQLiteDriver",
    "Schema",
    "SchemaValidationError",
    "StaticModel",
    "StreamConsumedError",
    "SubQueryError",
    "build_model_class",
    "create_driver",
]
