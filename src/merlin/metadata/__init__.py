"""YAML model definitions: loading, validation and registration."""

from merlin.metadata.loader import MetadataLoader, ModelDefinition, RelationDefinition
from merlin.metadata.validator import ValidationIssue, validate_metadata_dir, validate_yaml_file

__all__ = [
    "MetadataLoader",
    "ModelDefinition",
    "RelationDefinition",
    "ValidationIssue",
    "validate_metadata_dir",
    "validate_yaml_file",
]
