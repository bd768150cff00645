"""
metadata/validator.py — JSON Schema validation for model definition YAML files.

Usage:
    from merlin.metadata.validator import validate_metadata_dir, validate_yaml_file

    issues = validate_metadata_dir(Path("models"))
    for issue in issues:
        print(issue)
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

logger = logging.getLogger(__name__)

_SCHEMAS_DIR = Path(__file__).parent / "schemas"
MODEL_SCHEMA = "model.schema.json"


@dataclass
class ValidationIssue:
    """A single validation finding for a model definition file."""

    file: Path
    message: str
    path: str = ""          # location within the document, e.g. "relations[0]/kind"
    severity: str = "error" # "error" | "warning"

    def __str__(self) -> str:
        loc = f" at {self.path}" if self.path else ""
        return f"[{self.severity.upper()}] {self.file}{loc}: {self.message}"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


@lru_cache(maxsize=None)
def _load_schema(name: str) -> dict[str, Any]:
    with (_SCHEMAS_DIR / name).open() as fh:
        return json.load(fh)


def _json_path(error: ValidationError) -> str:
    """Convert a jsonschema ValidationError path to a readable string."""
    parts = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(str(p))
    return "/".join(parts).replace("/[", "[")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def model_validator() -> Draft202012Validator:
    return Draft202012Validator(_load_schema(MODEL_SCHEMA))


def validate_yaml_file(
    yaml_path: Path,
    *,
    validator: Draft202012Validator | None = None,
) -> list[ValidationIssue]:
    """
    Validate a single model definition file.

    Args:
        yaml_path: Path to the YAML file to validate.
        validator: Pre-built validator.  Built automatically if omitted.

    Returns:
        A list of :class:`ValidationIssue` objects (empty on success).
    """
    try:
        with yaml_path.open() as fh:
            doc = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        return [ValidationIssue(file=yaml_path, message=f"YAML parse error: {exc}")]

    if doc is None:
        return [
            ValidationIssue(file=yaml_path, message="File is empty or contains only whitespace")
        ]

    if validator is None:
        validator = model_validator()

    return [
        ValidationIssue(file=yaml_path, message=error.message, path=_json_path(error))
        for error in sorted(validator.iter_errors(doc), key=lambda e: list(e.absolute_path))
    ]


def validate_metadata_dir(metadata_dir: Path, *, strict: bool = False) -> list[ValidationIssue]:
    """
    Validate every ``.yaml``/``.yml`` file directly under *metadata_dir*.

    Args:
        metadata_dir: Directory holding one model definition per file.
        strict:       If ``True``, warnings are escalated to errors.

    Returns:
        A flat list of issues across all files; empty means all files are valid.
    """
    if not metadata_dir.is_dir():
        return [
            ValidationIssue(
                file=metadata_dir,
                message=f"Metadata directory does not exist: {metadata_dir}",
            )
        ]

    validator = model_validator()
    files = sorted(metadata_dir.glob("*.yaml")) + sorted(metadata_dir.glob("*.yml"))
    if not files:
        return [
            ValidationIssue(
                file=metadata_dir,
                message="No model definition files found",
                severity="warning" if not strict else "error",
            )
        ]

    all_issues: list[ValidationIssue] = []
    for yaml_file in files:
        file_issues = validate_yaml_file(yaml_file, validator=validator)
        logger.debug("Validated %s: %d issue(s)", yaml_file, len(file_issues))
        all_issues.extend(file_issues)
    return all_issues
