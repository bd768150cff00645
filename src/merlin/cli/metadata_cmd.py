"""Metadata CLI commands — validate and show."""

from pathlib import Path

import click

from merlin.errors import MerlinError
from merlin.merlin import Merlin
from merlin.metadata.loader import MetadataLoader
from merlin.metadata.validator import validate_metadata_dir, validate_yaml_file
from merlin.persistence.memory import MemoryDriver


@click.group()
def metadata():
    """Model definition commands."""
    pass


@metadata.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Treat warnings as errors.",
)
def validate(path: Path, strict: bool):
    """Validate model definition YAML files in PATH (a directory or one file)."""
    # ── Schema (JSON Schema) validation ─────────────────────────────────────
    if path.is_file():
        issues = validate_yaml_file(path)
    else:
        issues = validate_metadata_dir(path, strict=strict)

    errors = [i for i in issues if i.severity == "error"]
    warnings = [i for i in issues if i.severity == "warning"]

    for issue in issues:
        colour = "red" if issue.severity == "error" else "yellow"
        click.echo(click.style(str(issue), fg=colour))

    if errors:
        click.echo(
            click.style(
                f"\n{len(errors)} schema error(s) found"
                + (f", {len(warnings)} warning(s)" if warnings else ""),
                fg="red",
                bold=True,
            )
        )
        raise SystemExit(1)

    if warnings:
        click.echo(click.style(f"{len(warnings)} warning(s) found.", fg="yellow"))

    # ── Semantic (loader) validation ─────────────────────────────────────────
    # Only runs for a whole directory, where cross references can be checked
    if path.is_dir():
        try:
            loader = _register(path)
        except (ValueError, MerlinError) as e:
            click.echo(click.style(f"\nSemantic validation failed: {e}", fg="red"), err=True)
            raise SystemExit(1)

        click.echo(f"\nLoaded {len(loader.models)} model(s):")
        for name in sorted(loader.models):
            definition = loader.models[name]
            click.echo(
                f"  ✓ {name} ({len(definition.fields)} fields, "
                f"{len(definition.relations)} relations)"
            )

    click.echo(click.style("\nAll metadata is valid.", fg="green", bold=True))


@metadata.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
def show(path: Path):
    """Show models, collections, fields and the resolved relation graph."""
    try:
        merlin = Merlin()
        merlin.set_driver(MemoryDriver)
        loader = MetadataLoader(path)
        loader.load_all()
        loader.register(merlin)
    except (ValueError, MerlinError) as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)

    for name in sorted(merlin.models):
        static = merlin.models[name]
        click.echo(click.style(f"{name}", bold=True) + f" -> {static.collection_name}")
        schema = static.schema
        for field_path in schema.paths() if schema else []:
            rule = schema.get(field_path)
            required = " (required)" if rule.required else ""
            click.echo(f"    {field_path}: {rule.type}{required}")
        for key_path, relation in static.relations.items():
            click.echo(
                f"    relation {key_path} -> {relation.model_name}"
                f" [{relation.kind.value}] at {relation.field_path}"
            )
        for owner, by_key in static.references.items():
            for key_path, reference in by_key.items():
                click.echo(
                    f"    reference {owner}.{key_path} [{reference.kind.value}]"
                    f" at {reference.foreign_field_path}"
                )


def _register(path: Path) -> MetadataLoader:
    """Load definitions and register them on a throwaway in-memory orchestrator."""
    loader = MetadataLoader(path)
    loader.load_all()
    merlin = Merlin()
    merlin.set_driver(MemoryDriver)
    loader.register(merlin)
    return loader
