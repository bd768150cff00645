"""
Tests for merlin.metadata

Covers:
  - validate_yaml_file()            — single-file validation (valid + invalid)
  - validate_metadata_dir()         — directory walk, empty directories
  - MetadataLoader.load_all()       — parsing, duplicate and dangling checks
  - MetadataLoader.register()       — models and relations on an orchestrator
"""
from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from merlin import Merlin, MemoryDriver
from merlin.metadata import MetadataLoader, validate_metadata_dir, validate_yaml_file
from merlin.relations import RelationKind


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _write_yaml(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data, sort_keys=False))
    return path


def _write_raw(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


USER = {
    "model": "User",
    "fields": {
        "name": {"type": "name", "required": True},
        "email": "email",
        "profile": {"age": {"type": "integer", "min": 0}},
    },
    "defaults": {"active": True},
    "relations": [{"kind": "hasMany", "model": "Post"}],
}

POST = {
    "model": "Post",
    "collection": "articles",
    "fields": {"title": "string"},
    "relations": [{"kind": "belongsToOne", "model": "Editor", "path": "editor"}],
}

EDITOR = {"model": "Editor"}


@pytest.fixture
def metadata_dir(tmp_path):
    _write_yaml(tmp_path / "user.yaml", USER)
    _write_yaml(tmp_path / "post.yaml", POST)
    _write_yaml(tmp_path / "editor.yml", EDITOR)
    return tmp_path


# ---------------------------------------------------------------------------
# validate_yaml_file
# ---------------------------------------------------------------------------

class TestValidateYamlFile:
    def test_valid_file(self, metadata_dir):
        assert validate_yaml_file(metadata_dir / "user.yaml") == []

    def test_missing_model_key(self, tmp_path):
        path = _write_yaml(tmp_path / "bad.yaml", {"fields": {}})
        issues = validate_yaml_file(path)
        assert len(issues) == 1
        assert "model" in issues[0].message

    def test_unknown_field_type(self, tmp_path):
        path = _write_yaml(tmp_path / "bad.yaml", {"model": "X", "fields": {"a": {"type": "bogus"}}})
        issues = validate_yaml_file(path)
        assert issues
        assert issues[0].path.startswith("fields/a")

    def test_unknown_relation_kind(self, tmp_path):
        path = _write_yaml(
            tmp_path / "bad.yaml",
            {"model": "X", "relations": [{"kind": "hasSome", "model": "Y"}]},
        )
        issues = validate_yaml_file(path)
        assert [i.path for i in issues] == ["relations[0]/kind"]

    def test_unknown_top_level_key(self, tmp_path):
        path = _write_yaml(tmp_path / "bad.yaml", {"model": "X", "colour": "red"})
        assert validate_yaml_file(path)[0].severity == "error"

    def test_empty_file(self, tmp_path):
        path = _write_raw(tmp_path / "empty.yaml", "")
        assert "empty" in validate_yaml_file(path)[0].message

    def test_yaml_parse_error(self, tmp_path):
        path = _write_raw(tmp_path / "broken.yaml", "model: [unclosed")
        assert "YAML parse error" in validate_yaml_file(path)[0].message

    def test_issue_str(self, tmp_path):
        path = _write_yaml(tmp_path / "bad.yaml", {"fields": {}})
        assert str(validate_yaml_file(path)[0]).startswith("[ERROR]")


# ---------------------------------------------------------------------------
# validate_metadata_dir
# ---------------------------------------------------------------------------

class TestValidateMetadataDir:
    def test_valid_directory(self, metadata_dir):
        assert validate_metadata_dir(metadata_dir) == []

    def test_missing_directory(self, tmp_path):
        issues = validate_metadata_dir(tmp_path / "nope")
        assert "does not exist" in issues[0].message

    def test_empty_directory_warns(self, tmp_path):
        [issue] = validate_metadata_dir(tmp_path)
        assert issue.severity == "warning"

    def test_empty_directory_strict(self, tmp_path):
        [issue] = validate_metadata_dir(tmp_path, strict=True)
        assert issue.severity == "error"

    def test_collects_issues_across_files(self, metadata_dir):
        _write_yaml(metadata_dir / "bad1.yaml", {"fields": {}})
        _write_yaml(metadata_dir / "bad2.yaml", {"model": 3})
        issues = validate_metadata_dir(metadata_dir)
        assert {i.file.name for i in issues} == {"bad1.yaml", "bad2.yaml"}


# ---------------------------------------------------------------------------
# MetadataLoader
# ---------------------------------------------------------------------------

class TestMetadataLoader:
    def test_load_all(self, metadata_dir):
        loader = MetadataLoader(metadata_dir)
        loader.load_all()
        assert sorted(loader.list_models()) == ["Editor", "Post", "User"]
        user = loader.get_model("User")
        assert user.defaults == {"active": True}
        assert user.relations[0].method == "has_many"
        assert loader.get_model("Post").collection == "articles"
        assert loader.get_model("Nobody") is None

    def test_relation_options(self, metadata_dir):
        loader = MetadataLoader(metadata_dir)
        loader.load_all()
        assert loader.get_model("User").relations[0].options() is None
        assert loader.get_model("Post").relations[0].options() == "editor"

    def test_duplicate_model(self, metadata_dir):
        _write_yaml(metadata_dir / "user2.yaml", {"model": "User"})
        with pytest.raises(ValueError, match="defined in both"):
            MetadataLoader(metadata_dir).load_all()

    def test_dangling_relation(self, tmp_path):
        _write_yaml(tmp_path / "a.yaml", {"model": "A", "relations": [{"kind": "hasOne", "model": "B"}]})
        with pytest.raises(ValueError, match="unknown model 'B'"):
            MetadataLoader(tmp_path).load_all()

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ValueError):
            MetadataLoader(tmp_path / "nope").load_all()

    def test_register_builds_models_and_relations(self, metadata_dir):
        merlin = Merlin()
        merlin.set_driver(MemoryDriver)
        loader = MetadataLoader(metadata_dir)
        loader.load_all()
        registered = loader.register(merlin)

        user = registered["User"]
        assert user.schema.paths() == ["name", "email", "profile.age"]
        assert user.defaults == {"active": True}
        assert user.relations["postIds"].kind == RelationKind.ONE_TO_MANY

        post = merlin.get_model("Post")
        assert post.collection_name == "articles"
        assert post.references["User"]["postIds"].foreign_field_path == "user"

        editor = merlin.get_model("Editor")
        assert editor.schema is None
        assert editor.relations["postId"].foreign_field_path == "editor"

    @pytest.mark.asyncio
    async def test_registered_models_work_end_to_end(self, metadata_dir):
        merlin = Merlin()
        merlin.set_driver(MemoryDriver)
        loader = MetadataLoader(metadata_dir)
        loader.load_all()
        loader.register(merlin)
        await merlin.connect()

        user = merlin.get_model("User")
        created = await user.create({"name": "Ada", "posts": [{"title": "Hello"}]})
        assert created.active is True
        assert await merlin.get_model("Post").count() == 0
