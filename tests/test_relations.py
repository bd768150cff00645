"""Tests for relation declarations and path resolution."""

import pytest

from merlin import MemoryDriver, Merlin, MerlinConfig
from merlin.errors import ConfigurationError, PathNotFoundError
from merlin.relations import RelationKind, ResolutionKind, relation_paths


@pytest.fixture
def models(recording_merlin):
    simple = recording_merlin.model("SimpleModel", True)
    related = recording_merlin.model("RelatedModel", True)
    return simple, related


def _edge(descriptor):
    return (
        descriptor.kind,
        descriptor.model_name,
        descriptor.key_path,
        descriptor.field_path,
        descriptor.foreign_field_path,
    )


# =============================================================================
# Owning side declarations
# =============================================================================


class TestOwningDeclarations:
    def test_has_one_with_path_shorthand(self, models):
        simple, related = models
        simple.has_one("RelatedModel", "path")
        assert _edge(simple.relations["pathId"]) == (
            RelationKind.ONE_TO_ONE, "RelatedModel", "pathId", "path", "simpleModel",
        )
        assert _edge(related.references["SimpleModel"]["pathId"]) == (
            RelationKind.ONE_TO_ONE, "SimpleModel", "pathId", "path", "simpleModel",
        )

    def test_has_many_defaults(self, models):
        simple, related = models
        simple.has_many("RelatedModel")
        assert _edge(simple.relations["relatedModelIds"]) == (
            RelationKind.ONE_TO_MANY, "RelatedModel", "relatedModelIds", "relatedModels", "simpleModel",
        )
        reference = related.references["SimpleModel"]["relatedModelIds"]
        assert reference.kind == RelationKind.ONE_TO_MANY
        assert reference.model_name == "SimpleModel"

    def test_many_have_one_pluralizes_foreign_path(self, models):
        simple, related = models
        simple.many_have_one("RelatedModel")
        assert _edge(simple.relations["relatedModelId"]) == (
            RelationKind.MANY_TO_ONE, "RelatedModel", "relatedModelId", "relatedModel", "simpleModels",
        )
        assert "relatedModelId" in related.references["SimpleModel"]

    def test_explicit_paths_win(self, models):
        simple, _ = models
        simple.has_many(
            "RelatedModel",
            {"keyPath": "refs", "fieldPath": "items", "foreignFieldPath": "owner"},
        )
        assert _edge(simple.relations["refs"]) == (
            RelationKind.ONE_TO_MANY, "RelatedModel", "refs", "items", "owner",
        )

    def test_declarations_chain(self, models):
        simple, _ = models
        assert simple.has_one("RelatedModel") is simple


# =============================================================================
# Foreign side declarations
# =============================================================================


class TestBelongsDeclarations:
    def test_belongs_to_one_mirrors_onto_foreign_model(self, models):
        simple, related = models
        simple.belongs_to_one("RelatedModel")
        assert _edge(related.relations["simpleModelId"]) == (
            RelationKind.ONE_TO_ONE, "SimpleModel", "simpleModelId", "simpleModel", "relatedModel",
        )
        assert _edge(simple.references["RelatedModel"]["simpleModelId"]) == (
            RelationKind.ONE_TO_ONE, "RelatedModel", "simpleModelId", "simpleModel", "relatedModel",
        )

    def test_belongs_to_many(self, models):
        simple, related = models
        simple.belongs_to_many("RelatedModel")
        assert _edge(related.relations["simpleModelIds"]) == (
            RelationKind.ONE_TO_MANY, "SimpleModel", "simpleModelIds", "simpleModels", "relatedModel",
        )
        assert "simpleModelIds" in simple.references["RelatedModel"]

    def test_many_belong_to_one(self, models):
        simple, related = models
        simple.many_belong_to_one("RelatedModel")
        assert _edge(related.relations["simpleModelId"]) == (
            RelationKind.MANY_TO_ONE, "SimpleModel", "simpleModelId", "simpleModel", "relatedModels",
        )

    def test_belongs_shorthand_is_foreign_field_path(self, models):
        simple, related = models
        simple.belongs_to_one("RelatedModel", "owner")
        assert related.relations["simpleModelId"].foreign_field_path == "owner"

    def test_unknown_model_raises(self, models):
        simple, _ = models
        with pytest.raises(ConfigurationError, match="Missing"):
            simple.has_one("Missing")
        with pytest.raises(ConfigurationError):
            simple.belongs_to_one("Missing")


# =============================================================================
# Naming
# =============================================================================


class TestRelationPaths:
    def test_custom_key_templates(self):
        config = MerlinConfig(singular_foreign_key="{modelName}_id", plural_foreign_key="{modelName}_ids")
        assert relation_paths(RelationKind.ONE_TO_ONE, "User", "Profile", {}, config) == (
            "profile_id", "profile", "user",
        )
        assert relation_paths(RelationKind.ONE_TO_MANY, "User", "Category", {}, config) == (
            "category_ids", "categories", "user",
        )

    def test_key_follows_field_path(self):
        config = MerlinConfig()
        assert relation_paths(RelationKind.ONE_TO_MANY, "User", "Post", {"fieldPath": "articles"}, config)[0] == (
            "articleIds"
        )

    def test_orchestrator_templates_apply(self):
        merlin = Merlin(singular_foreign_key="{modelName}Ref")
        merlin.set_driver(lambda m: MemoryDriver())
        user = merlin.model("User", True)
        merlin.model("Team", True)
        user.many_have_one("Team")
        assert "teamRef" in user.relations


# =============================================================================
# Resolution
# =============================================================================


class TestResolution:
    def test_resolve_relation_and_reference(self, models):
        simple, related = models
        simple.has_many("RelatedModel")
        lookup = simple.resolve("relatedModels")
        assert lookup.kind == ResolutionKind.RELATION
        assert lookup.target is related
        assert lookup.many is True

        back = related.resolve("simpleModel")
        assert back.kind == ResolutionKind.REFERENCE
        assert back.target is simple
        assert back.many is False

    def test_resolve_unknown_path(self, models):
        simple, _ = models
        with pytest.raises(PathNotFoundError):
            simple.resolve("nothing")

    def test_attachments_list_relations_first(self, models):
        simple, related = models
        related.has_one("SimpleModel", {"foreignFieldPath": "owner"})
        simple.has_one("RelatedModel")
        assert [a.kind for a in simple.attachments()] == [
            ResolutionKind.RELATION,
            ResolutionKind.REFERENCE,
        ]
        assert simple.sub_record_paths() == ["relatedModel", "owner"]

    def test_scoped_queries(self, models):
        simple, related = models
        simple.has_many("RelatedModel")
        simple.has_one("RelatedModel", "best")
        many = simple.resolve("relatedModels")
        one = simple.resolve("best")
        back = related.resolve("simpleModel")

        assert many.scoped_query({"relatedModelIds": ["a", "b"]}, {"x": 1}) == {
            "x": 1,
            "id": {"$in": ["a", "b"]},
        }
        assert one.scoped_query({"bestId": "a"}) == {"id": "a"}
        assert back.scoped_query({"id": "s1"}) == {"relatedModelIds": "s1"}

    def test_scoped_query_without_key_is_none(self, models):
        simple, related = models
        simple.has_many("RelatedModel")
        assert simple.resolve("relatedModels").scoped_query({}) is None
        assert simple.resolve("relatedModels").scoped_query({"relatedModelIds": []}) is None
        assert related.resolve("simpleModel").scoped_query({}) is None
