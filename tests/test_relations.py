"""Tests for relation resolution and self-join pairing."""
from protoc_gen_synapse.ir.model import RelationType
from protoc_gen_synapse.ir.relations import build_relation, pair_self_relations, resolve_relations, resolve_target
from protoc_gen_synapse.options import records


def relation_def(name, kind, related, foreign_key=""):
    return records.RelationDef(name=name, type=kind, related=related, foreign_key=foreign_key)


def test_targets_resolve_against_the_owning_package():
    local = resolve_target("Post", "User", "blog.v1")
    assert local.module == ".post"
    assert local.is_local
    assert not local.is_self

    remote = resolve_target("auth.v1.Account", "User", "blog.v1")
    assert remote.package == "auth.v1"
    assert remote.module == "auth.v1.entities.account"
    assert not remote.is_local

    assert resolve_target("Category", "Category", "shop").is_self


def test_belongs_to_defaults_foreign_key_and_references():
    relation = build_relation(relation_def("author", records.RelationType.BELONGS_TO, "User"), "Post", "blog")
    assert relation.relation_type == RelationType.BELONGS_TO
    assert relation.foreign_key == "user_id"
    assert relation.references == "id"


def test_incomplete_relations_are_dropped():
    assert build_relation(relation_def("", records.RelationType.HAS_MANY, "Post"), "User", "blog") is None
    assert build_relation(relation_def("posts", records.RelationType.UNSPECIFIED, "Post"), "User", "blog") is None


def test_self_relations_pair_symmetrically():
    relations = resolve_relations([
        relation_def("parent", records.RelationType.BELONGS_TO, "Category", "parent_id"),
        relation_def("children", records.RelationType.HAS_MANY, "Category", "parent_id"),
        relation_def("products", records.RelationType.HAS_MANY, "Product", "category_id"),
    ], "Category", "shop")
    by_name = {r.name: r for r in relations}
    assert by_name["parent"].reverse == "children"
    assert by_name["children"].reverse == "parent"
    assert by_name["products"].reverse is None


def test_pairing_requires_matching_foreign_keys():
    relations = [
        build_relation(relation_def("manager", records.RelationType.BELONGS_TO, "Employee", "manager_id"), "Employee", "hr"),
        build_relation(relation_def("mentees", records.RelationType.HAS_MANY, "Employee", "mentor_id"), "Employee", "hr"),
        build_relation(relation_def("reports", records.RelationType.HAS_MANY, "Employee", "manager_id"), "Employee", "hr"),
    ]
    pairing = pair_self_relations(relations)
    assert pairing == {"manager": "reports", "reports": "manager"}
