"""Tests for IR resolution and method planning over the blog schema."""
from protoc_gen_synapse.generators.generator import Generator
from protoc_gen_synapse.generators.plan import Operation, infer_entity_name, infer_operation, plan_service
from protoc_gen_synapse.ir.model import EnumDbType, Field, FieldKind, FieldType, Oneof, OneofStrategy, RelationType
from protoc_gen_synapse.ir.resolver import oneof_columns


def resolved(schema, blog_raw):
    ctx, units = Generator(schema).resolve(blog_raw)
    assert [u.package for u in units] == ["blog.v1"]
    return ctx, units[0]


def test_entities_and_fields(schema, blog_raw):
    ctx, unit = resolved(schema, blog_raw)
    assert [e.name for e in unit.entities] == ["User", "Post"]
    user = ctx.entity("blog.v1.User")
    assert user.table_name == "users"
    assert user.primary_key.name == "id"
    assert user.primary_key.auto_increment
    assert user.field_named("email").unique
    assert user.field_named("created_at").field_type.kind == FieldKind.TIMESTAMP
    # an unset message field reads as NULL
    assert user.field_named("created_at").nullable
    assert user.field_named("bio").nullable
    assert not user.field_named("name").nullable

    posts = user.relations[0]
    assert posts.relation_type == RelationType.HAS_MANY
    assert posts.target.module == ".post"
    author = ctx.entity("blog.v1.Post").relations[0]
    assert author.foreign_key == "author_id"
    assert author.references == "id"


def test_enum_variants(schema, blog_raw):
    ctx, _ = resolved(schema, blog_raw)
    status = ctx.enum("blog.v1.Status")
    assert status.db_type == EnumDbType.STRING
    assert [v.name for v in status.variants] == ["Active", "Banned"]
    assert [v.string_value for v in status.variants] == ["active", "banned"]


def test_method_plans(schema, blog_raw):
    ctx, unit = resolved(schema, blog_raw)
    users, posts = unit.services
    plans = {p.name: p for p in plan_service(ctx, users)}
    assert plans["GetUser"].operation == Operation.GET
    assert plans["GetUser"].result_field == "user"
    assert plans["ListUsers"].python_name == "list_users"
    assert plans["CreateUser"].domain_type == "NewUser"
    assert plans["DeleteUser"].entity is ctx.entity("blog.v1.User")

    post_plans = {p.name: p for p in plan_service(ctx, posts)}
    assert post_plans["ListPosts"].entity_name == "Post"
    assert post_plans["WatchPosts"].operation == Operation.UNKNOWN
    assert post_plans["WatchPosts"].streaming
    assert post_plans["PublishPost"].entity is None


def test_operation_inference():
    assert infer_operation("ListPostsByAuthor") == Operation.LIST
    assert infer_operation("ArchiveUser") == Operation.UNKNOWN
    assert infer_entity_name("ListPostsByAuthor") == "Post"
    assert infer_entity_name("GetUser") == "User"
    assert infer_entity_name("ListCategories") == "Category"


def test_oneof_strategies():
    email = Field(name="email", proto_name="email", number=1, field_type=FieldType(FieldKind.STRING), nullable=True)
    phone = Field(name="phone", proto_name="phone", number=2, field_type=FieldType(FieldKind.STRING), nullable=True)

    tagged = Oneof(name="contact", strategy=OneofStrategy.parse("TAGGED"), variants=[email, phone])
    assert [c.column_name for c in oneof_columns(tagged)] == ["contact_type", "contact_value"]

    as_json = Oneof(name="contact", strategy=OneofStrategy.JSON, variants=[email, phone])
    assert [c.column_name for c in oneof_columns(as_json)] == ["contact"]

    flat = Oneof(name="contact", strategy=OneofStrategy.parse(""), variants=[email, phone], column_prefix="via")
    assert [c.column_name for c in oneof_columns(flat)] == ["via_email", "via_phone"]
