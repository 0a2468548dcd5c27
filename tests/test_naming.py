"""Tests for the name-case helpers."""
from protoc_gen_synapse.ir.naming import (
    is_generated_type_name,
    is_skipped_enum_value,
    pluralize,
    proto_module,
    safe_identifier,
    singularize,
    strip_enum_prefix,
    to_pascal_case,
    to_plural_snake_case,
    to_snake_case,
)


def test_snake_and_pascal_case():
    """Acronyms and digits split the way generated module names expect."""
    assert to_snake_case("UserProfile") == "user_profile"
    assert to_snake_case("HTTPServer") == "http_server"
    assert to_snake_case("userId") == "user_id"
    assert to_pascal_case("user_profile") == "UserProfile"
    assert to_pascal_case("STATUS_ACTIVE") == "StatusActive"


def test_pluralize_and_singularize():
    assert pluralize("Category") == "Categories"
    assert pluralize("Box") == "Boxes"
    assert pluralize("Day") == "Days"
    assert singularize("Categories") == "Category"
    assert singularize("Boxes") == "Box"
    assert singularize("Users") == "User"
    assert singularize("Address") == "Address"
    assert to_plural_snake_case("BlogPost") == "blog_posts"


def test_enum_value_helpers():
    assert strip_enum_prefix("Status", "STATUS_ACTIVE") == "ACTIVE"
    assert strip_enum_prefix("Status", "ACTIVE") == "ACTIVE"
    assert strip_enum_prefix("Status", "STATUS_") == "STATUS_"
    assert is_skipped_enum_value("STATUS_UNSPECIFIED")
    assert is_skipped_enum_value("STATUS_UNKNOWN")
    assert not is_skipped_enum_value("STATUS_ACTIVE")


def test_identifiers_and_modules():
    assert safe_identifier("in") == "in_"
    assert safe_identifier("name") == "name"
    assert proto_module("a/b/file.proto") == "a.b.file_pb2"
    assert proto_module("my-api/v1.proto") == "my_api.v1_pb2"
    assert is_generated_type_name("blog.v1.ListUsersResponse")
    assert not is_generated_type_name("blog.v1.User")
