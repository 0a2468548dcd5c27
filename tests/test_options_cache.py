"""Tests for option pre-processing and the read-only cache."""
import pytest

from protoc_gen_synapse.core.errors import DecodeError, OptionsNotLoadedError
from protoc_gen_synapse.options import records
from protoc_gen_synapse.options.cache import OptionsCache, preprocess

from conftest import BLOG_FILE


def test_unloaded_cache_refuses_lookups():
    with pytest.raises(OptionsNotLoadedError):
        OptionsCache().get_entity_options(BLOG_FILE, "User")


def test_empty_cache_is_loaded():
    cache = OptionsCache.empty()
    assert cache.get_entity_options(BLOG_FILE, "User") is None
    assert cache.count() == 0


def test_preprocess_collects_every_extension(schema, blog_raw):
    cache = preprocess(schema, blog_raw)

    entity = cache.get_entity_options(BLOG_FILE, "User")
    assert entity.table_name == "users"
    assert entity.relations[0].type == records.RelationType.HAS_MANY
    assert entity.relations[0].foreign_key == "author_id"

    column = cache.get_column_options(BLOG_FILE, "User", 1)
    assert column.primary_key
    assert column.auto_increment is None
    assert cache.get_column_options(BLOG_FILE, "User", 3) is None

    enum = cache.get_enum_options(BLOG_FILE, "Status")
    assert enum.storage_type == records.EnumStorageType.STRING

    service = cache.get_service_options(BLOG_FILE, "UserService")
    assert service.generate_storage and service.generate_implementation

    validate = cache.get_validate_message_options(BLOG_FILE, "CreateUserRequest")
    assert validate.name == "NewUser"
    rules = cache.get_validate_field_options(BLOG_FILE, "CreateUserRequest", 1).rules
    assert rules.required and rules.email

    from_context = cache.get_graphql_field_options(BLOG_FILE, "CreatePostRequest", 1).from_context
    assert from_context.path == "user.id"
    assert from_context.required

    subscription = cache.get_subscription_options(BLOG_FILE, "PostService", "WatchPosts")
    assert subscription.name == "postPublished"


def test_preprocess_rejects_garbage(schema):
    with pytest.raises(DecodeError):
        preprocess(schema, b"\xff\xff\xff")
