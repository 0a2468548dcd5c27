"""Tests for the runtime helpers imported by generated code."""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

import pytest
from google.protobuf import descriptor_pb2, timestamp_pb2, wrappers_pb2

from protoc_gen_synapse.runtime.errors import (
    INTERNAL,
    INVALID_ARGUMENT,
    NOT_FOUND,
    DatabaseError,
    InvalidField,
    MissingRequired,
    NotFound,
    ServiceError,
    StorageError,
    is_not_found,
    status_for,
)
from protoc_gen_synapse.runtime.messages import (
    build_message,
    context_value,
    input_to_dict,
    message_to_conditions,
    optional_value,
    output_value,
    tagged_value,
    timestamp_pair,
    to_datetime,
    unwrap,
)
from protoc_gen_synapse.runtime.validation import check


class TestErrors:
    def test_status_mapping(self):
        assert status_for(NotFound()) == NOT_FOUND
        assert status_for(DatabaseError("boom")) == INTERNAL
        assert status_for(MissingRequired("email")) == INVALID_ARGUMENT
        assert status_for(InvalidField("email", "bad")) == INVALID_ARGUMENT

    def test_unmapped_storage_errors_are_internal(self):
        class Conflict(StorageError):
            pass

        assert status_for(Conflict("taken")) == INTERNAL
        with pytest.raises(TypeError):
            status_for(RuntimeError("no mapping"))

    def test_service_error_wraps_cause(self):
        error = ServiceError(InvalidField("email", "must be a valid email address"))
        assert error.status == INVALID_ARGUMENT
        assert error.field == "email"
        assert str(error) == "email: must be a valid email address"
        assert ServiceError.storage(NotFound("User 1 not found")).field is None
        assert is_not_found(NotFound())
        with pytest.raises(TypeError):
            ServiceError(ValueError("nope"))


class TestValidation:
    def test_required(self):
        with pytest.raises(MissingRequired):
            check("email", "", required=True)
        check("email", "")

    def test_formats(self):
        check("email", "ada@example.com", email=True)
        with pytest.raises(InvalidField):
            check("email", "ada", email=True)
        check("site", "https://example.com", url=True)
        with pytest.raises(InvalidField):
            check("site", "example", url=True)
        check("id", "123e4567-e89b-12d3-a456-426614174000", uuid_format=True)
        check("addr", "10.0.0.1", ipv4=True)
        with pytest.raises(InvalidField):
            check("addr", "10.0.0.1", ipv6=True)

    def test_lengths_and_ranges(self):
        check("name", "ada", min_length=1, max_length=5)
        with pytest.raises(InvalidField):
            check("name", "adalovelace", max_length=5)
        with pytest.raises(InvalidField):
            check("age", 0, minimum=0, exclusive_minimum=True)
        check("age", 0, minimum=0)
        with pytest.raises(InvalidField):
            check("tags", ["a", "a"], unique_items=True)

    def test_custom_message(self):
        with pytest.raises(InvalidField) as info:
            check("code", "ab!", alphanumeric=True, message="letters and digits only")
        assert info.value.message == "letters and digits only"

    def test_patterns_match_the_whole_value(self):
        check("slug", "post-1", pattern=r"[a-z0-9-]+")
        with pytest.raises(InvalidField) as info:
            check("slug", "Post 1", pattern=r"[a-z0-9-]+")
        assert info.value.message == "must match pattern [a-z0-9-]+"
        # a partial match is not enough
        with pytest.raises(InvalidField):
            check("slug", "post-1!", pattern=r"[a-z0-9-]+")
        check("name", "plain", ascii_only=True)
        with pytest.raises(InvalidField):
            check("name", "naïve", ascii_only=True)

    def test_invalid_uuid_and_ip(self):
        with pytest.raises(InvalidField) as info:
            check("id", "123e4567", uuid_format=True)
        assert info.value.message == "must be a valid UUID"
        check("addr", "::1", ip=True)
        with pytest.raises(InvalidField):
            check("addr", "300.1.1.1", ip=True)

    def test_exact_lengths_and_upper_bounds(self):
        check("code", "abcd", length=4)
        with pytest.raises(InvalidField) as info:
            check("code", "abc", length=4)
        assert info.value.message == "length must be exactly 4"
        check("tags", ["a", "b"], max_length=2)
        with pytest.raises(InvalidField):
            check("tags", ["a", "b", "c"], max_length=2)
        check("payload", b"\x00\x01", min_length=2)
        check("score", 10.0, maximum=10)
        with pytest.raises(InvalidField) as info:
            check("score", 10.0, maximum=10, exclusive_maximum=True)
        assert info.value.message == "must be < 10"



class TestMessages:
    def test_presence_aware_values(self):
        field = descriptor_pb2.FieldDescriptorProto(name="id")
        assert optional_value(field, "name") == "id"
        assert optional_value(field, "number") is None
        field.number = 3
        assert optional_value(field, "number") == 3
        assert optional_value(descriptor_pb2.FieldDescriptorProto(), "name") is None

    def test_timestamps(self):
        moment = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
        seconds, nanos = timestamp_pair(moment)
        stamp = timestamp_pb2.Timestamp(seconds=seconds, nanos=nanos)
        assert to_datetime(stamp) == moment
        assert to_datetime(None) is None
        assert timestamp_pair(datetime(1970, 1, 1, 0, 0, 1)) == (1, 0)

    def test_unwrap(self):
        assert unwrap(wrappers_pb2.StringValue(value="x")) == "x"
        assert unwrap(5) == 5

    def test_build_message_ignores_unknown_keys(self):
        message = build_message(descriptor_pb2.FieldDescriptorProto, {"name": "id", "bogus": 1})
        assert message.name == "id"
        assert build_message(descriptor_pb2.FieldDescriptorProto) == descriptor_pb2.FieldDescriptorProto()

    def test_output_value(self):
        field = descriptor_pb2.FieldDescriptorProto(name="id", type=descriptor_pb2.FieldDescriptorProto.TYPE_INT64)
        assert output_value(field, "name") == "id"
        assert output_value(field, "type") == "TYPE_INT64"
        assert output_value(field, "type_name") is None
        assert output_value(descriptor_pb2.DescriptorProto(), "field") == []

    def test_message_to_conditions(self):
        message = descriptor_pb2.DescriptorProto(name="User")
        message.field.add(name="id", number=1)
        conditions = message_to_conditions(message)
        assert conditions == {"name": "User", "field": [{"name": "id", "number": 1}]}

    def test_input_to_dict(self):
        class Direction(Enum):
            ASC = "ASC"

        @dataclass
        class IntFilter:
            eq: Optional[int] = None
            in_: Optional[List[int]] = None

        @dataclass
        class Input:
            author_id: Optional[IntFilter] = None
            order: Optional[Direction] = None
            title: Optional[str] = None

        data = input_to_dict(Input(author_id=IntFilter(in_=[1, 2]), order=Direction.ASC))
        assert data == {"author_id": {"in": [1, 2]}, "order": "ASC"}

    def test_context_value(self):
        class User:
            id = 7

        context = {"user": User(), "tenant": {"slug": "acme"}}
        assert context_value(context, "user.id") == 7
        assert context_value(context, "tenant.slug") == "acme"
        assert context_value(context, "tenant.missing") is None
        with pytest.raises(PermissionError, match="login first"):
            context_value(context, "session.id", required=True, error_message="login first")

    def test_tagged_value(self):
        assert tagged_value(True) == "true"
        assert tagged_value(12) == "12"
        assert tagged_value(b"abc") == "abc"
