"""Shared fixtures: an annotated blog schema encoded as a plugin request."""
from typing import Dict, List, Optional

import pytest
from google.protobuf import descriptor_pb2, json_format, timestamp_pb2

from protoc_gen_synapse.generators.generator import Generator
from protoc_gen_synapse.options.schema import REQUEST_TYPE, SchemaContext

BLOG_FILE = "blog/v1/blog.proto"
BLOG_PACKAGE = "blog.v1"


def scalar(name: str, number: int, kind: str, repeated: bool = False, **options) -> Dict:
    field = {
        "name": name,
        "number": number,
        "label": "LABEL_REPEATED" if repeated else "LABEL_OPTIONAL",
        "type": f"TYPE_{kind.upper()}",
    }
    if options:
        field["options"] = {f"[{key.replace('__', '.')}]": value for key, value in options.items()}
    return field


def message(name: str, number: int, type_name: str, repeated: bool = False, **options) -> Dict:
    field = scalar(name, number, "message", repeated, **options)
    field["type_name"] = type_name
    return field


def enum_field(name: str, number: int, type_name: str) -> Dict:
    field = scalar(name, number, "enum")
    field["type_name"] = type_name
    return field


def optional(field: Dict, oneof_index: int) -> Dict:
    """proto3 optional: the caller declares the synthetic oneof at oneof_index."""
    field["proto3_optional"] = True
    field["oneof_index"] = oneof_index
    return field


def msg(name: str, fields: List[Dict], oneofs: Optional[List[str]] = None, **options) -> Dict:
    result = {"name": name, "field": fields}
    if oneofs:
        result["oneof_decl"] = [{"name": o} for o in oneofs]
    if options:
        result["options"] = {f"[{key.replace('__', '.')}]": value for key, value in options.items()}
    return result


def method(name: str, input_type: str, output_type: str, server_streaming: bool = False, **options) -> Dict:
    result = {
        "name": name,
        "input_type": f".{BLOG_PACKAGE}.{input_type}",
        "output_type": f".{BLOG_PACKAGE}.{output_type}",
    }
    if server_streaming:
        result["server_streaming"] = True
    if options:
        result["options"] = {f"[{key.replace('__', '.')}]": value for key, value in options.items()}
    return result


def ref(name: str) -> str:
    return f".{BLOG_PACKAGE}.{name}"


def blog_file() -> Dict:
    """Users, posts and the two services working on them."""
    pk = {"synapse__storage__column": {"primary_key": True}}
    return {
        "name": BLOG_FILE,
        "package": BLOG_PACKAGE,
        "syntax": "proto3",
        "dependency": ["google/protobuf/timestamp.proto"],
        "enum_type": [{
            "name": "Status",
            "value": [
                {"name": "STATUS_UNSPECIFIED", "number": 0},
                {"name": "STATUS_ACTIVE", "number": 1},
                {"name": "STATUS_BANNED", "number": 2},
            ],
            "options": {"[synapse.storage.enum_type]": {"storage_type": "ENUM_STORAGE_TYPE_STRING"}},
        }],
        "message_type": [
            msg("User", [
                scalar("id", 1, "int64", **pk),
                scalar("email", 2, "string", synapse__storage__column={"unique": True}),
                scalar("name", 3, "string"),
                enum_field("status", 4, ref("Status")),
                message("created_at", 5, ".google.protobuf.Timestamp"),
                optional(scalar("bio", 6, "string"), 0),
            ], oneofs=["_bio"], synapse__storage__entity={
                "table_name": "users",
                "relations": [{
                    "name": "posts",
                    "type": "RELATION_TYPE_HAS_MANY",
                    "related": "Post",
                    "foreign_key": "author_id",
                }],
            }),
            msg("Post", [
                scalar("id", 1, "int64", **pk),
                scalar("author_id", 2, "int64"),
                scalar("title", 3, "string"),
                scalar("body", 4, "string"),
                scalar("published", 5, "bool"),
            ], synapse__storage__entity={
                "relations": [{
                    "name": "author",
                    "type": "RELATION_TYPE_BELONGS_TO",
                    "related": "User",
                    "foreign_key": "author_id",
                }],
            }),
            msg("PageInfo", [
                scalar("has_next_page", 1, "bool"),
                scalar("has_previous_page", 2, "bool"),
                scalar("start_cursor", 3, "string"),
                scalar("end_cursor", 4, "string"),
            ]),
            msg("IntFilter", [scalar("eq", 1, "int64"), scalar("in", 2, "int64", repeated=True)]),
            msg("PostFilter", [message("author_id", 1, ref("IntFilter"))]),
            msg("UserEdge", [scalar("cursor", 1, "string"), message("node", 2, ref("User"))]),
            msg("GetUserRequest", [scalar("id", 1, "int64")]),
            msg("GetUserResponse", [message("user", 1, ref("User"))]),
            msg("ListUsersRequest", [
                optional(scalar("first", 1, "int32"), 0),
                optional(scalar("after", 2, "string"), 1),
                optional(scalar("last", 3, "int32"), 2),
                optional(scalar("before", 4, "string"), 3),
            ], oneofs=["_first", "_after", "_last", "_before"]),
            msg("ListUsersResponse", [
                message("edges", 1, ref("UserEdge"), repeated=True),
                message("page_info", 2, ref("PageInfo")),
            ]),
            msg("CreateUserRequest", [
                scalar("email", 1, "string", synapse__validate__field={"rules": {"required": True, "email": True}}),
                scalar("name", 2, "string", synapse__validate__field={
                    "rename": "display_name",
                    "rules": {"length": {"min": 1, "max": 80}},
                }),
                enum_field("status", 3, ref("Status")),
                optional(scalar("bio", 4, "string"), 0),
            ], oneofs=["_bio"], synapse__validate__message={"name": "NewUser", "generate_conversion": True}),
            msg("CreateUserResponse", [message("user", 1, ref("User"))]),
            msg("UpdateUserRequest", [
                scalar("id", 1, "int64"),
                optional(scalar("name", 2, "string"), 0),
                optional(scalar("bio", 3, "string"), 1),
            ], oneofs=["_name", "_bio"]),
            msg("UpdateUserResponse", [message("user", 1, ref("User"))]),
            msg("DeleteUserRequest", [scalar("id", 1, "int64")]),
            msg("DeleteUserResponse", [scalar("success", 1, "bool")]),
            msg("ListPostsRequest", [
                optional(scalar("first", 1, "int32"), 0),
                optional(scalar("after", 2, "string"), 1),
                message("filter", 3, ref("PostFilter")),
            ], oneofs=["_first", "_after"]),
            msg("ListPostsResponse", [message("posts", 1, ref("Post"), repeated=True)]),
            msg("CreatePostRequest", [
                scalar("author_id", 1, "int64", synapse__graphql__field={
                    "from_context": {"path": "user.id", "required": True},
                }),
                scalar("title", 2, "string"),
                scalar("body", 3, "string"),
            ]),
            msg("CreatePostResponse", [message("post", 1, ref("Post"))]),
            msg("PublishPostRequest", [scalar("id", 1, "int64")]),
            msg("PublishPostResponse", [message("post", 1, ref("Post"))]),
            msg("WatchPostsRequest", [scalar("author_id", 1, "int64")]),
        ],
        "service": [
            {
                "name": "UserService",
                "method": [
                    method("GetUser", "GetUserRequest", "GetUserResponse"),
                    method("ListUsers", "ListUsersRequest", "ListUsersResponse"),
                    method("CreateUser", "CreateUserRequest", "CreateUserResponse"),
                    method("UpdateUser", "UpdateUserRequest", "UpdateUserResponse"),
                    method("DeleteUser", "DeleteUserRequest", "DeleteUserResponse"),
                ],
                "options": {"[synapse.storage.service]": {"generate_storage": True, "generate_implementation": True}},
            },
            {
                "name": "PostService",
                "method": [
                    method("ListPosts", "ListPostsRequest", "ListPostsResponse"),
                    method("CreatePost", "CreatePostRequest", "CreatePostResponse"),
                    method("PublishPost", "PublishPostRequest", "PublishPostResponse",
                           synapse__graphql__mutation={"name": "publishPost", "output_field": "post"}),
                    method("WatchPosts", "WatchPostsRequest", "Post", server_streaming=True,
                           synapse__graphql__subscription={"name": "postPublished"}),
                ],
                "options": {"[synapse.storage.service]": {"generate_storage": True}},
            },
        ],
    }


def build_request(schema: SchemaContext, file: Dict, parameter: str = "", files_to_generate=None):
    """Dynamic CodeGeneratorRequest holding timestamp.proto and file, extensions set."""
    request_class = schema.message_class(REQUEST_TYPE)
    request = request_class()
    timestamp = descriptor_pb2.FileDescriptorProto()
    timestamp_pb2.DESCRIPTOR.CopyToProto(timestamp)
    request.proto_file.add().MergeFromString(timestamp.SerializeToString())
    json_format.ParseDict(file, request.proto_file.add())
    request.file_to_generate.extend(files_to_generate if files_to_generate is not None else [file["name"]])
    if parameter:
        request.parameter = parameter
    return request


@pytest.fixture(scope="session")
def schema():
    return SchemaContext.build()


@pytest.fixture
def blog_raw(schema) -> bytes:
    return build_request(schema, blog_file()).SerializeToString()


@pytest.fixture
def generated(schema, blog_raw) -> Dict[str, str]:
    files = Generator(schema).run(blog_raw)
    return {f.path: f.content for f in files}
