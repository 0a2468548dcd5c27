"""Run the generated blog storage against SQLite.

The generated package is written to a temp dir next to a protoc-style
blog_pb2.py, imported, and driven through its storage defaults on an
aiosqlite engine.
"""
import asyncio
import sys

import pytest
from google.protobuf import descriptor_pb2
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from protoc_gen_synapse.generators.generator import Generator
from protoc_gen_synapse.generators.writer import build_response, write_response
from protoc_gen_synapse.runtime.batching import group_by_key, in_filter
from protoc_gen_synapse.runtime.errors import InvalidField, NotFound
from protoc_gen_synapse.runtime.messages import build_message
from protoc_gen_synapse.runtime.orm import Base
from protoc_gen_synapse.runtime.relay import decode_int_cursor

from conftest import blog_file, build_request

PB2_TEMPLATE = '''"""Generated protocol buffer code."""
from google.protobuf import descriptor_pool
from google.protobuf import timestamp_pb2
from google.protobuf.internal import builder

DESCRIPTOR = descriptor_pool.Default().AddSerializedFile({serialized!r})

_globals = globals()
builder.BuildMessageAndEnumDescriptors(DESCRIPTOR, _globals)
builder.BuildTopDescriptorsAndMessages(DESCRIPTOR, "blog.v1.blog_pb2", _globals)
'''


def clear_options(proto) -> None:
    """Drop every options message; the plugin's extensions are not in the default pool."""
    for field, value in proto.ListFields():
        if field.name == "options":
            proto.ClearField("options")
        elif field.message_type is not None:
            for item in (value if field.is_repeated else [value]):
                clear_options(item)


def wire_module_source(request) -> str:
    proto = descriptor_pb2.FileDescriptorProto.FromString(request.proto_file[1].SerializeToString())
    clear_options(proto)
    return PB2_TEMPLATE.format(serialized=proto.SerializeToString())


@pytest.fixture(scope="module")
def blog_root(schema, tmp_path_factory):
    """The generated blog package, importable as `blog.v1`."""
    file = blog_file()
    file["service"][1]["options"]["[synapse.storage.service]"]["generate_implementation"] = True
    request = build_request(schema, file)
    root = tmp_path_factory.mktemp("generated")
    write_response(build_response(Generator(schema).run(request.SerializeToString())), root)
    (root / "blog" / "v1" / "blog_pb2.py").write_text(wire_module_source(request), encoding="utf-8")

    sys.path.insert(0, str(root))
    yield root
    sys.path.remove(str(root))
    for name in [n for n in sys.modules if n == "blog" or n.startswith("blog.")]:
        del sys.modules[name]


@pytest.fixture(scope="module")
def blog(blog_root):
    from blog.v1 import blog_pb2
    from blog.v1.entities import post, user  # noqa: F401
    from blog.v1.storage import post_service_storage_defaults, user_service_storage_defaults
    from blog.v1.validate.new_user import NewUser

    class Modules:
        pb2 = blog_pb2
        users = user_service_storage_defaults
        posts = post_service_storage_defaults
        new_user = NewUser

    return Modules


async def open_database(path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


def test_generated_package_imports(blog):
    assert blog.users.STORAGE_MAX_PAGE_SIZE == 1000
    assert hasattr(blog.posts, "list_posts")


def test_domain_type_rejects_bad_email(blog):
    with pytest.raises(InvalidField):
        blog.new_user.from_message(blog.pb2.CreateUserRequest(email="not-an-email", name="Ada"))


def test_user_crud_and_paging(blog, tmp_path):
    pb2 = blog.pb2
    users = blog.users

    async def scenario():
        engine, sessions = await open_database(tmp_path / "users.db")
        try:
            ids = []
            for email, name in [("ada@example.com", "Ada"), ("grace@example.com", "Grace"), ("linus@example.com", "Linus")]:
                request = blog.new_user.from_message(pb2.CreateUserRequest(email=email, name=name, status=1))
                async with sessions.begin() as session:
                    created = await users.create_user(session, request)
                ids.append(created.user.id)
            assert ids == [1, 2, 3]
            # no created_at on the request: the column stays NULL
            assert not created.user.HasField("created_at")

            async with sessions.begin() as session:
                fetched = await users.get_user(session, pb2.GetUserRequest(id=1))
            assert fetched.user.email == "ada@example.com"
            assert fetched.user.name == "Ada"
            assert fetched.user.status == 1

            async with sessions.begin() as session:
                updated = await users.update_user(session, pb2.UpdateUserRequest(id=1, name="Ada L."))
            assert updated.user.name == "Ada L."
            assert updated.user.email == "ada@example.com"

            async with sessions.begin() as session:
                first = await users.list_users(session, pb2.ListUsersRequest(first=2))
            assert [e.node.id for e in first.edges] == [1, 2]
            assert first.page_info.has_next_page
            assert not first.page_info.has_previous_page
            assert decode_int_cursor(first.page_info.end_cursor) == 2

            async with sessions.begin() as session:
                rest = await users.list_users(
                    session, pb2.ListUsersRequest(first=2, after=first.page_info.end_cursor),
                )
            assert [e.node.id for e in rest.edges] == [3]
            assert not rest.page_info.has_next_page
            assert rest.page_info.has_previous_page

            async with sessions.begin() as session:
                last = await users.list_users(session, pb2.ListUsersRequest(last=2))
            assert [e.node.id for e in last.edges] == [2, 3]
            assert last.page_info.has_previous_page
            assert not last.page_info.has_next_page

            async with sessions.begin() as session:
                before = await users.list_users(
                    session, pb2.ListUsersRequest(last=2, before=last.page_info.start_cursor),
                )
            assert [e.node.id for e in before.edges] == [1]
            assert before.page_info.has_next_page
            assert not before.page_info.has_previous_page

            async with sessions.begin() as session:
                deleted = await users.delete_user(session, pb2.DeleteUserRequest(id=3))
            assert deleted.success
            with pytest.raises(NotFound):
                async with sessions.begin() as session:
                    await users.get_user(session, pb2.GetUserRequest(id=3))
        finally:
            await engine.dispose()

    asyncio.run(scenario())


def test_posts_grouped_by_author(blog, tmp_path):
    pb2 = blog.pb2

    async def scenario():
        engine, sessions = await open_database(tmp_path / "posts.db")
        try:
            for email in ("ada@example.com", "grace@example.com", "linus@example.com"):
                request = blog.new_user.from_message(pb2.CreateUserRequest(email=email, name="Someone", status=1))
                async with sessions.begin() as session:
                    await blog.users.create_user(session, request)
            for author_id, title in [(1, "Notes"), (2, "Compilers"), (1, "Engines")]:
                async with sessions.begin() as session:
                    created = await blog.posts.create_post(
                        session, pb2.CreatePostRequest(author_id=author_id, title=title, body="..."),
                    )
                # published was never set and falls back to False
                assert created.post.published is False

            keys = [1, 2, 3]
            request = build_message(pb2.ListPostsRequest, {"filter": in_filter("author_id", keys), "first": 100})
            async with sessions.begin() as session:
                response = await blog.posts.list_posts(session, request)
            grouped = group_by_key(keys, response.posts, lambda p: p.author_id)
            assert [p.title for p in grouped[1]] == ["Notes", "Engines"]
            assert [p.title for p in grouped[2]] == ["Compilers"]
            assert grouped[3] == []
        finally:
            await engine.dispose()

    asyncio.run(scenario())
