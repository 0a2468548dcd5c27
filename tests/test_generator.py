"""End-to-end generation over the blog schema."""
import ast

import pytest

from protoc_gen_synapse.core.errors import MissingFileError, UnknownBackendError
from protoc_gen_synapse.generators.generator import Generator
from protoc_gen_synapse.generators.registry import BackendRegistry
from protoc_gen_synapse.generators.storage.backend import SqlAlchemyBackend

from conftest import blog_file, build_request

PREFIX = "blog/v1/"


def test_emits_every_layer(generated):
    expected = [
        "entities/user.py",
        "entities/post.py",
        "entities/status.py",
        "entities/__init__.py",
        "storage/user_service_storage.py",
        "storage/user_service_storage_defaults.py",
        "storage/user_service_storage_impl.py",
        "storage/post_service_storage.py",
        "storage/conversions.py",
        "storage/schema.sql",
        "storage/__init__.py",
        "validate/new_user.py",
        "validate/__init__.py",
        "rpc/user_service.py",
        "rpc/post_service.py",
        "rpc/__init__.py",
        "graphql/status.py",
        "graphql/user.py",
        "graphql/post.py",
        "graphql/node.py",
        "graphql/page_info.py",
        "graphql/user_connection.py",
        "graphql/user_filter.py",
        "graphql/user_order_by.py",
        "graphql/user_loader.py",
        "graphql/posts_by_user_loader.py",
        "graphql/user_service_query.py",
        "graphql/user_service_mutation.py",
        "graphql/post_service_mutation.py",
        "graphql/post_service_subscription.py",
        "graphql/schema.py",
        "graphql/__init__.py",
        "__init__.py",
    ]
    for path in expected:
        assert PREFIX + path in generated, path
    # PostService has no implementation enabled
    assert PREFIX + "storage/post_service_storage_impl.py" not in generated


def test_paths_are_unique(schema, blog_raw):
    paths = [f.path for f in Generator(schema).run(blog_raw)]
    assert len(paths) == len(set(paths))


def test_python_modules_parse(generated):
    for path, content in generated.items():
        if path.endswith(".py"):
            ast.parse(content, filename=path)
            assert content.endswith("\n")
            assert "@generated by protoc-gen-synapse" in content


def test_entities(generated):
    user = generated[PREFIX + "entities/user.py"]
    assert "class User(Base):" in user
    assert '__tablename__ = "users"' in user
    assert 'id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer(), "sqlite"), primary_key=True, autoincrement=True)' in user
    assert "created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)" in user
    post = generated[PREFIX + "entities/post.py"]
    assert '__tablename__ = "posts"' in post
    # unset proto3 scalars are stored as their zero value
    assert "published: Mapped[bool] = mapped_column(Boolean, default=False)" in post
    assert 'title: Mapped[str] = mapped_column(String, default="")' in post
    assert "author_id: Mapped[int] = mapped_column(BigInteger, default=0)" in post
    status = generated[PREFIX + "entities/status.py"]
    assert "class Status(" in status
    assert '"active"' in status
    assert "UNSPECIFIED" not in status


def test_storage_interface_and_implementation(generated):
    trait = generated[PREFIX + "storage/user_service_storage.py"]
    assert "class UserServiceStorage(Protocol):" in trait
    for name in ("get_user", "list_users", "create_user", "update_user", "delete_user"):
        assert f"async def {name}(self, request" in trait
    impl = generated[PREFIX + "storage/user_service_storage_impl.py"]
    assert "class SqlAlchemyUserServiceStorage" in impl

    posts = generated[PREFIX + "storage/post_service_storage.py"]
    assert "def watch_posts(self, request" in posts
    assert "AsyncIterator" in posts


def test_schema_sql(generated):
    sql = generated[PREFIX + "storage/schema.sql"]
    assert "CREATE TABLE users" in sql
    assert "CREATE TABLE posts" in sql
    assert "REFERENCES users (id)" in sql
    assert sql.index("CREATE TABLE users") < sql.index("CREATE TABLE posts")


def test_domain_type(generated):
    domain = generated[PREFIX + "validate/new_user.py"]
    assert "class NewUser(BaseModel):" in domain
    assert "display_name: str" in domain
    assert "def name(self):" in domain
    assert 'check("email", message.email, required=True, email=True)' in domain
    assert "bio: Optional[str] = None" in domain


def test_servicer(generated):
    servicer = generated[PREFIX + "rpc/user_service.py"]
    assert "class UserServiceServicer(blog_pb2_grpc.UserServiceServicer):" in servicer
    assert "def add_to_server(server: grpc.aio.Server" in servicer
    assert "async def GetUser(self, request" in servicer


def test_filter_and_loaders(generated):
    user_filter = generated[PREFIX + "graphql/user_filter.py"]
    assert "class UserFilter:" in user_filter
    assert "id: Optional[IntFilter] = None" in user_filter
    assert "email: Optional[StringFilter] = None" in user_filter
    assert "created_at" not in user_filter

    loader = generated[PREFIX + "graphql/posts_by_user_loader.py"]
    assert "class PostsByUserLoader:" in loader
    assert 'in_filter("author_id", keys)' in loader
    assert "group_by_key(keys, rows, key=lambda row: row.author_id)" in loader
    assert "await self.storage.list_posts(request)" in loader


def test_resolvers(generated):
    query = generated[PREFIX + "graphql/user_service_query.py"]
    assert "class UserServiceQuery:" in query
    assert "async def user(self, info: strawberry.Info, id: strawberry.ID) -> Optional[User]:" in query
    assert "async def users(" in query
    assert 'key = local_id(id, "User", int)' in query
    assert 'info.context["storages"]["UserService"]' in query

    mutation = generated[PREFIX + "graphql/user_service_mutation.py"]
    assert "async def create_user(" in mutation
    assert "request = NewUser.from_message(request)" in mutation
    assert "return response.success" in mutation

    posts = generated[PREFIX + "graphql/post_service_mutation.py"]
    assert '@strawberry.mutation(name="publishPost"' in posts
    assert 'context_value(info.context, "user.id", required=True)' in posts

    subscription = generated[PREFIX + "graphql/post_service_subscription.py"]
    assert "async for response in storage.watch_posts(request):" in subscription
    assert "yield Post.from_message(response)" in subscription


def test_schema_module(generated):
    schema = generated[PREFIX + "graphql/schema.py"]
    assert "schema = strawberry.Schema(" in schema
    assert "subscription=Subscription" in schema
    assert "def build_context(" in schema
    assert "PostsByUserLoader" in schema


def test_package_index(generated):
    index = generated[PREFIX + "__init__.py"]
    for name in ("entities", "storage", "rpc", "validate", "graphql"):
        assert f'"{name}",' in index
    storage = generated[PREFIX + "storage/__init__.py"]
    assert "from .user_service_storage_impl import SqlAlchemyUserServiceStorage" in storage


def test_missing_file_to_generate(schema):
    raw = build_request(schema, blog_file(), files_to_generate=["nope.proto"]).SerializeToString()
    with pytest.raises(MissingFileError):
        Generator(schema).run(raw)


def test_unknown_backend_fails_at_construction(schema):
    with pytest.raises(UnknownBackendError):
        Generator(schema, backend="mongo")


def test_backend_aliases():
    registry = BackendRegistry.default()
    for name in ("seaorm", "SeaORM", "sea-orm", "sqlalchemy"):
        assert isinstance(registry.get(name), SqlAlchemyBackend)
    assert registry.resolve("", "sqlalchemy") is registry.get("sqlalchemy")


def test_schema_without_annotations_emits_nothing(schema):
    plain = {
        "name": "plain.proto",
        "package": "plain",
        "syntax": "proto3",
        "message_type": [{"name": "Ping", "field": [{"name": "id", "number": 1, "type": "TYPE_INT64",
                                                       "label": "LABEL_OPTIONAL"}]}],
    }
    raw = build_request(schema, plain).SerializeToString()
    files = Generator(schema).run(raw)
    assert [f.path for f in files] == ["plain/__init__.py"]


def test_node_type_with_hidden_key_field(schema):
    file = blog_file()
    user_id = file["message_type"][0]["field"][0]
    user_id["options"]["[synapse.graphql.field]"] = {"skip": True}
    raw = build_request(schema, file).SerializeToString()
    generated = {f.path: f.content for f in Generator(schema).run(raw)}
    user = generated[PREFIX + "graphql/user.py"]
    assert "key: strawberry.Private[int]" in user
    assert "key=message.id," in user
