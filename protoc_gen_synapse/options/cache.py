"""Options cache populated once from the raw plugin request.

preprocess() is the only writer. It walks every proto file in the request
(not only the files to generate, so cross-file lookups work), reads each
synapse extension through the SchemaContext and freezes the result. The
generation pass only reads.
"""
import logging
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from protoc_gen_synapse.core.errors import OptionsNotLoadedError
from protoc_gen_synapse.core.workflow import GenerationStage
from protoc_gen_synapse.options import records
from protoc_gen_synapse.options import schema
from protoc_gen_synapse.options.schema import SchemaContext

log = logging.getLogger(__name__)

Key = Tuple


@dataclass
class _Tables:
    entity: Dict[Key, records.EntityOptions] = field(default_factory=dict)
    column: Dict[Key, records.ColumnOptions] = field(default_factory=dict)
    oneof: Dict[Key, records.OneofOptions] = field(default_factory=dict)
    enum: Dict[Key, records.EnumOptions] = field(default_factory=dict)
    enum_value: Dict[Key, records.EnumValueOptions] = field(default_factory=dict)
    storage_service: Dict[Key, records.StorageServiceOptions] = field(default_factory=dict)
    storage_method: Dict[Key, records.StorageMethodOptions] = field(default_factory=dict)
    grpc_service: Dict[Key, records.GrpcServiceOptions] = field(default_factory=dict)
    grpc_method: Dict[Key, records.GrpcMethodOptions] = field(default_factory=dict)
    grpc_response: Dict[Key, records.ResponseOptions] = field(default_factory=dict)
    graphql_type: Dict[Key, records.GraphqlTypeOptions] = field(default_factory=dict)
    graphql_field: Dict[Key, records.GraphqlFieldOptions] = field(default_factory=dict)
    graphql_service: Dict[Key, records.GraphqlServiceOptions] = field(default_factory=dict)
    graphql_query: Dict[Key, records.QueryOptions] = field(default_factory=dict)
    graphql_mutation: Dict[Key, records.MutationOptions] = field(default_factory=dict)
    graphql_subscription: Dict[Key, records.SubscriptionOptions] = field(default_factory=dict)
    validate_message: Dict[Key, records.ValidateMessageOptions] = field(default_factory=dict)
    validate_field: Dict[Key, records.ValidateFieldOptions] = field(default_factory=dict)


# (table, extension, record) per descriptor kind
_MESSAGE_OPTIONS = [
    ("entity", schema.STORAGE_ENTITY, records.EntityOptions),
    ("grpc_response", schema.GRPC_RESPONSE, records.ResponseOptions),
    ("graphql_type", schema.GRAPHQL_TYPE, records.GraphqlTypeOptions),
    ("validate_message", schema.VALIDATE_MESSAGE, records.ValidateMessageOptions),
]
_FIELD_OPTIONS = [
    ("column", schema.STORAGE_COLUMN, records.ColumnOptions),
    ("graphql_field", schema.GRAPHQL_FIELD, records.GraphqlFieldOptions),
    ("validate_field", schema.VALIDATE_FIELD, records.ValidateFieldOptions),
]
_SERVICE_OPTIONS = [
    ("storage_service", schema.STORAGE_SERVICE, records.StorageServiceOptions),
    ("grpc_service", schema.GRPC_SERVICE, records.GrpcServiceOptions),
    ("graphql_service", schema.GRAPHQL_SERVICE, records.GraphqlServiceOptions),
]
_METHOD_OPTIONS = [
    ("storage_method", schema.STORAGE_METHOD, records.StorageMethodOptions),
    ("grpc_method", schema.GRPC_METHOD, records.GrpcMethodOptions),
    ("graphql_query", schema.GRAPHQL_QUERY, records.QueryOptions),
    ("graphql_mutation", schema.GRAPHQL_MUTATION, records.MutationOptions),
    ("graphql_subscription", schema.GRAPHQL_SUBSCRIPTION, records.SubscriptionOptions),
]


class OptionsCache:
    """Read-only view over the option records of one request."""

    def __init__(self, tables: Optional[_Tables] = None):
        self._loaded = tables is not None
        tables = tables or _Tables()
        self._tables: Dict[str, Mapping[Key, records.OptionsRecord]] = {
            table.name: MappingProxyType(dict(getattr(tables, table.name)))
            for table in fields(tables)
        }

    @classmethod
    def empty(cls) -> "OptionsCache":
        """A loaded cache with no records, for requests without annotations."""
        return cls(_Tables())

    def _get(self, table: str, key: Key):
        if not self._loaded:
            raise OptionsNotLoadedError("Options cache read before preprocess()")
        return self._tables[table].get(key)

    def count(self) -> int:
        return sum(len(table) for table in self._tables.values())

    # storage
    def get_entity_options(self, file: str, message: str) -> Optional[records.EntityOptions]:
        return self._get("entity", (file, message))

    def get_column_options(self, file: str, message: str, field_number: int) -> Optional[records.ColumnOptions]:
        return self._get("column", (file, message, field_number))

    def get_oneof_options(self, file: str, message: str, oneof: str) -> Optional[records.OneofOptions]:
        return self._get("oneof", (file, message, oneof))

    def get_enum_options(self, file: str, enum: str) -> Optional[records.EnumOptions]:
        return self._get("enum", (file, enum))

    def get_enum_value_options(self, file: str, enum: str, number: int) -> Optional[records.EnumValueOptions]:
        return self._get("enum_value", (file, enum, number))

    def get_service_options(self, file: str, service: str) -> Optional[records.StorageServiceOptions]:
        return self._get("storage_service", (file, service))

    def get_method_options(self, file: str, service: str, method: str) -> Optional[records.StorageMethodOptions]:
        return self._get("storage_method", (file, service, method))

    # grpc
    def get_grpc_service_options(self, file: str, service: str) -> Optional[records.GrpcServiceOptions]:
        return self._get("grpc_service", (file, service))

    def get_grpc_method_options(self, file: str, service: str, method: str) -> Optional[records.GrpcMethodOptions]:
        return self._get("grpc_method", (file, service, method))

    def get_response_options(self, file: str, message: str) -> Optional[records.ResponseOptions]:
        return self._get("grpc_response", (file, message))

    # graphql
    def get_graphql_type_options(self, file: str, message: str) -> Optional[records.GraphqlTypeOptions]:
        return self._get("graphql_type", (file, message))

    def get_graphql_field_options(self, file: str, message: str, field_number: int) -> Optional[records.GraphqlFieldOptions]:
        return self._get("graphql_field", (file, message, field_number))

    def get_graphql_service_options(self, file: str, service: str) -> Optional[records.GraphqlServiceOptions]:
        return self._get("graphql_service", (file, service))

    def get_query_options(self, file: str, service: str, method: str) -> Optional[records.QueryOptions]:
        return self._get("graphql_query", (file, service, method))

    def get_mutation_options(self, file: str, service: str, method: str) -> Optional[records.MutationOptions]:
        return self._get("graphql_mutation", (file, service, method))

    def get_subscription_options(self, file: str, service: str, method: str) -> Optional[records.SubscriptionOptions]:
        return self._get("graphql_subscription", (file, service, method))

    # validate
    def get_validate_message_options(self, file: str, message: str) -> Optional[records.ValidateMessageOptions]:
        return self._get("validate_message", (file, message))

    def get_validate_field_options(self, file: str, message: str, field_number: int) -> Optional[records.ValidateFieldOptions]:
        return self._get("validate_field", (file, message, field_number))


def _read_into(ctx: SchemaContext, tables: _Tables, specs, options, key: Key) -> None:
    for table, extension, record in specs:
        value = ctx.read_option(options, extension, record)
        if value is not None:
            getattr(tables, table)[key] = value


def _walk_enum(ctx: SchemaContext, tables: _Tables, file_name: str, enum, path: str) -> None:
    name = f"{path}.{enum.name}" if path else enum.name
    value = ctx.read_option(enum.options, schema.STORAGE_ENUM, records.EnumOptions)
    if value is not None:
        tables.enum[(file_name, name)] = value
    for enum_value in enum.value:
        value = ctx.read_option(enum_value.options, schema.STORAGE_ENUM_VALUE, records.EnumValueOptions)
        if value is not None:
            tables.enum_value[(file_name, name, enum_value.number)] = value


def _walk_message(ctx: SchemaContext, tables: _Tables, file_name: str, message, path: str) -> None:
    name = f"{path}.{message.name}" if path else message.name
    _read_into(ctx, tables, _MESSAGE_OPTIONS, message.options, (file_name, name))
    for field_proto in message.field:
        _read_into(ctx, tables, _FIELD_OPTIONS, field_proto.options, (file_name, name, field_proto.number))
    for oneof in message.oneof_decl:
        value = ctx.read_option(oneof.options, schema.STORAGE_ONEOF, records.OneofOptions)
        if value is not None:
            tables.oneof[(file_name, name, oneof.name)] = value
    for nested in message.nested_type:
        _walk_message(ctx, tables, file_name, nested, name)
    for enum in message.enum_type:
        _walk_enum(ctx, tables, file_name, enum, name)


def preprocess(ctx: SchemaContext, raw: bytes) -> OptionsCache:
    """Decode the request through the synapse pool and collect every option record.

    Raises DecodeError when the bytes are not a CodeGeneratorRequest.
    """
    request = ctx.decode_request(raw)
    tables = _Tables()
    for file_proto in request.proto_file:
        file_name = file_proto.name
        for message in file_proto.message_type:
            _walk_message(ctx, tables, file_name, message, "")
        for enum in file_proto.enum_type:
            _walk_enum(ctx, tables, file_name, enum, "")
        for service in file_proto.service:
            _read_into(ctx, tables, _SERVICE_OPTIONS, service.options, (file_name, service.name))
            for method in service.method:
                _read_into(ctx, tables, _METHOD_OPTIONS, method.options, (file_name, service.name, method.name))
    cache = OptionsCache(tables)
    log.info(
        "Collected %d option records from %d files",
        cache.count(),
        len(request.proto_file),
        extra={"stage": GenerationStage.PREPROCESS.value},
    )
    return cache
