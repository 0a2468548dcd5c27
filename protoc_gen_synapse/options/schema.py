"""Descriptor pool for the synapse extension schema.

The pool holds descriptor.proto, plugin.proto and the four synapse option
files, so a CodeGeneratorRequest decoded through it keeps every synapse
extension addressable by name. The option files are described here in code
and mirror the .proto sources shipped under protoc_gen_synapse/proto.
"""
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from google.protobuf import descriptor_pb2, descriptor_pool, json_format, message_factory
from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.protobuf.compiler import plugin_pb2

from protoc_gen_synapse.core.errors import DecodeError
from protoc_gen_synapse.options.records import OptionsRecord

R = TypeVar("R", bound=OptionsRecord)

FieldProto = descriptor_pb2.FieldDescriptorProto

REQUEST_TYPE = "google.protobuf.compiler.CodeGeneratorRequest"

# Extension names
STORAGE_ENTITY = "synapse.storage.entity"
STORAGE_COLUMN = "synapse.storage.column"
STORAGE_ENUM = "synapse.storage.enum_type"
STORAGE_ENUM_VALUE = "synapse.storage.enum_value"
STORAGE_SERVICE = "synapse.storage.service"
STORAGE_METHOD = "synapse.storage.method"
STORAGE_ONEOF = "synapse.storage.oneof"
GRPC_SERVICE = "synapse.grpc.service"
GRPC_METHOD = "synapse.grpc.method"
GRPC_RESPONSE = "synapse.grpc.response"
GRAPHQL_TYPE = "synapse.graphql.type"
GRAPHQL_FIELD = "synapse.graphql.field"
GRAPHQL_SERVICE = "synapse.graphql.service"
GRAPHQL_QUERY = "synapse.graphql.query"
GRAPHQL_MUTATION = "synapse.graphql.mutation"
GRAPHQL_SUBSCRIPTION = "synapse.graphql.subscription"
VALIDATE_MESSAGE = "synapse.validate.message"
VALIDATE_FIELD = "synapse.validate.field"

OPTION_FILES = [
    "synapse/storage/options.proto",
    "synapse/grpc/options.proto",
    "synapse/graphql/options.proto",
    "synapse/validate/options.proto",
]

_SCALARS = {
    "string": FieldProto.TYPE_STRING,
    "bool": FieldProto.TYPE_BOOL,
    "int64": FieldProto.TYPE_INT64,
    "uint32": FieldProto.TYPE_UINT32,
    "double": FieldProto.TYPE_DOUBLE,
}

# (name, number, type, flags) where type is a scalar keyword, "enum:.pkg.Name"
# or a ".pkg.Name" message reference and flags may contain "repeated"/"optional".
FieldSpec = Tuple[str, int, str, str]


def _field(message: descriptor_pb2.DescriptorProto, spec: FieldSpec) -> None:
    name, number, kind, flags = spec
    field = message.field.add(name=name, number=number)
    field.label = FieldProto.LABEL_REPEATED if "repeated" in flags else FieldProto.LABEL_OPTIONAL
    if kind in _SCALARS:
        field.type = _SCALARS[kind]
    elif kind.startswith("enum:"):
        field.type = FieldProto.TYPE_ENUM
        field.type_name = kind[len("enum:"):]
    else:
        field.type = FieldProto.TYPE_MESSAGE
        field.type_name = kind
    if "optional" in flags:
        # proto3 optional is a synthetic single-member oneof
        field.proto3_optional = True
        field.oneof_index = len(message.oneof_decl)
        message.oneof_decl.add(name=f"_{name}")


def _message(file: descriptor_pb2.FileDescriptorProto, name: str, fields: Sequence[FieldSpec]) -> None:
    message = file.message_type.add(name=name)
    for spec in fields:
        _field(message, spec)


def _enum(file: descriptor_pb2.FileDescriptorProto, name: str, values: Sequence[str]) -> None:
    enum = file.enum_type.add(name=name)
    for number, value in enumerate(values):
        enum.value.add(name=value, number=number)


def _extend(file: descriptor_pb2.FileDescriptorProto, name: str, number: int, extendee: str, type_name: str) -> None:
    file.extension.add(
        name=name,
        number=number,
        label=FieldProto.LABEL_OPTIONAL,
        type=FieldProto.TYPE_MESSAGE,
        type_name=type_name,
        extendee=f".google.protobuf.{extendee}",
    )


def _new_file(name: str, package: str) -> descriptor_pb2.FileDescriptorProto:
    return descriptor_pb2.FileDescriptorProto(
        name=name,
        package=package,
        syntax="proto3",
        dependency=["google/protobuf/descriptor.proto"],
    )


def storage_options_file() -> descriptor_pb2.FileDescriptorProto:
    f = _new_file("synapse/storage/options.proto", "synapse.storage")
    p = ".synapse.storage."
    _enum(f, "RelationType", [
        "RELATION_TYPE_UNSPECIFIED",
        "RELATION_TYPE_BELONGS_TO",
        "RELATION_TYPE_HAS_ONE",
        "RELATION_TYPE_HAS_MANY",
        "RELATION_TYPE_MANY_TO_MANY",
    ])
    _enum(f, "EnumStorageType", [
        "ENUM_STORAGE_TYPE_UNSPECIFIED",
        "ENUM_STORAGE_TYPE_STRING",
        "ENUM_STORAGE_TYPE_INTEGER",
    ])
    _message(f, "RelationDef", [
        ("name", 1, "string", ""),
        ("type", 2, f"enum:{p}RelationType", ""),
        ("related", 3, "string", ""),
        ("foreign_key", 4, "string", ""),
        ("references", 5, "string", ""),
        ("through", 6, "string", ""),
    ])
    _message(f, "EntityOptions", [
        ("table_name", 1, "string", ""),
        ("skip", 2, "bool", ""),
        ("relations", 3, f"{p}RelationDef", "repeated"),
    ])
    _message(f, "ColumnOptions", [
        ("primary_key", 1, "bool", ""),
        ("auto_increment", 2, "bool", "optional"),
        ("unique", 3, "bool", ""),
        ("column_name", 4, "string", ""),
        ("default_value", 5, "string", ""),
        ("embed", 6, "bool", ""),
        ("column_type", 7, "string", ""),
        ("default_expr", 8, "string", ""),
        ("nullable", 9, "bool", ""),
    ])
    _message(f, "OneofOptions", [
        ("strategy", 1, "string", ""),
        ("column_prefix", 2, "string", ""),
        ("discriminator_column", 3, "string", ""),
    ])
    _message(f, "EnumOptions", [
        ("storage_type", 1, f"enum:{p}EnumStorageType", ""),
        ("skip", 2, "bool", ""),
    ])
    _message(f, "EnumValueOptions", [
        ("string_value", 1, "string", ""),
        ("int_value", 2, "int64", ""),
        ("default", 3, "bool", ""),
        ("skip", 4, "bool", ""),
    ])
    _message(f, "ServiceOptions", [
        ("generate_storage", 1, "bool", ""),
        ("trait_name", 2, "string", ""),
        ("skip", 3, "bool", ""),
        ("generate_implementation", 4, "bool", ""),
    ])
    _message(f, "MethodOptions", [
        ("skip", 1, "bool", ""),
        ("method_name", 2, "string", ""),
        ("entity_name", 3, "string", ""),
        ("operation", 4, "string", ""),
    ])
    _extend(f, "entity", 51001, "MessageOptions", f"{p}EntityOptions")
    _extend(f, "column", 51002, "FieldOptions", f"{p}ColumnOptions")
    _extend(f, "enum_type", 51003, "EnumOptions", f"{p}EnumOptions")
    _extend(f, "enum_value", 51004, "EnumValueOptions", f"{p}EnumValueOptions")
    _extend(f, "service", 51005, "ServiceOptions", f"{p}ServiceOptions")
    _extend(f, "method", 51006, "MethodOptions", f"{p}MethodOptions")
    _extend(f, "oneof", 51007, "OneofOptions", f"{p}OneofOptions")
    return f


def grpc_options_file() -> descriptor_pb2.FileDescriptorProto:
    f = _new_file("synapse/grpc/options.proto", "synapse.grpc")
    p = ".synapse.grpc."
    _message(f, "ServiceOptions", [
        ("skip", 1, "bool", ""),
        ("struct_name", 2, "string", ""),
        ("storage_trait", 3, "string", ""),
    ])
    _message(f, "MethodOptions", [
        ("skip", 1, "bool", ""),
        ("method_name", 2, "string", ""),
        ("input_type", 3, "string", ""),
    ])
    _message(f, "ResponseOptions", [
        ("rich_errors", 1, "bool", ""),
    ])
    _extend(f, "service", 51101, "ServiceOptions", f"{p}ServiceOptions")
    _extend(f, "method", 51102, "MethodOptions", f"{p}MethodOptions")
    _extend(f, "response", 51103, "MessageOptions", f"{p}ResponseOptions")
    return f


def graphql_options_file() -> descriptor_pb2.FileDescriptorProto:
    f = _new_file("synapse/graphql/options.proto", "synapse.graphql")
    p = ".synapse.graphql."
    _message(f, "Deprecated", [
        ("reason", 1, "string", ""),
    ])
    _message(f, "FromContext", [
        ("path", 1, "string", ""),
        ("required", 2, "bool", ""),
        ("error_message", 3, "string", ""),
    ])
    _message(f, "TypeOptions", [
        ("skip", 1, "bool", ""),
        ("name", 2, "string", ""),
        ("input", 3, "bool", ""),
        ("node", 4, "bool", ""),
        ("description", 5, "string", ""),
    ])
    _message(f, "FieldOptions", [
        ("skip", 1, "bool", ""),
        ("name", 2, "string", ""),
        ("description", 3, "string", ""),
        ("deprecated", 4, f"{p}Deprecated", ""),
        ("from_context", 5, f"{p}FromContext", ""),
    ])
    _message(f, "ServiceOptions", [
        ("skip", 1, "bool", ""),
    ])
    _message(f, "QueryOptions", [
        ("skip", 1, "bool", ""),
        ("name", 2, "string", ""),
        ("description", 3, "string", ""),
        ("output_type", 4, "string", ""),
        ("output_field", 5, "string", ""),
    ])
    _message(f, "MutationOptions", [
        ("skip", 1, "bool", ""),
        ("name", 2, "string", ""),
        ("description", 3, "string", ""),
        ("input_type", 4, "string", ""),
        ("output_type", 5, "string", ""),
        ("output_field", 6, "string", ""),
    ])
    _message(f, "SubscriptionOptions", [
        ("skip", 1, "bool", ""),
        ("name", 2, "string", ""),
        ("description", 3, "string", ""),
        ("output_type", 4, "string", ""),
    ])
    _extend(f, "type", 51201, "MessageOptions", f"{p}TypeOptions")
    _extend(f, "field", 51202, "FieldOptions", f"{p}FieldOptions")
    _extend(f, "service", 51203, "ServiceOptions", f"{p}ServiceOptions")
    _extend(f, "query", 51204, "MethodOptions", f"{p}QueryOptions")
    _extend(f, "mutation", 51205, "MethodOptions", f"{p}MutationOptions")
    _extend(f, "subscription", 51206, "MethodOptions", f"{p}SubscriptionOptions")
    return f


def validate_options_file() -> descriptor_pb2.FileDescriptorProto:
    f = _new_file("synapse/validate/options.proto", "synapse.validate")
    p = ".synapse.validate."
    _message(f, "LengthRule", [
        ("min", 1, "uint32", ""),
        ("max", 2, "uint32", ""),
        ("equal", 3, "uint32", ""),
    ])
    _message(f, "RangeRule", [
        ("min", 1, "double", "optional"),
        ("max", 2, "double", "optional"),
        ("exclusive_min", 3, "bool", ""),
        ("exclusive_max", 4, "bool", ""),
    ])
    _message(f, "Rules", [
        ("required", 1, "bool", ""),
        ("email", 2, "bool", ""),
        ("url", 3, "bool", ""),
        ("uuid", 4, "bool", ""),
        ("ascii", 5, "bool", ""),
        ("alphanumeric", 6, "bool", ""),
        ("ip", 7, "bool", ""),
        ("ipv4", 8, "bool", ""),
        ("ipv6", 9, "bool", ""),
        ("pattern", 10, "string", ""),
        ("length", 11, f"{p}LengthRule", ""),
        ("range", 12, f"{p}RangeRule", ""),
        ("unique_items", 13, "bool", ""),
        ("message", 14, "string", ""),
    ])
    _message(f, "MessageOptions", [
        ("skip", 1, "bool", ""),
        ("name", 2, "string", ""),
        ("generate_conversion", 3, "bool", ""),
    ])
    _message(f, "FieldOptions", [
        ("skip", 1, "bool", ""),
        ("rename", 2, "string", ""),
        ("rules", 3, f"{p}Rules", ""),
    ])
    _extend(f, "message", 51301, "MessageOptions", f"{p}MessageOptions")
    _extend(f, "field", 51302, "FieldOptions", f"{p}FieldOptions")
    return f


def option_files() -> List[descriptor_pb2.FileDescriptorProto]:
    return [
        storage_options_file(),
        grpc_options_file(),
        graphql_options_file(),
        validate_options_file(),
    ]


class SchemaContext:
    """Descriptor pool plus the dynamic message classes built from it.

    Built once per run and passed to everything that needs extension
    lookups; there is no module-level pool.
    """

    def __init__(self, pool: descriptor_pool.DescriptorPool, classes: Dict[str, type]):
        self.pool = pool
        self._classes = classes
        self._extensions: Dict[str, object] = {}

    @classmethod
    def build(cls, extra_files: Iterable[descriptor_pb2.FileDescriptorProto] = ()) -> "SchemaContext":
        pool = descriptor_pool.DescriptorPool()
        pool.AddSerializedFile(descriptor_pb2.DESCRIPTOR.serialized_pb)
        pool.AddSerializedFile(plugin_pb2.DESCRIPTOR.serialized_pb)
        names = [descriptor_pb2.DESCRIPTOR.name, plugin_pb2.DESCRIPTOR.name]
        for file_proto in [*option_files(), *extra_files]:
            pool.AddSerializedFile(file_proto.SerializeToString())
            names.append(file_proto.name)
        classes = message_factory.GetMessageClassesForFiles(names, pool)
        return cls(pool, dict(classes))

    def message_class(self, full_name: str) -> type:
        if full_name not in self._classes:
            descriptor = self.pool.FindMessageTypeByName(full_name)
            self._classes[full_name] = message_factory.GetMessageClass(descriptor)
        return self._classes[full_name]

    def extension(self, full_name: str):
        if full_name not in self._extensions:
            self._extensions[full_name] = self.pool.FindExtensionByName(full_name)
        return self._extensions[full_name]

    def decode_request(self, raw: bytes):
        """Decode request bytes as a dynamic CodeGeneratorRequest."""
        request_class = self.message_class(REQUEST_TYPE)
        try:
            return request_class.FromString(raw)
        except ProtobufDecodeError as e:
            raise DecodeError(f"Failed to decode CodeGeneratorRequest: {e}") from e

    def read_option(self, options, extension_name: str, record: Type[R]) -> Optional[R]:
        """Return the typed record for an extension, or None when it is not set."""
        extension = self.extension(extension_name)
        if not options.HasExtension(extension):
            return None
        value = options.Extensions[extension]
        data = json_format.MessageToDict(value, preserving_proto_field_name=True)
        return record.model_validate(data)
