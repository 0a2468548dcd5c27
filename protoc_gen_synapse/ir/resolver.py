"""Builds the IR for one requested file from its descriptors and the options cache."""
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from google.protobuf import descriptor_pb2

from protoc_gen_synapse.core.workflow import GenerationStage
from protoc_gen_synapse.ir.model import (
    Entity,
    Enum,
    EnumDbType,
    EnumVariant,
    Field,
    FieldKind,
    FieldType,
    FileIr,
    Method,
    Oneof,
    OneofColumn,
    OneofStrategy,
    Service,
)
from protoc_gen_synapse.ir.naming import (
    is_skipped_enum_value,
    strip_enum_prefix,
    to_pascal_case,
    to_plural_snake_case,
    to_snake_case,
)
from protoc_gen_synapse.ir.relations import resolve_relations
from protoc_gen_synapse.options import records
from protoc_gen_synapse.options.cache import OptionsCache

log = logging.getLogger(__name__)

FieldProto = descriptor_pb2.FieldDescriptorProto

_SCALAR_KINDS = {
    FieldProto.TYPE_BOOL: FieldKind.BOOL,
    FieldProto.TYPE_INT32: FieldKind.INT32,
    FieldProto.TYPE_SINT32: FieldKind.INT32,
    FieldProto.TYPE_SFIXED32: FieldKind.INT32,
    FieldProto.TYPE_INT64: FieldKind.INT64,
    FieldProto.TYPE_SINT64: FieldKind.INT64,
    FieldProto.TYPE_SFIXED64: FieldKind.INT64,
    FieldProto.TYPE_UINT32: FieldKind.UINT32,
    FieldProto.TYPE_FIXED32: FieldKind.UINT32,
    FieldProto.TYPE_UINT64: FieldKind.UINT64,
    FieldProto.TYPE_FIXED64: FieldKind.UINT64,
    FieldProto.TYPE_FLOAT: FieldKind.FLOAT,
    FieldProto.TYPE_DOUBLE: FieldKind.DOUBLE,
    FieldProto.TYPE_STRING: FieldKind.STRING,
    FieldProto.TYPE_BYTES: FieldKind.BYTES,
}

# google.protobuf wrapper messages map to a nullable scalar
_WRAPPER_KINDS = {
    "google.protobuf.BoolValue": FieldKind.BOOL,
    "google.protobuf.Int32Value": FieldKind.INT32,
    "google.protobuf.Int64Value": FieldKind.INT64,
    "google.protobuf.UInt32Value": FieldKind.UINT32,
    "google.protobuf.UInt64Value": FieldKind.UINT64,
    "google.protobuf.FloatValue": FieldKind.FLOAT,
    "google.protobuf.DoubleValue": FieldKind.DOUBLE,
    "google.protobuf.StringValue": FieldKind.STRING,
    "google.protobuf.BytesValue": FieldKind.BYTES,
}

TIMESTAMP_TYPE = "google.protobuf.Timestamp"

# Canonical column type spellings, keyed by lowercase synonym.
COLUMN_TYPE_SYNONYMS = {
    "jsonb": "JsonBinary",
    "jsonbinary": "JsonBinary",
    "json_binary": "JsonBinary",
    "json": "Json",
    "text": "Text",
    "string": "String",
    "varchar": "String",
    "uuid": "Uuid",
    "integer": "Integer",
    "int": "Integer",
    "biginteger": "BigInteger",
    "bigint": "BigInteger",
    "boolean": "Boolean",
    "bool": "Boolean",
    "float": "Float",
    "double": "Double",
    "decimal": "Decimal",
    "numeric": "Decimal",
    "date": "Date",
    "time": "Time",
    "datetime": "DateTime",
    "timestamp": "DateTime",
    "timestamptz": "TimestampWithTimeZone",
    "timestampwithtimezone": "TimestampWithTimeZone",
    "binary": "Binary",
    "bytea": "Binary",
    "blob": "Binary",
}


def normalize_column_type(value: str) -> str:
    canonical = COLUMN_TYPE_SYNONYMS.get(value.lower())
    if canonical is None:
        log.warning("Unknown column type %r, passing it through unchanged", value)
        return value
    return canonical


@dataclass(frozen=True)
class TypeEntry:
    """A message or enum located in the request."""
    file_name: str
    package: str
    path: str
    descriptor: object

    @property
    def full_name(self) -> str:
        return f"{self.package}.{self.path}" if self.package else self.path


class TypeIndex:
    """Fully-qualified name lookup over every file in the request."""

    def __init__(self, files: List[descriptor_pb2.FileDescriptorProto]):
        self.files: Dict[str, descriptor_pb2.FileDescriptorProto] = {f.name: f for f in files}
        self.messages: Dict[str, TypeEntry] = {}
        self.enums: Dict[str, TypeEntry] = {}
        for file_proto in files:
            for message, path in _walk_messages(file_proto.message_type, ""):
                self.messages[_qualify(file_proto.package, path)] = TypeEntry(
                    file_proto.name, file_proto.package, path, message)
                for enum in message.enum_type:
                    enum_path = f"{path}.{enum.name}"
                    self.enums[_qualify(file_proto.package, enum_path)] = TypeEntry(
                        file_proto.name, file_proto.package, enum_path, enum)
            for enum in file_proto.enum_type:
                self.enums[_qualify(file_proto.package, enum.name)] = TypeEntry(
                    file_proto.name, file_proto.package, enum.name, enum)

    def message(self, type_name: str) -> Optional[TypeEntry]:
        return self.messages.get(type_name.lstrip("."))

    def enum(self, type_name: str) -> Optional[TypeEntry]:
        return self.enums.get(type_name.lstrip("."))

    def find_message_by_simple_name(self, package: str, name: str) -> Optional[TypeEntry]:
        return self.message(_qualify(package, name))


def _qualify(package: str, path: str) -> str:
    return f"{package}.{path}" if package else path


def _walk_messages(messages, prefix: str) -> Iterator[Tuple[descriptor_pb2.DescriptorProto, str]]:
    for message in messages:
        path = f"{prefix}.{message.name}" if prefix else message.name
        yield message, path
        yield from _walk_messages(message.nested_type, path)


def map_field_type(field_proto: FieldProto) -> Tuple[FieldType, bool]:
    """Map a descriptor field to its FieldType and whether the type itself implies null."""
    if field_proto.type == FieldProto.TYPE_ENUM:
        return FieldType(FieldKind.ENUM, field_proto.type_name.lstrip(".")), False
    if field_proto.type in (FieldProto.TYPE_MESSAGE, FieldProto.TYPE_GROUP):
        type_name = field_proto.type_name.lstrip(".")
        if type_name == TIMESTAMP_TYPE:
            return FieldType(FieldKind.TIMESTAMP, type_name), False
        if type_name in _WRAPPER_KINDS:
            return FieldType(_WRAPPER_KINDS[type_name]), True
        return FieldType(FieldKind.MESSAGE, type_name), False
    return FieldType(_SCALAR_KINDS.get(field_proto.type, FieldKind.STRING)), False


def is_real_oneof_member(field_proto: FieldProto, message: descriptor_pb2.DescriptorProto) -> bool:
    """True for members of declared oneofs, false for proto3 optional's synthetic ones."""
    if not field_proto.HasField("oneof_index") or field_proto.proto3_optional:
        return False
    if field_proto.oneof_index >= len(message.oneof_decl):
        return False
    return not message.oneof_decl[field_proto.oneof_index].name.startswith("_")


def build_field(
    field_proto: FieldProto,
    column: Optional[records.ColumnOptions],
    oneof: Optional[str] = None,
) -> Field:
    field_type, wrapper_nullable = map_field_type(field_proto)
    repeated = field_proto.label == FieldProto.LABEL_REPEATED
    # singular message fields track presence, so an unset one is a NULL column
    has_presence = not repeated and field_type.kind in (FieldKind.MESSAGE, FieldKind.TIMESTAMP)
    field = Field(
        name=to_snake_case(field_proto.name),
        proto_name=field_proto.name,
        number=field_proto.number,
        field_type=field_type,
        nullable=field_proto.proto3_optional or wrapper_nullable or has_presence or oneof is not None,
        repeated=repeated,
        oneof=oneof,
    )
    if wrapper_nullable:
        field.hints["wrapper"] = field_proto.type_name.lstrip(".")
    if column is None:
        return field
    field.primary_key = column.primary_key
    if column.auto_increment is not None:
        field.auto_increment = column.auto_increment
    else:
        field.auto_increment = column.primary_key
    field.unique = column.unique
    field.nullable = field.nullable or column.nullable
    field.column_name = column.column_name or None
    field.default_value = column.default_value or None
    field.default_expr = column.default_expr or None
    field.embed = column.embed
    if column.column_type:
        field.column_type = normalize_column_type(column.column_type)
    elif column.embed:
        field.column_type = "JsonBinary"
    return field


def build_oneofs(
    cache: OptionsCache,
    file_name: str,
    message_path: str,
    message: descriptor_pb2.DescriptorProto,
    fields: List[Field],
) -> List[Oneof]:
    result = []
    for index, decl in enumerate(message.oneof_decl):
        if decl.name.startswith("_"):
            continue
        variants = [
            f for f, proto in zip(fields, message.field)
            if proto.HasField("oneof_index") and proto.oneof_index == index and not proto.proto3_optional
        ]
        options = cache.get_oneof_options(file_name, message_path, decl.name) or records.OneofOptions()
        oneof = Oneof(
            name=decl.name,
            strategy=OneofStrategy.parse(options.strategy),
            variants=variants,
            column_prefix=options.column_prefix,
            discriminator_column=options.discriminator_column,
        )
        oneof.columns = oneof_columns(oneof)
        result.append(oneof)
    return result


def oneof_columns(oneof: Oneof) -> List[OneofColumn]:
    """Columns a oneof occupies under its storage strategy."""
    base = to_snake_case(oneof.name)
    if oneof.strategy == OneofStrategy.JSON:
        return [OneofColumn(name=base, column_name=base, column_type="Json")]
    if oneof.strategy == OneofStrategy.TAGGED:
        discriminator = oneof.discriminator_column or f"{base}_type"
        return [
            OneofColumn(name=discriminator, column_name=discriminator, field_type=FieldType(FieldKind.STRING)),
            OneofColumn(name=f"{base}_value", column_name=f"{base}_value", column_type="Text"),
        ]
    columns = []
    for variant in oneof.variants:
        variant_name = to_snake_case(variant.proto_name)
        column_name = f"{oneof.column_prefix}_{variant_name}" if oneof.column_prefix else variant_name
        columns.append(OneofColumn(name=variant.name, column_name=column_name, field_type=variant.field_type))
    return columns


class IrResolver:
    """Resolve requested files into FileIr using the frozen options cache."""

    def __init__(self, cache: OptionsCache, index: TypeIndex):
        self.cache = cache
        self.index = index

    def resolve_file(self, file_proto: descriptor_pb2.FileDescriptorProto) -> FileIr:
        extra = {"proto_file": file_proto.name, "stage": GenerationStage.RESOLVE.value}
        ir = FileIr(file_name=file_proto.name, package=file_proto.package)
        for message in file_proto.message_type:
            entity = self.resolve_entity(file_proto, message)
            if entity is not None:
                ir.entities.append(entity)
        for enum_proto, path in self._enums(file_proto):
            enum = self.resolve_enum(file_proto, enum_proto, path)
            if enum is not None:
                ir.enums.append(enum)
        for service in file_proto.service:
            resolved = self.resolve_service(file_proto, service)
            if resolved is not None:
                ir.services.append(resolved)
        log.info(
            "Resolved %d entities, %d enums, %d services",
            len(ir.entities), len(ir.enums), len(ir.services),
            extra=extra,
        )
        return ir

    def _enums(self, file_proto):
        for enum in file_proto.enum_type:
            yield enum, enum.name
        for message, path in _walk_messages(file_proto.message_type, ""):
            for enum in message.enum_type:
                yield enum, f"{path}.{enum.name}"

    def resolve_entity(
        self,
        file_proto: descriptor_pb2.FileDescriptorProto,
        message: descriptor_pb2.DescriptorProto,
        path: Optional[str] = None,
    ) -> Optional[Entity]:
        path = path or message.name
        options = self.cache.get_entity_options(file_proto.name, path)
        if options is None or options.skip:
            return None
        fields = []
        for field_proto in message.field:
            column = self.cache.get_column_options(file_proto.name, path, field_proto.number)
            oneof = None
            if is_real_oneof_member(field_proto, message):
                oneof = message.oneof_decl[field_proto.oneof_index].name
            fields.append(build_field(field_proto, column, oneof))
        entity = Entity(
            name=message.name,
            table_name=options.table_name or to_plural_snake_case(message.name),
            package=file_proto.package,
            file_name=file_proto.name,
            fields=fields,
            relations=resolve_relations(options.relations, message.name, file_proto.package),
        )
        entity.oneofs = build_oneofs(self.cache, file_proto.name, path, message, fields)
        return entity

    def resolve_enum(
        self,
        file_proto: descriptor_pb2.FileDescriptorProto,
        enum_proto: descriptor_pb2.EnumDescriptorProto,
        path: str,
    ) -> Optional[Enum]:
        options = self.cache.get_enum_options(file_proto.name, path)
        if options is None or options.skip:
            return None
        db_type = EnumDbType.INTEGER if options.storage_type == records.EnumStorageType.INTEGER else EnumDbType.STRING
        enum = Enum(
            name=enum_proto.name,
            package=file_proto.package,
            file_name=file_proto.name,
            full_name=_qualify(file_proto.package, path),
            db_type=db_type,
        )
        for value in enum_proto.value:
            value_options = self.cache.get_enum_value_options(file_proto.name, path, value.number)
            if value_options is not None and value_options.skip:
                continue
            if is_skipped_enum_value(value.name):
                continue
            stripped = strip_enum_prefix(enum_proto.name, value.name)
            string_value = ""
            int_value = 0
            default = False
            if value_options is not None:
                string_value = value_options.string_value
                int_value = value_options.int_value
                default = value_options.default
            enum.variants.append(EnumVariant(
                name=to_pascal_case(stripped),
                proto_name=value.name,
                number=value.number,
                string_value=string_value or to_snake_case(to_pascal_case(stripped)),
                int_value=int_value or value.number,
                default=default,
            ))
        return enum

    def resolve_service(
        self,
        file_proto: descriptor_pb2.FileDescriptorProto,
        service: descriptor_pb2.ServiceDescriptorProto,
    ) -> Optional[Service]:
        options = self.cache.get_service_options(file_proto.name, service.name)
        if options is not None and options.skip:
            return None
        trait_name = options.trait_name if options is not None and options.trait_name else f"{service.name}Storage"
        resolved = Service(
            name=service.name,
            package=file_proto.package,
            file_name=file_proto.name,
            trait_name=trait_name,
        )
        for method in service.method:
            method_options = self.cache.get_method_options(file_proto.name, service.name, method.name)
            if method_options is not None and method_options.skip:
                continue
            resolved.methods.append(Method(
                name=method.name,
                input_type=method.input_type.lstrip("."),
                output_type=method.output_type.lstrip("."),
                client_streaming=method.client_streaming,
                server_streaming=method.server_streaming,
            ))
        return resolved


