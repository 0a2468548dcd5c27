"""What the GraphQL backend exposes, and how proto fields map to Python annotations.

Object types are the package's entities plus messages carrying a non-input
graphql type option; input types come from mutation requests and messages
flagged `input`. Annotation helpers register their imports on the Imports
collector they are given.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from protoc_gen_synapse.generators.types import PackageUnit, RenderContext
from protoc_gen_synapse.generators.utils import Imports, package_module
from protoc_gen_synapse.ir.model import Entity, Field, FieldKind
from protoc_gen_synapse.ir.naming import simple_name, to_snake_case
from protoc_gen_synapse.ir.resolver import TypeEntry, build_field, is_real_oneof_member
from protoc_gen_synapse.options.records import GraphqlFieldOptions

# Scalar families that get a shared primitive filter type.
INT_FILTER = "IntFilter"
FLOAT_FILTER = "FloatFilter"
STRING_FILTER = "StringFilter"
BOOL_FILTER = "BoolFilter"

PRIMITIVE_FILTERS = {
    INT_FILTER: "int",
    FLOAT_FILTER: "float",
    STRING_FILTER: "str",
    BOOL_FILTER: "bool",
}

_SCALARS = {
    FieldKind.BOOL: "bool",
    FieldKind.INT32: "int",
    FieldKind.INT64: "int",
    FieldKind.UINT32: "int",
    FieldKind.UINT64: "int",
    FieldKind.FLOAT: "float",
    FieldKind.DOUBLE: "float",
    FieldKind.STRING: "str",
    FieldKind.BYTES: "str",
}


@dataclass
class GraphqlField:
    """A proto field as exposed on a GraphQL object or input type."""
    field: Field
    options: Optional[GraphqlFieldOptions] = None

    @property
    def attribute(self) -> str:
        return to_snake_case(self.field.proto_name)

    @property
    def graphql_name(self) -> str:
        if self.options is not None and self.options.name:
            return self.options.name
        return ""

    @property
    def description(self) -> str:
        return self.options.description if self.options is not None else ""

    @property
    def deprecation(self) -> str:
        if self.options is not None and self.options.deprecated is not None:
            return self.options.deprecated.reason or "deprecated"
        return ""


@dataclass
class ObjectType:
    """A message rendered as a GraphQL object type."""
    name: str
    full_name: str
    entry: TypeEntry
    fields: List[GraphqlField] = field(default_factory=list)
    entity: Optional[Entity] = None
    description: str = ""
    node: bool = False

    @property
    def module(self) -> str:
        return to_snake_case(self.name)


def filter_family(f: Field) -> Optional[str]:
    """Primitive filter for a column, or None when the column is not filterable."""
    if f.repeated:
        return None
    if f.field_type.is_integer:
        return INT_FILTER
    if f.field_type.is_float:
        return FLOAT_FILTER
    if f.field_type.kind == FieldKind.STRING:
        return STRING_FILTER
    if f.field_type.kind == FieldKind.BOOL:
        return BOOL_FILTER
    return None


def is_sortable(f: Field) -> bool:
    return not f.repeated and (filter_family(f) is not None or f.field_type.kind in (FieldKind.TIMESTAMP, FieldKind.ENUM))


def filter_fields(entity: Entity) -> List[Field]:
    return [f for f in entity.columns if filter_family(f) is not None]


def order_fields(entity: Entity) -> List[Field]:
    return [f for f in entity.columns if is_sortable(f)]


def message_fields(ctx: RenderContext, entry: TypeEntry) -> List[GraphqlField]:
    """Non-skipped fields of a message with their graphql field options."""
    result = []
    message = entry.descriptor
    for field_proto in message.field:
        options = ctx.cache.get_graphql_field_options(entry.file_name, entry.path, field_proto.number)
        if options is not None and options.skip:
            continue
        oneof = None
        if is_real_oneof_member(field_proto, message):
            oneof = message.oneof_decl[field_proto.oneof_index].name
        result.append(GraphqlField(build_field(field_proto, None, oneof), options))
    return result


def object_types(ctx: RenderContext, unit: PackageUnit) -> List[ObjectType]:
    """Entities first, then other annotated output messages, in declaration order."""
    result: List[ObjectType] = []
    seen = set()
    for entity in unit.entities:
        entry = ctx.index.message(entity.full_name)
        options = ctx.cache.get_graphql_type_options(entry.file_name, entry.path)
        if options is not None and (options.skip or options.input):
            continue
        result.append(ObjectType(
            name=(options.name if options is not None and options.name else entity.name),
            full_name=entity.full_name,
            entry=entry,
            fields=message_fields(ctx, entry),
            entity=entity,
            description=options.description if options is not None else "",
            node=entity.primary_key is not None,
        ))
        seen.add(entity.full_name)
    for full_name, entry in sorted(ctx.index.messages.items()):
        if entry.package != unit.package or entry.file_name not in unit.file_names or full_name in seen:
            continue
        options = ctx.cache.get_graphql_type_options(entry.file_name, entry.path)
        if options is None or options.skip or options.input:
            continue
        fields = message_fields(ctx, entry)
        result.append(ObjectType(
            name=options.name or simple_name(full_name),
            full_name=full_name,
            entry=entry,
            fields=fields,
            description=options.description,
            node=options.node and any(f.field.proto_name == "id" for f in fields),
        ))
    return result


def object_type_index(ctx: RenderContext, unit: PackageUnit) -> Dict[str, ObjectType]:
    return {t.full_name: t for t in object_types(ctx, unit)}


def input_messages(ctx: RenderContext, unit: PackageUnit) -> List[TypeEntry]:
    """Messages of the package flagged as GraphQL input types."""
    result = []
    for full_name, entry in sorted(ctx.index.messages.items()):
        if entry.package != unit.package or entry.file_name not in unit.file_names:
            continue
        options = ctx.cache.get_graphql_type_options(entry.file_name, entry.path)
        if options is not None and options.input and not options.skip:
            result.append(entry)
    return result


def input_type_name(ctx: RenderContext, full_name: str) -> str:
    """CreateUserRequest -> CreateUserInput; flagged input messages keep their (overridden) name."""
    entry = ctx.index.message(full_name)
    if entry is not None:
        options = ctx.cache.get_graphql_type_options(entry.file_name, entry.path)
        if options is not None and options.input:
            return options.name or simple_name(full_name)
    name = simple_name(full_name)
    if name.endswith("Request"):
        name = name[: -len("Request")]
    return name if name.endswith("Input") else f"{name}Input"


def graphql_module(package: str, *parts: str) -> str:
    return package_module(package, "graphql", *parts)


def scalar_annotation(f: Field) -> Optional[str]:
    return _SCALARS.get(f.field_type.kind)


def enum_annotation(ctx: RenderContext, imports: Imports, f: Field, package: str) -> str:
    """Import the GraphQL enum for an enum field and return its local name."""
    entry = ctx.index.enum(f.field_type.type_name)
    name = simple_name(f.field_type.type_name)
    if entry is None:
        return "str"
    if entry.package == package:
        return imports.add(f".{to_snake_case(name)}", name)
    return imports.add(graphql_module(entry.package, to_snake_case(name)), name)


def referenced_enums(ctx: RenderContext, fields: List[Field], package: str) -> List[str]:
    """Full names of same-package enums used by fields."""
    result = []
    for f in fields:
        if f.field_type.kind != FieldKind.ENUM:
            continue
        entry = ctx.index.enum(f.field_type.type_name)
        if entry is not None and entry.package == package and f.field_type.type_name not in result:
            result.append(f.field_type.type_name)
    return result


def json_scalar(imports: Imports) -> str:
    return imports.add("strawberry.scalars", "JSON")


def wrap(annotation: str, f: Field, optional: bool, imports: Imports) -> str:
    if f.repeated:
        annotation = f"{imports.add('typing', 'List')}[{annotation}]"
    if optional:
        annotation = f"{imports.add('typing', 'Optional')}[{annotation}]"
    return annotation


def is_optional_output(f: Field) -> bool:
    """Output fields that may be absent on the wire message."""
    if f.repeated:
        return False
    return f.nullable or f.field_type.kind in (FieldKind.TIMESTAMP, FieldKind.MESSAGE, FieldKind.ENUM)


def entity_type_name(ctx: RenderContext, entity: Entity) -> str:
    """GraphQL name of an entity's object type, honouring a type name override."""
    entry = ctx.index.message(entity.full_name)
    if entry is None:
        return entity.name
    options = ctx.cache.get_graphql_type_options(entry.file_name, entry.path)
    if options is not None and options.name:
        return options.name
    return entity.name


def has_object_type(ctx: RenderContext, entity: Entity) -> bool:
    """False when the entity's message is skipped or flagged as an input."""
    entry = ctx.index.message(entity.full_name)
    if entry is None:
        return False
    options = ctx.cache.get_graphql_type_options(entry.file_name, entry.path)
    return options is None or not (options.skip or options.input)
