"""Object types, enums, the Relay Node contract and connection types."""
from typing import List

from protoc_gen_synapse.core.errors import GeneratorError
from protoc_gen_synapse.generators.graphql.render_loader import RelationField, entity_loader, relation_fields
from protoc_gen_synapse.generators.graphql.types import (
    GraphqlField,
    ObjectType,
    entity_type_name,
    enum_annotation,
    graphql_module,
    is_optional_output,
    json_scalar,
    scalar_annotation,
    wrap,
)
from protoc_gen_synapse.generators.types import PackageUnit, RenderContext
from protoc_gen_synapse.generators.utils import Imports, module_header, py_literal, render_module, wire_type
from protoc_gen_synapse.ir.model import FieldKind
from protoc_gen_synapse.ir.naming import simple_name, strip_enum_prefix, to_shouty_case, to_snake_case

_MESSAGES = "protoc_gen_synapse.runtime.messages"


def render_enum(ctx: RenderContext, full_name: str) -> str:
    """GraphQL enum whose values are the proto value names."""
    entry = ctx.index.enum(full_name)
    name = simple_name(full_name)
    imports = Imports()
    imports.add("strawberry")
    imports.add("enum", "Enum")
    body = ["@strawberry.enum", f"class {name}(Enum):"]
    for value in entry.descriptor.value:
        member = to_shouty_case(strip_enum_prefix(name, value.name))
        if not member.isidentifier() or member[0].isdigit():
            member = value.name
        body.append(f"    {member} = {py_literal(value.name)}")
    return render_module(module_header(f"GraphQL enum for {full_name}.", entry.file_name), imports, body)


def _annotation(ctx: RenderContext, imports: Imports, gf: GraphqlField, package: str) -> str:
    f = gf.field
    if f.field_type.kind == FieldKind.TIMESTAMP:
        annotation = imports.add("datetime", "datetime")
    elif f.field_type.kind == FieldKind.ENUM:
        annotation = enum_annotation(ctx, imports, f, package)
    elif f.field_type.kind == FieldKind.MESSAGE:
        annotation = json_scalar(imports)
    else:
        annotation = scalar_annotation(f) or "str"
    return wrap(annotation, f, is_optional_output(f), imports)


def _field_declaration(ctx: RenderContext, imports: Imports, gf: GraphqlField, package: str) -> str:
    annotation = _annotation(ctx, imports, gf, package)
    options = []
    if gf.graphql_name:
        options.append(f"name={py_literal(gf.graphql_name)}")
    if gf.description:
        options.append(f"description={py_literal(gf.description)}")
    if gf.deprecation:
        options.append(f"deprecation_reason={py_literal(gf.deprecation)}")
    if gf.field.repeated:
        options.insert(0, "default_factory=list")
    elif is_optional_output(gf.field):
        options.insert(0, "default=None")
    if not options:
        return f"    {gf.attribute}: {annotation}"
    if options == ["default=None"]:
        return f"    {gf.attribute}: {annotation} = None"
    return f"    {gf.attribute}: {annotation} = strawberry.field({', '.join(options)})"


def _has_default(gf: GraphqlField) -> bool:
    return gf.field.repeated or is_optional_output(gf.field)


def _relation_resolver(imports: Imports, package: str, rel: RelationField, type_name: str, attribute: str) -> List[str]:
    optional = imports.add("typing", "Optional")
    annotated = imports.add("typing", "Annotated")
    lazy = f'{annotated}["{type_name}", strawberry.lazy({py_literal(graphql_module(package, to_snake_case(type_name)))})]'
    loader = f"info.context[\"loaders\"][{py_literal(rel.loader_name)}]"
    name = to_snake_case(rel.relation.name)
    lines = ["", "    @strawberry.field"]
    if rel.many:
        listing = imports.add("typing", "List")
        lines.extend([
            f"    async def {name}(self, info: strawberry.Info) -> {listing}[{lazy}]:",
            f"        return await {loader}.load(self.{attribute})",
        ])
    elif rel.first_only:
        lines.extend([
            f"    async def {name}(self, info: strawberry.Info) -> {optional}[{lazy}]:",
            f"        rows = await {loader}.load(self.{attribute})",
            "        return rows[0] if rows else None",
        ])
    else:
        lines.extend([
            f"    async def {name}(self, info: strawberry.Info) -> {optional}[{lazy}]:",
            f"        if self.{attribute} is None:",
            "            return None",
            f"        return await {loader}.load(self.{attribute})",
        ])
    return lines


def _from_message_value(ctx: RenderContext, imports: Imports, gf: GraphqlField, package: str) -> str:
    output = imports.add(_MESSAGES, "output_value")
    if gf.field.field_type.kind == FieldKind.ENUM:
        enum_class = enum_annotation(ctx, imports, gf.field, package)
        if enum_class != "str":
            return f"{output}(message, {py_literal(gf.field.proto_name)}, {enum_class})"
    return f"{output}(message, {py_literal(gf.field.proto_name)})"


def render_object_type(ctx: RenderContext, unit: PackageUnit, object_type: ObjectType) -> str:
    """One strawberry type per entity or annotated message, with a from_message constructor."""
    imports = Imports()
    imports.add("strawberry")
    package = unit.package
    entity = object_type.entity
    pk = entity.primary_key if entity is not None else None
    identity = pk.proto_name if pk is not None else "id"
    wire = wire_type(ctx, imports, object_type.full_name)

    fields = [gf for gf in object_type.fields if not (object_type.node and gf.field.proto_name == identity)]
    required = [gf for gf in fields if not _has_default(gf)]
    defaulted = [gf for gf in fields if _has_default(gf)]

    base = ""
    description = object_type.description or f"{object_type.name} ({object_type.full_name})."
    body = [f"@strawberry.type(description={py_literal(description)})"]
    if object_type.node:
        base = "(" + imports.add(".node", "Node") + ")"
    body.append(f"class {object_type.name}{base}:")
    key_type = "str"
    if object_type.node:
        identity_field = next((f.field for f in object_type.fields if f.field.proto_name == identity), pk)
        if identity_field is None:
            raise GeneratorError(f"Node type {object_type.name} ({object_type.full_name}) has no {identity} field")
        key_type = scalar_annotation(identity_field) or "str"
        body.append(f"    key: strawberry.Private[{key_type}]")
        body.append("    internal_id: strawberry.ID")
    for gf in required + defaulted:
        body.append(_field_declaration(ctx, imports, gf, package))

    attributes = {f.field.name: f.attribute for f in fields}
    if entity is not None:
        for rel in relation_fields(ctx, entity):
            if object_type.node and rel.parent_key.proto_name == identity:
                attribute = "key"
            elif rel.parent_key.name in attributes:
                attribute = attributes[rel.parent_key.name]
            else:
                continue
            body.extend(_relation_resolver(imports, package, rel, entity_type_name(ctx, rel.target), attribute))

    values = []
    if object_type.node:
        encode = imports.add("protoc_gen_synapse.runtime.relay", "encode_global_id")
        internal = imports.add("protoc_gen_synapse.runtime.relay", "internal_id")
        values.extend([
            f"            key=message.{identity},",
            f"            id=strawberry.ID({encode}({py_literal(object_type.name)}, message.{identity})),",
            f"            internal_id=strawberry.ID({internal}(message.{identity})),",
        ])
    for gf in fields:
        values.append(f"            {gf.attribute}={_from_message_value(ctx, imports, gf, package)},")
    body.extend([
        "",
        "    @classmethod",
        f"    def from_message(cls, message: {wire}) -> \"{object_type.name}\":",
        "        return cls(",
        *values,
        "        )",
    ])
    header = module_header(f"GraphQL type for {object_type.full_name}.", object_type.entry.file_name)
    return render_module(header, imports, body)


def render_node(ctx: RenderContext, node_types: List[ObjectType]) -> str:
    """Node interface plus the node/nodes root queries, dispatching on the decoded type name."""
    imports = Imports()
    imports.add("strawberry")
    for name in ("Any", "Callable", "Dict", "List", "Optional"):
        imports.add("typing", name)
    try_decode = imports.add("protoc_gen_synapse.runtime.relay", "try_decode_global_id")
    imports.add("asyncio")
    parsers = []
    for t in node_types:
        loader = entity_loader(ctx, t.entity) if t.entity is not None else None
        if loader is None:
            continue
        parser = "int" if loader.key_field.field_type.is_integer else "str"
        parsers.append(f"    {py_literal(t.name)}: {parser},")
    body = [
        '@strawberry.interface(description="An object with a global identifier.")',
        "class Node:",
        "    id: strawberry.ID",
        "",
        "",
        "# type name -> parser of the local id; each has a \"{type}Loader\" in the request context",
        "NODE_KEYS: Dict[str, Callable[[str], Any]] = {",
        *parsers,
        "}",
        "",
        "",
        "async def resolve_node(info: strawberry.Info, global_id: str) -> Optional[Node]:",
        '    """The object behind a global id; None for unknown types, bad ids and missing rows."""',
        f"    decoded = {try_decode}(global_id)",
        "    if decoded is None:",
        "        return None",
        "    type_name, local_id = decoded",
        "    parse = NODE_KEYS.get(type_name)",
        "    loader = info.context[\"loaders\"].get(f\"{type_name}Loader\")",
        "    if parse is None or loader is None:",
        "        return None",
        "    try:",
        "        key = parse(local_id)",
        "    except ValueError:",
        "        return None",
        "    return await loader.load(key)",
        "",
        "",
        "@strawberry.type",
        "class NodeQuery:",
        "    @strawberry.field(description=\"Fetch any object by its global id.\")",
        "    async def node(self, info: strawberry.Info, id: strawberry.ID) -> Optional[Node]:",
        "        return await resolve_node(info, id)",
        "",
        "    @strawberry.field(description=\"Fetch several objects by global id; unknown ids yield null.\")",
        "    async def nodes(self, info: strawberry.Info, ids: List[strawberry.ID]) -> List[Optional[Node]]:",
        "        return list(await asyncio.gather(*(resolve_node(info, i) for i in ids)))",
    ]
    return render_module(module_header("Relay Node interface and root node queries."), imports, body)


def render_page_info() -> str:
    imports = Imports()
    imports.add("strawberry")
    optional = imports.add("typing", "Optional")
    listing = imports.add("typing", "List")
    body = [
        '@strawberry.type(description="Position of a page within a connection.")',
        "class PageInfo:",
        "    has_next_page: bool",
        "    has_previous_page: bool",
        f"    start_cursor: {optional}[str] = None",
        f"    end_cursor: {optional}[str] = None",
        "",
        "    @classmethod",
        "    def from_message(cls, message) -> \"PageInfo\":",
        "        return cls(",
        "            has_next_page=message.has_next_page,",
        "            has_previous_page=message.has_previous_page,",
        "            start_cursor=message.start_cursor or None,",
        "            end_cursor=message.end_cursor or None,",
        "        )",
        "",
        "    @classmethod",
        f"    def from_cursors(cls, cursors: {listing}[str]) -> \"PageInfo\":",
        '        """Page info for a response that reports no paging state of its own."""',
        "        return cls(",
        "            has_next_page=False,",
        "            has_previous_page=False,",
        "            start_cursor=cursors[0] if cursors else None,",
        "            end_cursor=cursors[-1] if cursors else None,",
        "        )",
    ]
    return render_module(module_header("Relay PageInfo type."), imports, body)


def render_edge(object_type: ObjectType) -> str:
    imports = Imports()
    imports.add("strawberry")
    node = imports.add(f".{object_type.module}", object_type.name)
    body = [
        "@strawberry.type",
        f"class {object_type.name}Edge:",
        "    cursor: str",
        f"    node: {node}",
    ]
    return render_module(module_header(f"Edge type for {object_type.full_name}."), imports, body)


def render_connection(object_type: ObjectType) -> str:
    imports = Imports()
    imports.add("strawberry")
    listing = imports.add("typing", "List")
    edge = imports.add(f".{object_type.module}_edge", f"{object_type.name}Edge")
    page_info = imports.add(".page_info", "PageInfo")
    body = [
        "@strawberry.type",
        f"class {object_type.name}Connection:",
        f"    edges: {listing}[{edge}]",
        f"    page_info: {page_info}",
    ]
    return render_module(module_header(f"Connection type for {object_type.full_name}."), imports, body)
