"""Entity <-> wire message conversions for a package (storage/conversions.py)."""
from typing import List, Optional

from protoc_gen_synapse.generators.storage.render_entity import import_enum
from protoc_gen_synapse.generators.storage.types import attribute_name
from protoc_gen_synapse.generators.types import PackageUnit, RenderContext
from protoc_gen_synapse.generators.utils import Imports, module_header, py_literal, render_module, wire_type
from protoc_gen_synapse.ir.model import Entity, Field, FieldKind, Oneof, OneofStrategy
from protoc_gen_synapse.ir.naming import to_snake_case

_RUNTIME_MESSAGES = "protoc_gen_synapse.runtime.messages"


def _runtime(imports: Imports, name: str) -> str:
    return imports.add(_RUNTIME_MESSAGES, name)


def _enum_class(ctx: RenderContext, imports: Imports, field: Field, package: str) -> Optional[str]:
    if field.field_type.kind != FieldKind.ENUM:
        return None
    enum = ctx.enum(field.field_type.type_name)
    if enum is None:
        return None
    return import_enum(imports, enum, package, relative="..entities.")


def _is_structured(field: Field) -> bool:
    return field.field_type.kind == FieldKind.MESSAGE or field.embed


def _to_wire_lines(ctx: RenderContext, imports: Imports, entity: Entity, field: Field) -> List[str]:
    """Lines copying one column into `message`."""
    attr = f"row.{attribute_name(field.name)}"
    wire = f"message.{field.proto_name}"
    enum_class = _enum_class(ctx, imports, field, entity.package)
    if field.repeated:
        if _is_structured(field) or field.is_timestamp:
            json_into = _runtime(imports, "json_into_message")
            return [
                f"    for item in {attr} or []:",
                f"        {json_into}(item, {wire}.add())",
            ]
        if enum_class:
            return [f"    {wire}.extend(item.to_proto() for item in {attr} or [])"]
        return [f"    {wire}.extend({attr} or [])"]
    if field.is_timestamp:
        value = f"{_runtime(imports, 'to_timestamp')}({attr})"
        return [f"    if {attr} is not None:", f"        {wire}.CopyFrom({value})"]
    if _is_structured(field):
        return [f"    {_runtime(imports, 'json_into_message')}({attr}, {wire})"]
    if "wrapper" in field.hints:
        return [f"    if {attr} is not None:", f"        {wire}.value = {attr}"]
    value = f"{attr}.to_proto()" if enum_class else attr
    return [f"    if {attr} is not None:", f"        {wire} = {value}"]


def _from_wire_value(ctx: RenderContext, imports: Imports, entity: Entity, field: Field) -> str:
    """Expression converting request.<field> into the column value."""
    source = f"request.{field.proto_name}"
    enum_class = _enum_class(ctx, imports, field, entity.package)
    if field.repeated:
        if _is_structured(field) or field.is_timestamp:
            return f"{_runtime(imports, 'message_to_json')}({source})"
        if enum_class:
            return f"[{enum_class}.from_proto(item) for item in {source}]"
        return f"list({source})"
    if field.is_timestamp:
        return f"{_runtime(imports, 'to_datetime')}({source})"
    if _is_structured(field):
        return f"{_runtime(imports, 'message_to_json')}({source})"
    if "wrapper" in field.hints:
        return f"{_runtime(imports, 'unwrap')}({source})"
    if enum_class:
        return f"{enum_class}.from_proto({source})"
    return source


def _assign_lines(ctx: RenderContext, imports: Imports, entity: Entity, field: Field) -> List[str]:
    has_value = _runtime(imports, "has_value")
    return [
        f"    if {has_value}(request, {py_literal(field.proto_name)}):",
        f"        row.{attribute_name(field.name)} = {_from_wire_value(ctx, imports, entity, field)}",
    ]


def _tagged_decode(field: Field, source: str) -> Optional[str]:
    kind = field.field_type.kind
    if field.field_type.is_integer or kind == FieldKind.ENUM:
        return f"int({source})"
    if field.field_type.is_float:
        return f"float({source})"
    if kind == FieldKind.BOOL:
        return f'{source} == "true"'
    if kind == FieldKind.STRING:
        return source
    if kind == FieldKind.BYTES:
        return f"{source}.encode()"
    return None


def _oneof_to_wire(ctx: RenderContext, imports: Imports, entity: Entity, oneof: Oneof) -> List[str]:
    base = to_snake_case(oneof.name)
    if oneof.strategy == OneofStrategy.JSON:
        json_into = _runtime(imports, "json_into_message")
        return [f"    if row.{base} is not None:", f"        {json_into}(row.{base}, message)"]
    if oneof.strategy == OneofStrategy.TAGGED:
        tag, value = oneof.columns[0].name, oneof.columns[1].name
        lines = []
        keyword = "if"
        for variant in oneof.variants:
            decoded = _tagged_decode(variant, f"row.{value}")
            lines.append(f"    {keyword} row.{tag} == {py_literal(variant.proto_name)}:")
            if decoded is None:
                json_into = _runtime(imports, "json_into_message")
                imports.add("json")
                lines.append(f"        {json_into}(json.loads(row.{value}), message.{variant.proto_name})")
            else:
                lines.append(f"        message.{variant.proto_name} = {decoded}")
            keyword = "elif"
        return lines
    lines = []
    for variant in oneof.variants:
        lines.extend(_to_wire_lines(ctx, imports, entity, variant))
    return lines


def _oneof_from_wire(ctx: RenderContext, imports: Imports, entity: Entity, oneof: Oneof) -> List[str]:
    base = to_snake_case(oneof.name)
    which = _runtime(imports, "which_oneof")
    if oneof.strategy == OneofStrategy.JSON:
        to_json = _runtime(imports, "message_to_json")
        return [
            f"    variant = {which}(request, {py_literal(oneof.name)})",
            "    if variant is not None:",
            f"        row.{base} = {{variant: {to_json}(getattr(request, variant))}}",
        ]
    if oneof.strategy == OneofStrategy.TAGGED:
        tag, value = oneof.columns[0].name, oneof.columns[1].name
        tagged = _runtime(imports, "tagged_value")
        return [
            f"    variant = {which}(request, {py_literal(oneof.name)})",
            "    if variant is not None:",
            f"        row.{tag} = variant",
            f"        row.{value} = {tagged}(getattr(request, variant))",
        ]
    has_value = _runtime(imports, "has_value")
    lines = []
    for variant in oneof.variants:
        others = [v for v in oneof.variants if v is not variant]
        lines.append(f"    if {has_value}(request, {py_literal(variant.proto_name)}):")
        lines.append(f"        row.{attribute_name(variant.name)} = {_from_wire_value(ctx, imports, entity, variant)}")
        for other in others:
            lines.append(f"        row.{attribute_name(other.name)} = None")
    return lines


def _render_entity_conversions(ctx: RenderContext, imports: Imports, entity: Entity) -> List[str]:
    snake = to_snake_case(entity.name)
    imports.add(f"..entities.{snake}", entity.name)
    wire = wire_type(ctx, imports, entity.full_name)

    lines = [
        f"def {snake}_to_message(row: {entity.name}) -> {wire}:",
        f'    """Copy a {entity.name} row into its wire message; timestamps become (seconds, nanos)."""',
        f"    message = {wire}()",
    ]
    for field in entity.columns:
        lines.extend(_to_wire_lines(ctx, imports, entity, field))
    for oneof in entity.oneofs:
        lines.extend(_oneof_to_wire(ctx, imports, entity, oneof))
    lines.append("    return message")

    lines.extend([
        "",
        "",
        f"def {snake}_from_message(request) -> {entity.name}:",
        f'    """Build a new {entity.name} from a create request; every present field is set."""',
        f"    row = {entity.name}()",
    ])
    for field in entity.columns:
        if field.primary_key and field.auto_increment:
            continue
        lines.extend(_assign_lines(ctx, imports, entity, field))
    for oneof in entity.oneofs:
        lines.extend(_oneof_from_wire(ctx, imports, entity, oneof))
    lines.append("    return row")

    lines.extend([
        "",
        "",
        f"def apply_{snake}_update(row: {entity.name}, request) -> None:",
        f'    """Apply the fields present on an update request; the primary key is never patched."""',
    ])
    for field in entity.columns:
        if field.primary_key:
            continue
        lines.extend(_assign_lines(ctx, imports, entity, field))
    for oneof in entity.oneofs:
        lines.extend(_oneof_from_wire(ctx, imports, entity, oneof))
    return lines


def render_conversions(ctx: RenderContext, unit: PackageUnit) -> str:
    imports = Imports()
    body: List[str] = []
    for entity in unit.entities:
        if body:
            body.extend(["", ""])
        body.extend(_render_entity_conversions(ctx, imports, entity))
    header = module_header(f"Conversions between {unit.package or 'root'} entities and wire messages.")
    return render_module(header, imports, body)
