"""Input types built from mutation requests and messages flagged as GraphQL inputs.

An input never carries fields filled from the request context; update
inputs also leave out the key, which the mutation takes as `id`.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from protoc_gen_synapse.generators.graphql.operations import GraphqlOperation, unit_operations
from protoc_gen_synapse.generators.graphql.types import (
    GraphqlField,
    enum_annotation,
    input_messages,
    input_type_name,
    json_scalar,
    message_fields,
    scalar_annotation,
    wrap,
)
from protoc_gen_synapse.generators.plan import Operation
from protoc_gen_synapse.generators.storage.render_storage import key_field
from protoc_gen_synapse.generators.types import PackageUnit, RenderContext
from protoc_gen_synapse.generators.utils import Imports, module_header, py_literal, render_module
from protoc_gen_synapse.ir.model import FieldKind
from protoc_gen_synapse.ir.naming import to_snake_case
from protoc_gen_synapse.ir.resolver import TypeEntry


@dataclass
class InputType:
    name: str
    full_name: str
    entry: TypeEntry
    fields: List[GraphqlField] = field(default_factory=list)
    context_fields: List[GraphqlField] = field(default_factory=list)
    all_optional: bool = False
    description: str = ""

    @property
    def module(self) -> str:
        return to_snake_case(self.name)

    def is_optional(self, gf: GraphqlField) -> bool:
        f = gf.field
        if self.all_optional or f.repeated or f.nullable:
            return True
        return f.field_type.kind in (FieldKind.TIMESTAMP, FieldKind.MESSAGE, FieldKind.ENUM)


def build_input(ctx: RenderContext, full_name: str, drop: str = "", all_optional: bool = False) -> Optional[InputType]:
    entry = ctx.index.message(full_name)
    if entry is None:
        return None
    options = ctx.cache.get_graphql_type_options(entry.file_name, entry.path)
    result = InputType(
        name=input_type_name(ctx, full_name),
        full_name=full_name,
        entry=entry,
        all_optional=all_optional,
        description=options.description if options is not None else "",
    )
    for gf in message_fields(ctx, entry):
        if gf.field.proto_name == drop:
            continue
        if gf.options is not None and gf.options.from_context is not None and gf.options.from_context.path:
            result.context_fields.append(gf)
        else:
            result.fields.append(gf)
    return result


def operation_input(ctx: RenderContext, op: GraphqlOperation) -> Optional[InputType]:
    """The input an operation takes as `input`, or None when it takes none."""
    if op.default:
        if op.plan.operation == Operation.CREATE:
            return build_input(ctx, op.input_type)
        if op.plan.operation == Operation.UPDATE:
            return build_input(ctx, op.input_type, drop=key_field(ctx, op.plan, op.plan.entity), all_optional=True)
        return None
    built = build_input(ctx, op.input_type)
    if built is None:
        return None
    if not built.fields:
        # context-only requests take no client input, but still need their context fields
        return InputType(built.name, built.full_name, built.entry, [], built.context_fields)
    return built


def unit_inputs(ctx: RenderContext, unit: PackageUnit) -> List[InputType]:
    """Every input type of the package, one per name, operations first."""
    found: Dict[str, InputType] = {}
    for op in unit_operations(ctx, unit):
        spec = operation_input(ctx, op)
        if spec is not None and spec.fields and spec.name not in found:
            found[spec.name] = spec
    for entry in input_messages(ctx, unit):
        spec = build_input(ctx, entry.full_name)
        if spec is not None and spec.name not in found:
            found[spec.name] = spec
    return list(found.values())


def _annotation(ctx: RenderContext, imports: Imports, gf: GraphqlField, package: str, optional: bool) -> str:
    f = gf.field
    if f.field_type.kind == FieldKind.TIMESTAMP:
        annotation = imports.add("datetime", "datetime")
    elif f.field_type.kind == FieldKind.ENUM:
        annotation = enum_annotation(ctx, imports, f, package)
    elif f.field_type.kind == FieldKind.MESSAGE:
        annotation = json_scalar(imports)
    else:
        annotation = scalar_annotation(f) or "str"
    return wrap(annotation, f, optional, imports)


def render_input(ctx: RenderContext, unit: PackageUnit, spec: InputType) -> str:
    imports = Imports()
    imports.add("strawberry")
    required = [gf for gf in spec.fields if not spec.is_optional(gf)]
    optional = [gf for gf in spec.fields if spec.is_optional(gf)]
    description = spec.description or f"Input for {spec.full_name}."
    body = [
        f"@strawberry.input(description={py_literal(description)})",
        f"class {spec.name}:",
    ]
    for gf in required + optional:
        is_optional = spec.is_optional(gf)
        annotation = _annotation(ctx, imports, gf, unit.package, is_optional)
        options = []
        if gf.graphql_name:
            options.append(f"name={py_literal(gf.graphql_name)}")
        if gf.description:
            options.append(f"description={py_literal(gf.description)}")
        if gf.deprecation and is_optional:
            options.append(f"deprecation_reason={py_literal(gf.deprecation)}")
        if not options:
            body.append(f"    {gf.attribute}: {annotation}" + (" = None" if is_optional else ""))
            continue
        if is_optional:
            options.insert(0, "default=None")
        body.append(f"    {gf.attribute}: {annotation} = strawberry.field({', '.join(options)})")
    if not spec.fields:
        body.append("    pass")
    header = module_header(f"GraphQL input for {spec.full_name}.", spec.entry.file_name)
    return render_module(header, imports, body)
