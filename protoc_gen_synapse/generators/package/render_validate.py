"""Validated domain types (validate/{domain}.py) built from annotated request messages.

A domain type is a pydantic model holding the request's values: presence
fields are None when unset, timestamps datetimes, wrappers their inner
value. `from_message` applies the field rules first and raises the
runtime ValidationError subclasses, which the RPC layer maps to
INVALID_ARGUMENT.
"""
import logging
from dataclasses import dataclass
from typing import List

from protoc_gen_synapse.generators.rules import FieldRules, check_arguments, has_rules, message_rules
from protoc_gen_synapse.generators.types import GeneratedFile, PackageUnit, RenderContext
from protoc_gen_synapse.generators.utils import Imports, module_header, out_path, py_literal, render_module, wire_type
from protoc_gen_synapse.ir.model import Field, FieldKind
from protoc_gen_synapse.ir.resolver import TypeEntry, build_field, is_real_oneof_member
from protoc_gen_synapse.ir.naming import to_snake_case

log = logging.getLogger(__name__)

_PYTHON_TYPES = {
    FieldKind.BOOL: "bool",
    FieldKind.INT32: "int",
    FieldKind.INT64: "int",
    FieldKind.UINT32: "int",
    FieldKind.UINT64: "int",
    FieldKind.FLOAT: "float",
    FieldKind.DOUBLE: "float",
    FieldKind.STRING: "str",
    FieldKind.BYTES: "bytes",
    FieldKind.ENUM: "int",
}


@dataclass
class DomainType:
    name: str
    full_name: str
    entry: TypeEntry

    @property
    def module(self) -> str:
        return to_snake_case(self.name)


def domain_types(ctx: RenderContext, unit: PackageUnit) -> List[DomainType]:
    """Messages of the package carrying validate.message options with a name."""
    result = []
    for full_name, entry in sorted(ctx.index.messages.items()):
        if entry.package != unit.package or entry.file_name not in unit.file_names:
            continue
        options = ctx.cache.get_validate_message_options(entry.file_name, entry.path)
        if options is None or options.skip or not options.name:
            continue
        result.append(DomainType(name=options.name, full_name=full_name, entry=entry))
    return result


def _has_presence(field: Field, field_proto) -> bool:
    return field.nullable or field.field_type.kind in (FieldKind.TIMESTAMP, FieldKind.MESSAGE) or bool(
        field_proto.proto3_optional
    )


def _annotation(imports: Imports, field: Field, presence: bool) -> str:
    kind = field.field_type.kind
    if kind == FieldKind.TIMESTAMP:
        annotation = imports.add("datetime", "datetime")
    elif kind == FieldKind.MESSAGE:
        annotation = imports.add("typing", "Any")
    else:
        annotation = _PYTHON_TYPES.get(kind, "str")
    if field.repeated:
        return f"{imports.add('typing', 'List')}[{annotation}]"
    if presence:
        return f"{imports.add('typing', 'Optional')}[{annotation}]"
    return annotation


def _value(imports: Imports, field: Field, presence: bool) -> str:
    source = f"message.{field.proto_name}"
    kind = field.field_type.kind
    if field.repeated:
        if kind == FieldKind.TIMESTAMP:
            to_datetime = imports.add("protoc_gen_synapse.runtime.messages", "to_datetime")
            return f"[{to_datetime}(item) for item in {source}]"
        return f"list({source})"
    if not presence:
        return source
    if kind == FieldKind.TIMESTAMP:
        value = f"{imports.add('protoc_gen_synapse.runtime.messages', 'to_datetime')}({source})"
    elif "wrapper" in field.hints:
        value = f"{imports.add('protoc_gen_synapse.runtime.messages', 'unwrap')}({source})"
    else:
        value = source
    return f"{value} if message.HasField({py_literal(field.proto_name)}) else None"


def render_domain(ctx: RenderContext, domain: DomainType) -> str:
    imports = Imports()
    base_model = imports.add("pydantic", "BaseModel")
    config = imports.add("pydantic", "ConfigDict")
    wire = wire_type(ctx, imports, domain.full_name)
    message = domain.entry.descriptor
    rules: List[FieldRules] = message_rules(ctx, domain.full_name)

    body = [
        f"class {domain.name}({base_model}):",
        f'    """Validated form of {domain.full_name}."""',
        "",
        f"    model_config = {config}(arbitrary_types_allowed=True)",
        "",
    ]
    values = []
    renamed = []
    for rule in rules:
        oneof = None
        if is_real_oneof_member(rule.field_proto, message):
            oneof = message.oneof_decl[rule.field_proto.oneof_index].name
        field = build_field(rule.field_proto, None, oneof)
        presence = _has_presence(field, rule.field_proto)
        annotation = _annotation(imports, field, presence)
        if field.repeated:
            body.append(f"    {rule.name}: {annotation} = {imports.add('pydantic', 'Field')}(default_factory=list)")
        elif presence:
            body.append(f"    {rule.name}: {annotation} = None")
        else:
            body.append(f"    {rule.name}: {annotation}")
        values.append(f"            {rule.name}={_value(imports, field, presence)},")
        if rule.name != rule.proto_name:
            renamed.append(rule)
    if not rules:
        body.pop()

    for rule in renamed:
        body.extend([
            "",
            "    @property",
            f"    def {rule.proto_name}(self):",
            f"        return self.{rule.name}",
        ])

    checks = [r for r in rules if has_rules(r.rules)]
    body.extend([
        "",
        "    @classmethod",
        f"    def from_message(cls, message: {wire}) -> \"{domain.name}\":",
        '        """Apply the field rules, then copy the message; raises ValidationError."""',
    ])
    if checks:
        check = imports.add("protoc_gen_synapse.runtime.validation", "check")
        for rule in checks:
            args = ", ".join([py_literal(rule.name), f"message.{rule.proto_name}"] + check_arguments(rule.rules))
            body.append(f"        {check}({args})")
    body.extend([
        "        return cls(",
        *values,
        "        )",
    ])
    header = module_header(f"Validated domain type for {domain.full_name}.", domain.entry.file_name)
    return render_module(header, imports, body)


def generate_validate(ctx: RenderContext, unit: PackageUnit) -> List[GeneratedFile]:
    files = []
    for domain in domain_types(ctx, unit):
        files.append(GeneratedFile(
            path=out_path(unit.package, "validate", f"{domain.module}.py"),
            content=render_domain(ctx, domain),
        ))
        log.debug("Domain type %s for %s", domain.name, domain.full_name, extra={"proto_file": domain.entry.file_name})
    return files
