"""Validation rules attached to request message fields."""
from dataclasses import dataclass
from typing import List, Optional

from protoc_gen_synapse.generators.types import RenderContext
from protoc_gen_synapse.generators.utils import py_literal
from protoc_gen_synapse.options.records import Rules


@dataclass
class FieldRules:
    proto_name: str
    name: str  # domain attribute name, after any rename
    rules: Optional[Rules]
    field_proto: object


def message_rules(ctx: RenderContext, full_name: str) -> List[FieldRules]:
    """Non-skipped fields of a message with their validation rules."""
    entry = ctx.index.message(full_name)
    if entry is None:
        return []
    result = []
    for field_proto in entry.descriptor.field:
        options = ctx.cache.get_validate_field_options(entry.file_name, entry.path, field_proto.number)
        if options is not None and options.skip:
            continue
        result.append(FieldRules(
            proto_name=field_proto.name,
            name=(options.rename if options is not None and options.rename else field_proto.name),
            rules=options.rules if options is not None else None,
            field_proto=field_proto,
        ))
    return result


def check_arguments(rules: Optional[Rules]) -> List[str]:
    """Keyword arguments for runtime.validation.check matching a rule set."""
    if rules is None:
        return []
    args = []
    flags = (
        ("required", rules.required),
        ("email", rules.email),
        ("url", rules.url),
        ("uuid_format", rules.uuid),
        ("ascii_only", rules.ascii),
        ("alphanumeric", rules.alphanumeric),
        ("ip", rules.ip),
        ("ipv4", rules.ipv4),
        ("ipv6", rules.ipv6),
        ("unique_items", rules.unique_items),
    )
    args.extend(f"{name}=True" for name, enabled in flags if enabled)
    if rules.pattern:
        args.append(f"pattern={py_literal(rules.pattern)}")
    if rules.length is not None:
        if rules.length.equal:
            args.append(f"length={rules.length.equal}")
        if rules.length.min:
            args.append(f"min_length={rules.length.min}")
        if rules.length.max:
            args.append(f"max_length={rules.length.max}")
    if rules.range is not None:
        if rules.range.min is not None:
            args.append(f"minimum={rules.range.min!r}")
            if rules.range.exclusive_min:
                args.append("exclusive_minimum=True")
        if rules.range.max is not None:
            args.append(f"maximum={rules.range.max!r}")
            if rules.range.exclusive_max:
                args.append("exclusive_maximum=True")
    if rules.message:
        args.append(f"message={py_literal(rules.message)}")
    return args


def has_rules(rules: Optional[Rules]) -> bool:
    return bool(check_arguments(rules))
