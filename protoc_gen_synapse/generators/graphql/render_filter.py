"""Filter and order-by input types."""
from typing import List

from protoc_gen_synapse.generators.graphql.types import (
    BOOL_FILTER,
    FLOAT_FILTER,
    INT_FILTER,
    PRIMITIVE_FILTERS,
    STRING_FILTER,
    filter_family,
    filter_fields,
    order_fields,
)
from protoc_gen_synapse.generators.types import PackageUnit, RenderContext
from protoc_gen_synapse.generators.utils import Imports, module_header, render_module
from protoc_gen_synapse.ir.model import Entity
from protoc_gen_synapse.ir.naming import to_snake_case

_OPERATORS = {
    INT_FILTER: ("eq", "ne", "gt", "gte", "lt", "lte", "in"),
    FLOAT_FILTER: ("eq", "ne", "gt", "gte", "lt", "lte", "in"),
    STRING_FILTER: ("eq", "ne", "contains", "starts_with", "ends_with"),
    BOOL_FILTER: ("eq",),
}

_DESCRIPTIONS = {
    INT_FILTER: "Comparisons on an integer field.",
    FLOAT_FILTER: "Comparisons on a floating point field.",
    STRING_FILTER: "Comparisons on a text field.",
    BOOL_FILTER: "Equality on a boolean field.",
}


def used_filters(unit: PackageUnit) -> List[str]:
    """Primitive filters needed by at least one entity of the package, in a fixed order."""
    used = {filter_family(f) for e in unit.entities for f in filter_fields(e)}
    return [name for name in PRIMITIVE_FILTERS if name in used]


def filter_module(name: str) -> str:
    return to_snake_case(name)


def render_primitive_filter(name: str) -> str:
    imports = Imports()
    imports.add("strawberry")
    optional = imports.add("typing", "Optional")
    python = PRIMITIVE_FILTERS[name]
    body = [
        f'@strawberry.input(description="{_DESCRIPTIONS[name]}")',
        f"class {name}:",
    ]
    for op in _OPERATORS[name]:
        if op == "in":
            listing = imports.add("typing", "List")
            body.append(f'    in_: {optional}[{listing}[{python}]] = strawberry.field(name="in", default=None)')
        else:
            body.append(f"    {op}: {optional}[{python}] = None")
    return render_module(module_header(f"{name} input shared by the package's filters."), imports, body)


def render_order_direction() -> str:
    imports = Imports()
    imports.add("strawberry")
    imports.add("enum", "Enum")
    body = [
        "@strawberry.enum",
        "class OrderDirection(Enum):",
        "    ASC = 1",
        "    DESC = 2",
    ]
    return render_module(module_header("Sort direction for order-by inputs."), imports, body)


def render_entity_filter(ctx: RenderContext, entity: Entity) -> str:
    """{Entity}Filter: one primitive filter per scalar column; timestamps and relations excluded."""
    imports = Imports()
    imports.add("strawberry")
    optional = imports.add("typing", "Optional")
    name = f"{entity.name}Filter"
    body = [
        f'@strawberry.input(description="Conditions on {entity.name}; all given fields must match.")',
        f"class {name}:",
    ]
    fields = filter_fields(entity)
    for f in fields:
        family = filter_family(f)
        local = imports.add(f".{filter_module(family)}", family)
        body.append(f"    {f.name}: {optional}[{local}] = None")
    if not fields:
        body.append("    pass")
    return render_module(module_header(f"Filter input for {entity.full_name}.", entity.file_name), imports, body)


def render_entity_order_by(ctx: RenderContext, entity: Entity) -> str:
    """{Entity}OrderBy: a direction per sortable column, timestamps included."""
    imports = Imports()
    imports.add("strawberry")
    optional = imports.add("typing", "Optional")
    direction = imports.add(".order_direction", "OrderDirection")
    name = f"{entity.name}OrderBy"
    body = [
        f'@strawberry.input(description="Sort order for {entity.name}.")',
        f"class {name}:",
    ]
    fields = order_fields(entity)
    for f in fields:
        body.append(f"    {f.name}: {optional}[{direction}] = None")
    if not fields:
        body.append("    pass")
    return render_module(module_header(f"Order-by input for {entity.full_name}.", entity.file_name), imports, body)
