"""Storage interface, default CRUD functions and the session-backed implementation."""
import logging
from typing import List

from protoc_gen_synapse.generators.plan import MethodPlan, Operation
from protoc_gen_synapse.generators.storage.types import attribute_name
from protoc_gen_synapse.generators.types import RenderContext
from protoc_gen_synapse.generators.utils import (
    Imports,
    module_header,
    py_literal,
    render_module,
    wire_type,
)
from protoc_gen_synapse.ir.model import Entity, Service
from protoc_gen_synapse.ir.naming import to_snake_case

log = logging.getLogger(__name__)


def trait_module(service: Service) -> str:
    return to_snake_case(service.trait_name)


def impl_class_name(service: Service) -> str:
    return f"SqlAlchemy{service.trait_name}"


def request_type(ctx: RenderContext, imports: Imports, plan: MethodPlan) -> str:
    """Annotation for a method's request: validated domain type or wire message."""
    if plan.domain_type:
        return imports.add(f"..validate.{to_snake_case(plan.domain_type)}", plan.domain_type)
    return wire_type(ctx, imports, plan.method.input_type)


def _message_fields(ctx: RenderContext, full_name: str):
    entry = ctx.index.message(full_name)
    return list(entry.descriptor.field) if entry is not None else []


def _has_field(ctx: RenderContext, full_name: str, name: str) -> bool:
    return any(f.name == name for f in _message_fields(ctx, full_name))


def key_field(ctx: RenderContext, plan: MethodPlan, entity: Entity) -> str:
    """Request field carrying the primary key: the key's own name, else "id"."""
    pk = entity.primary_key
    if pk is not None and _has_field(ctx, plan.method.input_type, pk.proto_name):
        return pk.proto_name
    return "id"


def list_shape(ctx: RenderContext, plan: MethodPlan):
    """(items field, is edges) of a list response; edges/node/cursor when available."""
    fields = _message_fields(ctx, plan.method.output_type)
    for field in fields:
        if field.name == "edges":
            return "edges", True
    for field in fields:
        if field.label == field.LABEL_REPEATED and field.type_name:
            return field.name, False
    return "edges", True


def render_trait(ctx: RenderContext, service: Service, plans: List[MethodPlan]) -> str:
    """Generate the storage Protocol for a service."""
    imports = Imports()
    imports.add("typing", "Protocol")
    body = [
        f"class {service.trait_name}(Protocol):",
        f'    """Storage operations behind {service.name}."""',
    ]
    if not plans:
        body.append("    pass")
    for plan in plans:
        request = request_type(ctx, imports, plan)
        response = wire_type(ctx, imports, plan.method.output_type)
        body.append("")
        if plan.streaming:
            iterator = imports.add("typing", "AsyncIterator")
            body.append(f"    def {plan.python_name}(self, request: {request}) -> {iterator}[{response}]:")
        else:
            body.append(f"    async def {plan.python_name}(self, request: {request}) -> {response}:")
        body.append("        ...")
    header = module_header(f"Storage interface for {service.name}.", service.file_name)
    return render_module(header, imports, body)


def _render_get(ctx, imports, plan: MethodPlan, entity: Entity, response: str) -> List[str]:
    key = key_field(ctx, plan, entity)
    lines = [
        "    with storage_errors():",
        f"        row = await session.get({entity.name}, request.{key})",
        "    if row is None:",
        f'        raise NotFound(f"{entity.name} {{request.{key}}} not found")',
    ]
    lines.extend(_respond(plan, entity, response, "row"))
    imports.add("protoc_gen_synapse.runtime.errors", "NotFound")
    return lines


def _respond(plan: MethodPlan, entity: Entity, response: str, row: str) -> List[str]:
    converter = f"conversions.{to_snake_case(entity.name)}_to_message"
    if plan.result_field:
        return [f"    return {response}({plan.result_field}={converter}({row}))"]
    return [f"    return {response}()"]


def _render_list(ctx, imports, plan: MethodPlan, entity: Entity, response: str) -> List[str]:
    pk = entity.primary_key
    pk_attr = attribute_name(pk.name) if pk is not None else "id"
    integer_key = pk is None or pk.field_type.is_integer
    decode = "decode_int_cursor" if integer_key else "decode_cursor"
    imports.add("sqlalchemy", "select")
    imports.add("protoc_gen_synapse.runtime.errors", "InvalidArgument")
    for name in ("optional_value", "message_to_conditions"):
        imports.add("protoc_gen_synapse.runtime.messages", name)
    for name in (
        "apply_filter", "apply_order", "beyond_cursor_select", "check_cursor_order",
        "keyset_select", "page_info_dict", "slice_page",
    ):
        imports.add("protoc_gen_synapse.runtime.query", name)
    imports.add("protoc_gen_synapse.runtime.relay", decode)
    imports.add("protoc_gen_synapse.runtime.relay", "normalize_page_size")
    items, edges = list_shape(ctx, plan)
    converter = f"conversions.{to_snake_case(entity.name)}_to_message"
    lines = [
        '    first = optional_value(request, "first")',
        '    last = optional_value(request, "last")',
        "    size = normalize_page_size(first, last, maximum=STORAGE_MAX_PAGE_SIZE)",
        "    backward = last is not None",
        '    after = optional_value(request, "after")',
        '    before = optional_value(request, "before")',
        "    try:",
        f"        after_key = {decode}(after) if after else None",
        f"        before_key = {decode}(before) if before else None",
        "    except ValueError as e:",
        '        raise InvalidArgument(f"invalid cursor: {e}") from e',
        "",
        f"    stmt = select({entity.name})",
        '    conditions = optional_value(request, "filter")',
        "    if conditions is not None:",
        f"        stmt = apply_filter(stmt, {entity.name}, message_to_conditions(conditions))",
        '    order_by = optional_value(request, "order_by")',
        "    order = message_to_conditions(order_by) if order_by is not None else {}",
        "    check_cursor_order(order, after_key, before_key)",
        f"    beyond = beyond_cursor_select(stmt, {entity.name}.{pk_attr}, after=after_key, before=before_key, backward=backward)",
        f"    stmt = apply_order(stmt, {entity.name}, order)",
        f"    stmt = keyset_select(stmt, {entity.name}.{pk_attr}, size, after=after_key, before=before_key, backward=backward)",
        "",
        "    with storage_errors():",
        "        rows = (await session.scalars(stmt)).all()",
        "        beyond_cursor = beyond is not None and (await session.scalar(beyond)) is not None",
        f'    page = slice_page(rows, size, "{pk_attr}", backward=backward, beyond_cursor=beyond_cursor)',
    ]
    page_info = ", page_info=page_info_dict(page)" if _has_field(ctx, plan.method.output_type, "page_info") else ""
    if edges:
        imports.add("protoc_gen_synapse.runtime.relay", "encode_cursor")
        lines.extend([
            f"    edges = [{{\"cursor\": encode_cursor(row.{pk_attr}), \"node\": {converter}(row)}} for row in page.rows]",
            f"    return {response}({items}=edges{page_info})",
        ])
    else:
        lines.append(f"    return {response}({items}=[{converter}(row) for row in page.rows]{page_info})")
    return lines


def _render_create(ctx, imports, plan: MethodPlan, entity: Entity, response: str) -> List[str]:
    snake = to_snake_case(entity.name)
    lines = [
        f"    row = conversions.{snake}_from_message(request)",
        "    with storage_errors():",
        "        session.add(row)",
        "        await session.flush()",
        "        await session.refresh(row)",
    ]
    lines.extend(_respond(plan, entity, response, "row"))
    return lines


def _render_update(ctx, imports, plan: MethodPlan, entity: Entity, response: str) -> List[str]:
    key = key_field(ctx, plan, entity)
    snake = to_snake_case(entity.name)
    imports.add("protoc_gen_synapse.runtime.errors", "NotFound")
    lines = [
        "    with storage_errors():",
        f"        row = await session.get({entity.name}, request.{key})",
        "    if row is None:",
        f'        raise NotFound(f"{entity.name} {{request.{key}}} not found")',
        f"    conversions.apply_{snake}_update(row, request)",
        "    with storage_errors():",
        "        await session.flush()",
        "        await session.refresh(row)",
    ]
    lines.extend(_respond(plan, entity, response, "row"))
    return lines


def _render_delete(ctx, imports, plan: MethodPlan, entity: Entity, response: str) -> List[str]:
    key = key_field(ctx, plan, entity)
    imports.add("protoc_gen_synapse.runtime.errors", "NotFound")
    success = "success=True" if _has_field(ctx, plan.method.output_type, "success") else ""
    return [
        "    with storage_errors():",
        f"        row = await session.get({entity.name}, request.{key})",
        "        if row is None:",
        f'            raise NotFound(f"{entity.name} {{request.{key}}} not found")',
        "        await session.delete(row)",
        "        await session.flush()",
        f"    return {response}({success})",
    ]


_RENDERERS = {
    Operation.GET: _render_get,
    Operation.LIST: _render_list,
    Operation.CREATE: _render_create,
    Operation.UPDATE: _render_update,
    Operation.DELETE: _render_delete,
}


def _entity_import(imports: Imports, entity: Entity, package: str) -> None:
    module = to_snake_case(entity.name)
    if entity.package == package:
        imports.add(f"..entities.{module}", entity.name)
    else:
        imports.add(f"{entity.package}.entities.{module}", entity.name)


def render_defaults(ctx: RenderContext, service: Service, plans: List[MethodPlan]) -> str:
    """Generate one async default function per storage method."""
    imports = Imports()
    imports.add("sqlalchemy.ext.asyncio", "AsyncSession")
    body = [f"STORAGE_MAX_PAGE_SIZE = {ctx.settings.storage_max_page_size}"]
    for plan in plans:
        if plan.streaming:
            continue
        request = request_type(ctx, imports, plan)
        response = wire_type(ctx, imports, plan.method.output_type)
        body.append("")
        body.append("")
        body.append(f"async def {plan.python_name}(session: AsyncSession, request: {request}) -> {response}:")
        body.append(f'    """Default implementation for {plan.python_name}."""')
        renderer = _RENDERERS.get(plan.operation)
        entity = plan.entity
        if renderer is None or entity is None:
            if renderer is not None:
                log.info(
                    "No entity %s for %s.%s; emitting a stub",
                    plan.entity_name, service.name, plan.name,
                    extra={"proto_file": service.file_name},
                )
            message = f"{plan.python_name} has no default implementation for {plan.entity_name}"
            body.append(f"    raise NotImplementedError({py_literal(message)})")
            continue
        _entity_import(imports, entity, service.package)
        imports.add("protoc_gen_synapse.runtime.query", "storage_errors")
        if plan.operation != Operation.DELETE:
            imports.add(".", "conversions")
        body.extend(renderer(ctx, imports, plan, entity, response))
    header = module_header(f"Default storage functions for {service.trait_name}.", service.file_name)
    return render_module(header, imports, body)


def render_impl(ctx: RenderContext, service: Service, plans: List[MethodPlan]) -> str:
    """Generate the session-backed implementation delegating to the defaults."""
    imports = Imports()
    imports.add("sqlalchemy.ext.asyncio", "AsyncSession")
    imports.add("sqlalchemy.ext.asyncio", "async_sessionmaker")
    module = trait_module(service)
    defaults = imports.add(".", f"{module}_defaults")
    name = impl_class_name(service)
    body = [
        f"class {name}:",
        f'    """{service.trait_name} backed by an async SQLAlchemy session factory.',
        "",
        "    Each call runs in its own transaction; override a method to replace",
        "    the default behaviour and call the defaults module to reuse it.",
        '    """',
        "",
        "    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):",
        "        self.session_factory = session_factory",
    ]
    for plan in plans:
        request = request_type(ctx, imports, plan)
        response = wire_type(ctx, imports, plan.method.output_type)
        if plan.streaming:
            iterator = imports.add("typing", "AsyncIterator")
            message = f"{plan.python_name} streams responses; override it in a subclass"
            body.extend([
                "",
                f"    def {plan.python_name}(self, request: {request}) -> {iterator}[{response}]:",
                f"        raise NotImplementedError({py_literal(message)})",
            ])
            continue
        body.extend([
            "",
            f"    async def {plan.python_name}(self, request: {request}) -> {response}:",
            "        async with self.session_factory.begin() as session:",
            f"            return await {defaults}.{plan.python_name}(session, request)",
        ])
    header = module_header(f"SQLAlchemy implementation of {service.trait_name}.", service.file_name)
    return render_module(header, imports, body)
