"""Query, mutation and subscription classes, one set per service.

Resolvers translate GraphQL arguments into the wire request through the
protobuf JSON mapping, call the service's storage found under
`info.context["storages"][ServiceName]` and convert the response back.
"""
from typing import Dict, List, Optional

from protoc_gen_synapse.generators.graphql.operations import GraphqlOperation, Kind
from protoc_gen_synapse.generators.graphql.render_input import InputType, operation_input
from protoc_gen_synapse.generators.graphql.types import ObjectType, entity_type_name, filter_fields, order_fields
from protoc_gen_synapse.generators.plan import Operation
from protoc_gen_synapse.generators.storage.render_storage import key_field, list_shape
from protoc_gen_synapse.generators.types import RenderContext
from protoc_gen_synapse.generators.utils import Imports, module_header, py_literal, render_module, wire_type
from protoc_gen_synapse.ir.model import Service
from protoc_gen_synapse.ir.naming import to_snake_case

_MESSAGES = "protoc_gen_synapse.runtime.messages"
_RELAY = "protoc_gen_synapse.runtime.relay"

CLASS_SUFFIXES = {Kind.QUERY: "Query", Kind.MUTATION: "Mutation", Kind.SUBSCRIPTION: "Subscription"}


def resolver_class(service: Service, kind: Kind) -> str:
    return f"{service.name}{CLASS_SUFFIXES[kind]}"


def resolver_module(service: Service, kind: Kind) -> str:
    return f"{to_snake_case(service.name)}_{kind.value}"


class _Renderer:
    """Renders the resolvers of one service and kind into a single module."""

    def __init__(self, ctx: RenderContext, service: Service, types: Dict[str, ObjectType]):
        self.ctx = ctx
        self.service = service
        self.types = types
        self.imports = Imports()
        self.imports.add("strawberry")

    def _storage(self) -> str:
        return f"        storage = info.context[\"storages\"][{py_literal(self.service.name)}]"

    def _decorator(self, op: GraphqlOperation, kind: str, description: str) -> str:
        options = []
        if op.graphql_name:
            options.append(f"name={py_literal(op.graphql_name)}")
        options.append(f"description={py_literal(op.description or description)}")
        return f"    @strawberry.{kind}({', '.join(options)})"

    def _request(self, op: GraphqlOperation, data: str, indent: str = "        ") -> List[str]:
        build = self.imports.add(_MESSAGES, "build_message")
        request = wire_type(self.ctx, self.imports, op.input_type)
        lines = [f"{indent}request = {build}({request}, {data})"]
        if op.plan.domain_type and op.input_type == op.plan.method.input_type:
            domain = self.imports.add(f"..validate.{to_snake_case(op.plan.domain_type)}", op.plan.domain_type)
            lines.append(f"{indent}request = {domain}.from_message(request)")
        return lines

    def _context_lines(self, spec: Optional[InputType]) -> List[str]:
        if spec is None or not spec.context_fields:
            return []
        context_value = self.imports.add(_MESSAGES, "context_value")
        lines = []
        for gf in spec.context_fields:
            source = gf.options.from_context
            args = [
                "info.context",
                py_literal(source.path),
                f"required={source.required}",
            ]
            if source.error_message:
                args.append(f"error_message={py_literal(source.error_message)}")
            lines.extend([
                f"        value = {context_value}({', '.join(args)})",
                "        if value is not None:",
                f"            data[{py_literal(gf.field.proto_name)}] = value",
            ])
        return lines

    def _input_argument(self, spec: Optional[InputType], arguments: str):
        """Arguments with `input` appended when the operation takes one, and the data expression."""
        if spec is None or not spec.fields:
            return arguments, "{}"
        input_class = self.imports.add(f".{spec.module}", spec.name)
        input_to_dict = self.imports.add(_MESSAGES, "input_to_dict")
        return f"{arguments}, input: {input_class}", f"{input_to_dict}(input)"

    def _output(self, op: GraphqlOperation):
        """(annotation, converter format) for the operation's result."""
        object_type = self.types.get(op.output_message or "")
        if object_type is None:
            json = self.imports.add("strawberry.scalars", "JSON")
            converter = self.imports.add(_MESSAGES, "message_to_json")
            return json, f"{converter}({{}})"
        name = self.imports.add(f".{object_type.module}", object_type.name)
        if op.output_repeated:
            listing = self.imports.add("typing", "List")
            return f"{listing}[{name}]", f"[{name}.from_message(item) for item in {{}}]"
        return name, f"{name}.from_message({{}})"

    def _result_expr(self, op: GraphqlOperation) -> str:
        return f"response.{op.output_field}" if op.output_field else "response"

    def _key_lines(self, op: GraphqlOperation, on_error: str) -> List[str]:
        entity = op.plan.entity
        local_id = self.imports.add(_RELAY, "local_id")
        pk = entity.primary_key
        key_type = "int" if pk is None or pk.field_type.is_integer else "str"
        parsed = f"{local_id}(id, {py_literal(entity_type_name(self.ctx, entity))}, {key_type})"
        if on_error == "raise":
            return [f"        key = {parsed}"]
        return [
            "        try:",
            f"            key = {parsed}",
            "        except ValueError:",
            f"            {on_error}",
        ]

    def get(self, op: GraphqlOperation) -> List[str]:
        optional = self.imports.add("typing", "Optional")
        not_found = self.imports.add("protoc_gen_synapse.runtime.errors", "NotFound")
        annotation, converter = self._output(op)
        key = key_field(self.ctx, op.plan, op.plan.entity)
        lines = [
            self._decorator(op, "field", f"Fetch one {op.plan.entity_name} by id."),
            f"    async def {op.field_name}(self, info: strawberry.Info, id: strawberry.ID) -> {optional}[{annotation}]:",
            self._storage(),
            *self._key_lines(op, "return None"),
            *self._request(op, f"{{{py_literal(key)}: key}}"),
            "        try:",
            f"            response = await storage.{op.plan.python_name}(request)",
            f"        except {not_found}:",
            "            return None",
        ]
        if op.output_field and op.output_message and not op.output_repeated:
            lines.extend([
                f"        if not response.HasField({py_literal(op.output_field)}):",
                "            return None",
            ])
        lines.append(f"        return {converter.format(self._result_expr(op))}")
        return lines

    def list(self, op: GraphqlOperation) -> List[str]:
        entity = op.plan.entity
        object_type = self.types.get(entity.full_name)
        if object_type is None:
            return []
        optional = self.imports.add("typing", "Optional")
        page_args = self.imports.add(_RELAY, "PageArgs")
        connection = self.imports.add(f".{object_type.module}_connection", f"{object_type.name}Connection")
        edge = self.imports.add(f".{object_type.module}_edge", f"{object_type.name}Edge")
        node = self.imports.add(f".{object_type.module}", object_type.name)
        page_info = self.imports.add(".page_info", "PageInfo")
        arguments = [
            "self",
            "info: strawberry.Info",
            f"first: {optional}[int] = None",
            f"after: {optional}[str] = None",
            f"last: {optional}[int] = None",
            f"before: {optional}[str] = None",
        ]
        conditions = []
        if filter_fields(entity):
            filter_type = self.imports.add(f".{to_snake_case(entity.name)}_filter", f"{entity.name}Filter")
            arguments.append(f"filter: {optional}[{filter_type}] = None")
            conditions.append("filter")
        if order_fields(entity):
            order_type = self.imports.add(f".{to_snake_case(entity.name)}_order_by", f"{entity.name}OrderBy")
            arguments.append(f"order_by: {optional}[{order_type}] = None")
            conditions.append("order_by")
        settings = self.ctx.settings
        lines = [
            self._decorator(op, "field", f"Page through {op.plan.entity_name} rows."),
            f"    async def {op.field_name}(",
            *[f"        {a}," for a in arguments],
            f"    ) -> {connection}:",
            self._storage(),
            f"        page = {page_args}.from_args(",
            "            first, after, last, before,",
            f"            default={settings.default_page_size}, maximum={settings.max_page_size},",
            "        )",
            '        data = {"last" if page.backward else "first": page.size}',
            "        if page.after:",
            '            data["after"] = page.after',
            "        if page.before:",
            '            data["before"] = page.before',
        ]
        if conditions:
            input_to_dict = self.imports.add(_MESSAGES, "input_to_dict")
            for name in conditions:
                lines.extend([
                    f"        if {name} is not None:",
                    f"            data[{py_literal(name)}] = {input_to_dict}({name})",
                ])
        lines.extend(self._request(op, "data"))
        lines.append(f"        response = await storage.{op.plan.python_name}(request)")
        items, edges = list_shape(self.ctx, op.plan)
        if edges:
            lines.append(
                f"        edges = [{edge}(cursor=e.cursor, node={node}.from_message(e.node)) for e in response.{items}]"
            )
        else:
            encode = self.imports.add(_RELAY, "encode_cursor")
            pk = entity.primary_key.proto_name if entity.primary_key is not None else "id"
            lines.append(
                f"        edges = [{edge}(cursor={encode}(row.{pk}), node={node}.from_message(row)) for row in response.{items}]"
            )
        if _has_field(self.ctx, op.plan.method.output_type, "page_info"):
            lines.extend([
                '        if response.HasField("page_info"):',
                f"            page_info = {page_info}.from_message(response.page_info)",
                "        else:",
                f"            page_info = {page_info}.from_cursors([e.cursor for e in edges])",
            ])
        else:
            lines.append(f"        page_info = {page_info}.from_cursors([e.cursor for e in edges])")
        lines.append(f"        return {connection}(edges=edges, page_info=page_info)")
        return lines

    def create(self, op: GraphqlOperation) -> List[str]:
        spec = operation_input(self.ctx, op)
        annotation, converter = self._output(op)
        arguments, data = self._input_argument(spec, "self, info: strawberry.Info")
        return [
            self._decorator(op, "mutation", f"Create a {op.plan.entity_name}."),
            f"    async def {op.field_name}({arguments}) -> {annotation}:",
            self._storage(),
            f"        data = {data}",
            *self._context_lines(spec),
            *self._request(op, "data"),
            f"        response = await storage.{op.plan.python_name}(request)",
            f"        return {converter.format(self._result_expr(op))}",
        ]

    def update(self, op: GraphqlOperation) -> List[str]:
        spec = operation_input(self.ctx, op)
        annotation, converter = self._output(op)
        key = key_field(self.ctx, op.plan, op.plan.entity)
        arguments, data = self._input_argument(spec, "self, info: strawberry.Info, id: strawberry.ID")
        return [
            self._decorator(op, "mutation", f"Update a {op.plan.entity_name}; omitted fields keep their value."),
            f"    async def {op.field_name}({arguments}) -> {annotation}:",
            self._storage(),
            *self._key_lines(op, "raise"),
            f"        data = {data}",
            f"        data[{py_literal(key)}] = key",
            *self._context_lines(spec),
            *self._request(op, "data"),
            f"        response = await storage.{op.plan.python_name}(request)",
            f"        return {converter.format(self._result_expr(op))}",
        ]

    def delete(self, op: GraphqlOperation) -> List[str]:
        key = key_field(self.ctx, op.plan, op.plan.entity)
        lines = [
            self._decorator(op, "mutation", f"Delete a {op.plan.entity_name}."),
            f"    async def {op.field_name}(self, info: strawberry.Info, id: strawberry.ID) -> bool:",
            self._storage(),
            *self._key_lines(op, "raise"),
            *self._request(op, f"{{{py_literal(key)}: key}}"),
            f"        response = await storage.{op.plan.python_name}(request)",
        ]
        if _has_field(self.ctx, op.plan.method.output_type, "success"):
            lines.append("        return response.success")
        else:
            lines.append("        return True")
        return lines

    def _custom_head(self, op: GraphqlOperation, kind: str, returns: str) -> List[str]:
        spec = operation_input(self.ctx, op)
        arguments, data = self._input_argument(spec, "self, info: strawberry.Info")
        return [
            self._decorator(op, kind, f"{op.service.name}.{op.plan.name}"),
            f"    async def {op.field_name}({arguments}) -> {returns}:",
            self._storage(),
            f"        data = {data}",
            *self._context_lines(spec),
            *self._request(op, "data"),
        ]

    def custom(self, op: GraphqlOperation) -> List[str]:
        annotation, converter = self._output(op)
        kind = "field" if op.kind == Kind.QUERY else "mutation"
        return [
            *self._custom_head(op, kind, annotation),
            f"        response = await storage.{op.plan.python_name}(request)",
            f"        return {converter.format(self._result_expr(op))}",
        ]

    def subscription(self, op: GraphqlOperation) -> List[str]:
        annotation, converter = self._output(op)
        iterator = self.imports.add("typing", "AsyncGenerator")
        return [
            *self._custom_head(op, "subscription", f"{iterator}[{annotation}, None]"),
            f"        async for response in storage.{op.plan.python_name}(request):",
            f"            yield {converter.format(self._result_expr(op))}",
        ]

    def operation(self, op: GraphqlOperation) -> List[str]:
        if op.kind == Kind.SUBSCRIPTION:
            return self.subscription(op)
        if not op.default:
            return self.custom(op)
        handlers = {
            Operation.GET: self.get,
            Operation.LIST: self.list,
            Operation.CREATE: self.create,
            Operation.UPDATE: self.update,
            Operation.DELETE: self.delete,
        }
        return handlers[op.plan.operation](op)


def _has_field(ctx: RenderContext, full_name: str, name: str) -> bool:
    entry = ctx.index.message(full_name)
    return entry is not None and any(f.name == name for f in entry.descriptor.field)


def render_resolvers(
    ctx: RenderContext,
    service: Service,
    kind: Kind,
    operations: List[GraphqlOperation],
    types: Dict[str, ObjectType],
) -> Optional[str]:
    """Module holding the service's resolvers of one kind; None when there are none."""
    renderer = _Renderer(ctx, service, types)
    methods: List[str] = []
    for op in operations:
        if op.kind != kind:
            continue
        lines = renderer.operation(op)
        if lines:
            methods.append("")
            methods.extend(lines)
    if not methods:
        return None
    name = resolver_class(service, kind)
    decorator = "@strawberry.type"
    body = [decorator, f"class {name}:", *methods[1:]]
    header = module_header(f"GraphQL {kind.value} resolvers for {service.name}.", service.file_name)
    return render_module(header, renderer.imports, body)
