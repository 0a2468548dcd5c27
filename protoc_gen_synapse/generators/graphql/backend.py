"""GraphQL backend: emits the strawberry layer of one package."""
import logging
from typing import List

from protoc_gen_synapse.core.workflow import GenerationStage
from protoc_gen_synapse.generators.graphql.operations import Kind, graphql_services, service_operations
from protoc_gen_synapse.generators.graphql.render_filter import (
    filter_module,
    render_entity_filter,
    render_entity_order_by,
    render_order_direction,
    render_primitive_filter,
    used_filters,
)
from protoc_gen_synapse.generators.graphql.render_input import render_input, unit_inputs
from protoc_gen_synapse.generators.graphql.render_loader import (
    entity_loader,
    relation_loaders,
    render_entity_loader,
    render_relation_loader,
)
from protoc_gen_synapse.generators.graphql.render_object import (
    render_connection,
    render_edge,
    render_enum,
    render_node,
    render_object_type,
    render_page_info,
)
from protoc_gen_synapse.generators.graphql.render_resolver import render_resolvers, resolver_module
from protoc_gen_synapse.generators.graphql.render_schema import render_schema
from protoc_gen_synapse.generators.graphql.types import filter_fields, object_types, order_fields
from protoc_gen_synapse.generators.types import GeneratedFile, PackageUnit, RenderContext
from protoc_gen_synapse.generators.utils import out_path
from protoc_gen_synapse.ir.naming import simple_name, to_snake_case

log = logging.getLogger(__name__)


def unit_enum_names(ctx: RenderContext, unit: PackageUnit) -> List[str]:
    return [
        full_name for full_name, entry in sorted(ctx.index.enums.items())
        if entry.package == unit.package and entry.file_name in unit.file_names
    ]


def generate_graphql(ctx: RenderContext, unit: PackageUnit) -> List[GeneratedFile]:
    """Every graphql/ module of the package; nothing when it has neither types nor services."""
    types = object_types(ctx, unit)
    services = graphql_services(ctx, unit)
    if not types and not services:
        return []
    extra = {"proto_file": unit.file_names[0] if unit.file_names else "", "stage": GenerationStage.GRAPHQL.value}
    files: List[GeneratedFile] = []

    def emit(module: str, content: str) -> None:
        files.append(GeneratedFile(path=out_path(unit.package, "graphql", f"{module}.py"), content=content))

    for full_name in unit_enum_names(ctx, unit):
        emit(to_snake_case(simple_name(full_name)), render_enum(ctx, full_name))

    for name in used_filters(unit):
        emit(filter_module(name), render_primitive_filter(name))
    if any(order_fields(e) for e in unit.entities):
        emit("order_direction", render_order_direction())
    for entity in unit.entities:
        if filter_fields(entity):
            emit(f"{to_snake_case(entity.name)}_filter", render_entity_filter(ctx, entity))
        if order_fields(entity):
            emit(f"{to_snake_case(entity.name)}_order_by", render_entity_order_by(ctx, entity))

    index = {t.full_name: t for t in types}
    for t in types:
        emit(t.module, render_object_type(ctx, unit, t))
    entity_types = [t for t in types if t.entity is not None]
    if entity_types:
        emit("page_info", render_page_info())
    for t in entity_types:
        emit(f"{t.module}_edge", render_edge(t))
        emit(f"{t.module}_connection", render_connection(t))

    node_types = [t for t in types if t.node]
    if node_types:
        emit("node", render_node(ctx, node_types))

    loaders = []
    for t in entity_types:
        loader = entity_loader(ctx, t.entity) if t.node else None
        if loader is not None:
            loaders.append(loader)
            emit(loader.module, render_entity_loader(ctx, loader))
    relations = []
    for entity in unit.entities:
        for loader in relation_loaders(ctx, entity):
            relations.append(loader)
            emit(loader.module, render_relation_loader(ctx, loader))

    for spec in unit_inputs(ctx, unit):
        emit(spec.module, render_input(ctx, unit, spec))

    roots = []
    for service in services:
        operations = service_operations(ctx, service)
        for kind in Kind:
            content = render_resolvers(ctx, service, kind, operations, index)
            if content is not None:
                roots.append((service, kind))
                emit(resolver_module(service, kind), content)
        log.info("GraphQL for %s: %d operations", service.name, len(operations), extra=extra)

    emit("schema", render_schema(unit.package, roots, node_types, loaders, relations))
    log.info(
        "GraphQL for package %s: %d types, %d loaders", unit.package, len(types), len(loaders) + len(relations),
        extra=extra,
    )
    return files
