"""Batched data loaders: one per entity by key, one per has-many/has-one relation by parent key.

Every loader turns a batch of keys into exactly one storage list call with an
"in" filter, then answers for every key it was given.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from protoc_gen_synapse.generators.graphql.types import entity_type_name, has_object_type, scalar_annotation
from protoc_gen_synapse.generators.plan import MethodPlan, Operation, find_plan, storage_enabled
from protoc_gen_synapse.generators.storage.render_storage import list_shape, trait_module
from protoc_gen_synapse.generators.types import RenderContext
from protoc_gen_synapse.generators.utils import Imports, module_header, py_literal, render_module, wire_type
from protoc_gen_synapse.ir.model import Entity, Field, Relation, RelationType
from protoc_gen_synapse.ir.naming import to_pascal_case, to_plural_pascal_case, to_snake_case

log = logging.getLogger(__name__)

_RELATION_KINDS = (RelationType.BELONGS_TO, RelationType.HAS_MANY, RelationType.HAS_ONE)


@dataclass
class EntityLoader:
    entity: Entity
    plan: MethodPlan
    key_field: Field
    type_name: str

    @property
    def name(self) -> str:
        return f"{self.type_name}Loader"

    @property
    def module(self) -> str:
        return f"{to_snake_case(self.type_name)}_loader"


@dataclass
class RelationLoader:
    """Loads the target rows of a has-many/has-one relation grouped by the parent's key."""
    relation: Relation
    parent: Entity
    target: Entity
    plan: MethodPlan
    foreign_key: Field  # column on the target holding the parent key
    parent_key: Field  # column on the parent the foreign key references
    type_name: str  # GraphQL type of the target
    alias: str = ""  # distinguishes several relations between the same two entities

    @property
    def many(self) -> bool:
        return self.relation.relation_type == RelationType.HAS_MANY

    @property
    def name(self) -> str:
        if self.alias:
            return f"{self.alias}By{self.parent.name}Loader"
        related = to_plural_pascal_case(self.type_name) if self.many else self.type_name
        return f"{related}By{self.parent.name}Loader"

    @property
    def module(self) -> str:
        return to_snake_case(self.name)


@dataclass
class RelationField:
    """A relation resolved on a GraphQL object type through a loader."""
    relation: Relation
    target: Entity
    loader_name: str
    parent_key: Field
    many: bool
    first_only: bool = False


def entity_loader(ctx: RenderContext, entity: Entity) -> Optional[EntityLoader]:
    pk = entity.primary_key
    if pk is None:
        return None
    plan = find_plan(ctx, entity, Operation.LIST)
    if plan is None:
        return None
    return EntityLoader(entity=entity, plan=plan, key_field=pk, type_name=entity_type_name(ctx, entity))


def _relation_target(ctx: RenderContext, entity: Entity, relation: Relation) -> Optional[Entity]:
    if relation.target is None or relation.relation_type not in _RELATION_KINDS:
        return None
    if relation.target.package != entity.package:
        log.debug(
            "Relation %s.%s crosses packages; not exposed in GraphQL", entity.name, relation.name,
            extra={"proto_file": entity.file_name},
        )
        return None
    target = ctx.entity_in_package(relation.target.package, relation.target.entity)
    if target is None or not has_object_type(ctx, target):
        return None
    return target


def relation_loader(ctx: RenderContext, entity: Entity, relation: Relation) -> Optional[RelationLoader]:
    if relation.relation_type not in (RelationType.HAS_MANY, RelationType.HAS_ONE):
        return None
    target = _relation_target(ctx, entity, relation)
    if target is None:
        return None
    plan = find_plan(ctx, target, Operation.LIST)
    foreign_key = target.field_named(relation.foreign_key)
    parent_key = entity.field_named(relation.references or "id") or entity.primary_key
    if plan is None or foreign_key is None or parent_key is None:
        log.info(
            "No list method or key column for %s.%s; relation not exposed in GraphQL",
            entity.name, relation.name,
            extra={"proto_file": entity.file_name},
        )
        return None
    return RelationLoader(
        relation=relation, parent=entity, target=target, plan=plan,
        foreign_key=foreign_key, parent_key=parent_key, type_name=entity_type_name(ctx, target),
    )


def relation_loaders(ctx: RenderContext, entity: Entity) -> List[RelationLoader]:
    result = []
    names = set()
    for relation in entity.relations:
        loader = relation_loader(ctx, entity, relation)
        if loader is None:
            continue
        if loader.name in names:
            loader.alias = to_pascal_case(relation.name)
        names.add(loader.name)
        result.append(loader)
    return result


def relation_fields(ctx: RenderContext, entity: Entity) -> List[RelationField]:
    """Relations of an entity that a GraphQL type can resolve through a loader."""
    result = []
    loaders = {loader.relation.name: loader for loader in relation_loaders(ctx, entity)}
    for relation in entity.relations:
        if relation.relation_type == RelationType.BELONGS_TO:
            target = _relation_target(ctx, entity, relation)
            if target is None:
                continue
            loader = entity_loader(ctx, target)
            local = entity.field_named(relation.foreign_key)
            pk = target.primary_key
            if loader is None or local is None or pk is None or (relation.references or "id") != pk.name:
                log.info(
                    "Cannot load %s.%s by key; relation not exposed in GraphQL", entity.name, relation.name,
                    extra={"proto_file": entity.file_name},
                )
                continue
            result.append(RelationField(relation, target, loader.name, local, many=False))
            continue
        loader = loaders.get(relation.name)
        if loader is None:
            continue
        result.append(RelationField(
            relation, loader.target, loader.name, loader.parent_key,
            many=loader.many, first_only=not loader.many,
        ))
    return result


def _storage_annotation(ctx: RenderContext, imports: Imports, plan: MethodPlan, package: str) -> str:
    service = plan.service
    if not storage_enabled(ctx, service):
        return ""
    module = trait_module(service)
    if service.package == package:
        return ": " + imports.add(f"..storage.{module}", service.trait_name)
    return ": " + imports.add(f"{service.package}.storage.{module}", service.trait_name)


def _request_lines(ctx: RenderContext, imports: Imports, plan: MethodPlan, data: str) -> List[str]:
    build = imports.add("protoc_gen_synapse.runtime.messages", "build_message")
    request = wire_type(ctx, imports, plan.method.input_type)
    lines = [f"        request = {build}({request}, {data})"]
    if plan.domain_type:
        domain = imports.add(f"..validate.{to_snake_case(plan.domain_type)}", plan.domain_type)
        lines.append(f"        request = {domain}.from_message(request)")
    lines.append(f"        response = await self.storage.{plan.python_name}(request)")
    items, edges = list_shape(ctx, plan)
    if edges:
        lines.append(f"        rows = [edge.node for edge in response.{items}]")
    else:
        lines.append(f"        rows = list(response.{items})")
    return lines


def render_entity_loader(ctx: RenderContext, loader: EntityLoader) -> str:
    entity = loader.entity
    imports = Imports()
    data_loader = imports.add("strawberry.dataloader", "DataLoader")
    for name in ("Dict", "List", "Optional", "Sequence"):
        imports.add("typing", name)
    in_filter = imports.add("protoc_gen_synapse.runtime.batching", "in_filter")
    index_by_key = imports.add("protoc_gen_synapse.runtime.batching", "index_by_key")
    node = imports.add(f".{to_snake_case(loader.type_name)}", loader.type_name)
    key_type = scalar_annotation(loader.key_field) or "str"
    key = loader.key_field.proto_name
    storage = _storage_annotation(ctx, imports, loader.plan, entity.package)
    data = f'{{"filter": {in_filter}({py_literal(key)}, keys), "first": len(keys)}}'
    body = [
        f"MAX_BATCH_SIZE = {ctx.settings.storage_max_page_size}",
        "",
        "",
        f"class {loader.name}:",
        f'    """{entity.name} rows by {key}; keys without a row are absent from a batch."""',
        "",
        f"    def __init__(self, storage{storage}):",
        "        self.storage = storage",
        f"        self.loader = {data_loader}(load_fn=self._load_fn, max_batch_size=MAX_BATCH_SIZE)",
        "",
        f"    async def load(self, key: {key_type}) -> Optional[{node}]:",
        "        return await self.loader.load(key)",
        "",
        f"    async def batch(self, keys: Sequence[{key_type}]) -> Dict[{key_type}, {node}]:",
        "        keys = list(keys)",
        *_request_lines(ctx, imports, loader.plan, data),
        f"        found = {index_by_key}(keys, rows, key=lambda row: row.{key})",
        f"        return {{k: {node}.from_message(row) for k, row in found.items()}}",
        "",
        f"    async def _load_fn(self, keys: List[{key_type}]) -> List[Optional[{node}]]:",
        "        found = await self.batch(keys)",
        "        return [found.get(k) for k in keys]",
    ]
    header = module_header(f"Batched loader for {entity.full_name} by {key}.", entity.file_name)
    return render_module(header, imports, body)


def render_relation_loader(ctx: RenderContext, loader: RelationLoader) -> str:
    target = loader.target
    imports = Imports()
    data_loader = imports.add("strawberry.dataloader", "DataLoader")
    for name in ("Dict", "List", "Sequence"):
        imports.add("typing", name)
    in_filter = imports.add("protoc_gen_synapse.runtime.batching", "in_filter")
    group_by_key = imports.add("protoc_gen_synapse.runtime.batching", "group_by_key")
    node = imports.add(f".{to_snake_case(loader.type_name)}", loader.type_name)
    key_type = scalar_annotation(loader.parent_key) or "str"
    column = loader.foreign_key.proto_name
    storage = _storage_annotation(ctx, imports, loader.plan, target.package)
    data = f'{{"filter": {in_filter}({py_literal(column)}, keys), "first": RELATION_LOADER_LIMIT}}'
    body = [
        f"RELATION_LOADER_LIMIT = {ctx.settings.relation_loader_limit}",
        "",
        "",
        f"class {loader.name}:",
        f'    """{target.name} rows grouped by {column}; every requested key maps to a list, empty when nothing matched."""',
        "",
        f"    def __init__(self, storage{storage}):",
        "        self.storage = storage",
        f"        self.loader = {data_loader}(load_fn=self._load_fn)",
        "",
        f"    async def load(self, key: {key_type}) -> List[{node}]:",
        "        return await self.loader.load(key)",
        "",
        f"    async def batch(self, keys: Sequence[{key_type}]) -> Dict[{key_type}, List[{node}]]:",
        "        keys = list(keys)",
        *_request_lines(ctx, imports, loader.plan, data),
        f"        grouped = {group_by_key}(keys, rows, key=lambda row: row.{column})",
        f"        return {{k: [{node}.from_message(row) for row in group] for k, group in grouped.items()}}",
        "",
        f"    async def _load_fn(self, keys: List[{key_type}]) -> List[List[{node}]]:",
        "        grouped = await self.batch(keys)",
        "        return [grouped[k] for k in keys]",
    ]
    header = module_header(
        f"Batched loader for {loader.parent.name}.{loader.relation.name} ({target.full_name} by {column}).",
        loader.parent.file_name,
    )
    return render_module(header, imports, body)
