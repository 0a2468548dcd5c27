"""Schema wiring: merged root types and the per-request context factory."""
from typing import List

from protoc_gen_synapse.generators.graphql.operations import Kind
from protoc_gen_synapse.generators.graphql.render_loader import EntityLoader, RelationLoader
from protoc_gen_synapse.generators.graphql.render_resolver import resolver_class, resolver_module
from protoc_gen_synapse.generators.graphql.types import ObjectType
from protoc_gen_synapse.generators.utils import Imports, module_header, py_literal, render_module


def _root(imports: Imports, name: str, classes: List[str], placeholder: List[str]) -> List[str]:
    if classes:
        merge = imports.add("strawberry.tools", "merge_types")
        return [f"{name} = {merge}({py_literal(name)}, ({', '.join(classes)},))"]
    return ["@strawberry.type", f"class {name}:", *placeholder]


def render_schema(
    package: str,
    roots: List[tuple],
    node_types: List[ObjectType],
    entity_loaders: List[EntityLoader],
    relation_loaders: List[RelationLoader],
) -> str:
    """roots holds (service, kind) pairs whose resolver module was emitted.

    Without any query resolvers the Query root carries `health`; without
    mutations the Mutation root carries `noop`, so the schema stays valid.
    """
    imports = Imports()
    imports.add("strawberry")
    for name in ("Any", "Dict"):
        imports.add("typing", name)
    classes = {kind: [] for kind in Kind}
    for service, kind in roots:
        classes[kind].append(imports.add(f".{resolver_module(service, kind)}", resolver_class(service, kind)))
    if node_types:
        classes[Kind.QUERY].append(imports.add(".node", "NodeQuery"))

    body = []
    body.extend(_root(imports, "Query", classes[Kind.QUERY], [
        "    @strawberry.field(description=\"Always true; keeps the schema valid without services.\")",
        "    def health(self) -> bool:",
        "        return True",
    ]))
    body.extend(["", ""])
    body.extend(_root(imports, "Mutation", classes[Kind.MUTATION], [
        "    @strawberry.mutation(description=\"Does nothing; keeps the schema valid without mutations.\")",
        "    def noop(self) -> bool:",
        "        return True",
    ]))
    if classes[Kind.SUBSCRIPTION]:
        body.extend(["", ""])
        body.extend(_root(imports, "Subscription", classes[Kind.SUBSCRIPTION], []))

    loader_lines = []
    for loader in entity_loaders:
        cls = imports.add(f".{loader.module}", loader.name)
        loader_lines.append((loader.plan.service, loader.name, cls))
    for loader in relation_loaders:
        cls = imports.add(f".{loader.module}", loader.name)
        loader_lines.append((loader.plan.service, loader.name, cls))

    types = [imports.add(f".{t.module}", t.name) for t in node_types]
    subscription = ", subscription=Subscription" if classes[Kind.SUBSCRIPTION] else ""
    body.extend([
        "",
        "",
        "schema = strawberry.Schema(",
        f"    query=Query, mutation=Mutation{subscription},",
        f"    types=[{', '.join(types)}],",
        ")",
        "",
        "",
        "def build_context(storages: Dict[str, Any]) -> Dict[str, Any]:",
        '    """Request context: the storages by service name plus fresh loaders for this request."""',
        "    loaders: Dict[str, Any] = {}",
    ])
    for service, name, cls in loader_lines:
        body.extend([
            f"    if {py_literal(service.name)} in storages:",
            f"        loaders[{py_literal(name)}] = {cls}(storages[{py_literal(service.name)}])",
        ])
    body.append('    return {"storages": storages, "loaders": loaders}')
    return render_module(module_header(f"GraphQL schema for package {package or '(root)'}."), imports, body)

