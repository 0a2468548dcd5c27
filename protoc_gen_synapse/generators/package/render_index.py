"""__init__.py indices re-exporting what each backend emitted for a package."""
from typing import Dict, List, Sequence, Tuple

from protoc_gen_synapse.generators.package.render_validate import domain_types
from protoc_gen_synapse.generators.plan import implementation_enabled, rpc_enabled, storage_enabled
from protoc_gen_synapse.generators.rpc.render_service import servicer_name
from protoc_gen_synapse.generators.storage.render_storage import impl_class_name, trait_module
from protoc_gen_synapse.generators.types import GeneratedFile, PackageUnit, RenderContext
from protoc_gen_synapse.generators.utils import Imports, module_header, out_path, py_literal, render_module
from protoc_gen_synapse.ir.naming import to_snake_case

Exports = List[Tuple[str, List[str]]]  # (relative module, names)


def render_index(summary: str, exports: Exports, submodules: Sequence[str] = ()) -> str:
    imports = Imports()
    names: List[str] = []
    for module, symbols in exports:
        for symbol in symbols:
            names.append(imports.add(module, symbol))
    names.extend(submodules)
    body = ["__all__ = ["]
    body.extend(f"    {py_literal(name)}," for name in sorted(set(names)))
    body.append("]")
    return render_module(module_header(summary), imports, body)


def entity_exports(unit: PackageUnit) -> Exports:
    exports = [(f".{to_snake_case(e.name)}", [e.name]) for e in unit.entities]
    exports.extend((f".{to_snake_case(e.name)}", [e.name]) for e in unit.enums)
    return exports


def storage_exports(ctx: RenderContext, unit: PackageUnit) -> Exports:
    exports: Exports = []
    for service in unit.services:
        if not storage_enabled(ctx, service):
            continue
        module = trait_module(service)
        exports.append((f".{module}", [service.trait_name]))
        if implementation_enabled(ctx, service):
            exports.append((f".{module}_impl", [impl_class_name(service)]))
    return exports


def rpc_exports(ctx: RenderContext, unit: PackageUnit) -> Exports:
    return [
        (f".{to_snake_case(s.name)}", [servicer_name(ctx, s)])
        for s in unit.services if rpc_enabled(ctx, s)
    ]


def generate_indices(ctx: RenderContext, unit: PackageUnit, files: List[GeneratedFile]) -> List[GeneratedFile]:
    """One index per emitted subdirectory plus the package index; each path at most once."""
    emitted = {f.path for f in files}
    base = out_path(unit.package)
    prefix = f"{base}/" if base else ""

    def present(subdir: str) -> bool:
        return any(path.startswith(f"{prefix}{subdir}/") for path in emitted)

    indices: Dict[str, str] = {}
    label = unit.package or "root package"
    if present("entities"):
        indices["entities"] = render_index(f"Entities of {label}.", entity_exports(unit))
    if present("storage"):
        submodules = ["conversions"] if f"{prefix}storage/conversions.py" in emitted else []
        indices["storage"] = render_index(f"Storage layer of {label}.", storage_exports(ctx, unit), submodules)
    if present("rpc"):
        indices["rpc"] = render_index(f"gRPC servicers of {label}.", rpc_exports(ctx, unit))
    if present("validate"):
        exports = [(f".{d.module}", [d.name]) for d in domain_types(ctx, unit)]
        indices["validate"] = render_index(f"Validated domain types of {label}.", exports)
    if present("graphql"):
        indices["graphql"] = render_index(f"GraphQL layer of {label}.", [(".schema", ["build_context", "schema"])])

    result = [
        GeneratedFile(path=out_path(unit.package, subdir, "__init__.py"), content=content)
        for subdir, content in indices.items()
    ]
    result.append(GeneratedFile(
        path=out_path(unit.package, "__init__.py"),
        content=render_index(f"Generated code for {label}.", [], sorted(indices)),
    ))
    return [f for f in result if f.path not in emitted]
