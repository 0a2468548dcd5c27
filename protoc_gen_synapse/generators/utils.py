"""Utility functions shared by the render modules."""
import json
from typing import Dict, List, Optional, Set, Tuple

from protoc_gen_synapse.generators.types import RenderContext
from protoc_gen_synapse.ir.naming import package_path, proto_module, simple_name

GENERATED_MARK = "@generated by protoc-gen-synapse. Do not edit."

_STDLIB = {"collections", "dataclasses", "datetime", "enum", "typing", "json", "logging"}
_THIRD_PARTY = {"google", "grpc", "pydantic", "sqlalchemy", "strawberry"}
_RUNTIME = "protoc_gen_synapse"


def module_header(summary: str, source: Optional[str] = None) -> List[str]:
    """Docstring lines that open every generated Python module."""
    lines = ['"""' + summary, ""]
    if source:
        lines.append(f"Source: {source}")
    lines.append(GENERATED_MARK)
    lines.append('"""')
    return lines


def out_path(package: str, *parts: str) -> str:
    """Output path for a generated file of a proto package."""
    base = package_path(package)
    return "/".join(p for p in (base,) + parts if p)


def package_module(package: str, *parts: str) -> str:
    """Dotted module path of a generated module of a proto package."""
    return ".".join(p for p in (package,) + parts if p)


class Imports:
    """Collects import statements and renders them grouped and sorted."""

    def __init__(self):
        self._names: Dict[str, Set[Tuple[str, Optional[str]]]] = {}
        self._modules: Set[str] = set()

    def add(self, module: str, name: Optional[str] = None, alias: Optional[str] = None) -> str:
        """Register an import and return the local name to use."""
        if name is None:
            self._modules.add(module)
            return module
        self._names.setdefault(module, set()).add((name, alias))
        return alias or name

    def _group(self, module: str) -> int:
        root = module.split(".", 1)[0]
        if root in _STDLIB:
            return 0
        if root in _THIRD_PARTY:
            return 1
        if root == _RUNTIME:
            return 2
        return 3

    def render(self) -> List[str]:
        groups: Dict[int, List[str]] = {}
        for module in self._modules:
            groups.setdefault(self._group(module), []).append(f"import {module}")
        for module, names in self._names.items():
            rendered = ", ".join(
                f"{name} as {alias}" if alias else name
                for name, alias in sorted(names, key=lambda n: (n[0], n[1] or ""))
            )
            groups.setdefault(self._group(module), []).append(f"from {module} import {rendered}")
        lines: List[str] = []
        for key in sorted(groups):
            if lines:
                lines.append("")
            lines.extend(sorted(groups[key], key=lambda l: l.split(" ")[1]))
        return lines


def wire_module(ctx: RenderContext, full_name: str) -> Optional[str]:
    """Module protoc's Python output uses for a message or enum."""
    name = full_name.lstrip(".")
    entry = ctx.index.message(name) or ctx.index.enum(name)
    if entry is None:
        return None
    return proto_module(entry.file_name)


def wire_type(ctx: RenderContext, imports: Imports, full_name: str) -> str:
    """Import the wire module of a type and return the expression naming it."""
    name = full_name.lstrip(".")
    entry = ctx.index.message(name) or ctx.index.enum(name)
    if entry is None:
        return simple_name(name)
    module = proto_module(entry.file_name)
    if "." in module:
        parent, leaf = module.rsplit(".", 1)
        local = imports.add(parent, leaf)
    else:
        local = imports.add(module)
    return f"{local}.{entry.path}"


def render_module(header: List[str], imports: Imports, body: List[str]) -> str:
    """Join header, imports and body into final module text ending in one newline."""
    lines = list(header)
    imported = imports.render()
    if imported:
        lines.append("")
        lines.extend(imported)
    while body and body[0] == "":
        body = body[1:]
    if body:
        lines.append("")
        lines.append("")
        lines.extend(body)
    while lines and lines[-1] == "":
        lines.pop()
    return "\n".join(lines) + "\n"


def py_literal(value) -> str:
    """Python source literal; strings are double-quoted."""
    if isinstance(value, str):
        return json.dumps(value)
    return repr(value)
