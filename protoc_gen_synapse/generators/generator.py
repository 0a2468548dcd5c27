"""One plugin run: pre-process options, resolve IR, render every backend per package."""
import logging
from typing import Dict, List, Optional

from google.protobuf.compiler import plugin_pb2

from protoc_gen_synapse.core.config import Settings, settings as default_settings
from protoc_gen_synapse.core.errors import MissingFileError
from protoc_gen_synapse.core.workflow import GenerationStage
from protoc_gen_synapse.generators.graphql.backend import generate_graphql
from protoc_gen_synapse.generators.package.render_conversions import render_conversions
from protoc_gen_synapse.generators.package.render_index import generate_indices
from protoc_gen_synapse.generators.package.render_validate import generate_validate
from protoc_gen_synapse.generators.registry import BackendRegistry
from protoc_gen_synapse.generators.rpc.render_service import generate_rpc
from protoc_gen_synapse.generators.storage.backend import StorageBackend
from protoc_gen_synapse.generators.types import GeneratedFile, PackageUnit, RenderContext
from protoc_gen_synapse.generators.utils import out_path
from protoc_gen_synapse.ir.model import FileIr
from protoc_gen_synapse.ir.resolver import IrResolver, TypeIndex
from protoc_gen_synapse.options.cache import OptionsCache, preprocess
from protoc_gen_synapse.options.schema import SchemaContext

log = logging.getLogger(__name__)


class Generator:
    """Turns CodeGeneratorRequest bytes into generated files.

    The storage backend is resolved in the constructor, so an unknown
    `backend=` value fails before any file is looked at.
    """

    def __init__(
        self,
        schema: SchemaContext,
        backend: Optional[str] = None,
        registry: Optional[BackendRegistry] = None,
        settings: Settings = default_settings,
    ):
        self.schema = schema
        self.settings = settings
        self.registry = registry or BackendRegistry.default()
        self.backend: StorageBackend = self.registry.resolve(backend, settings.default_backend)

    def resolve(self, raw: bytes):
        """(context, package units) for the files to generate, in request order."""
        cache: OptionsCache = preprocess(self.schema, raw)
        request = plugin_pb2.CodeGeneratorRequest.FromString(raw)
        index = TypeIndex(list(request.proto_file))
        resolver = IrResolver(cache, index)

        units: Dict[str, PackageUnit] = {}
        files: List[FileIr] = []
        for name in request.file_to_generate:
            file_proto = index.files.get(name)
            if file_proto is None:
                raise MissingFileError(name)
            ir = resolver.resolve_file(file_proto)
            files.append(ir)
            units.setdefault(ir.package, PackageUnit(package=ir.package)).files.append(ir)

        ctx = RenderContext(cache=cache, index=index, settings=self.settings)
        for ir in files:
            for entity in ir.entities:
                ctx.entities[entity.full_name] = entity
            for enum in ir.enums:
                ctx.enums[enum.full_name] = enum
            ctx.services.extend(ir.services)
        return ctx, list(units.values())

    def generate_unit(self, ctx: RenderContext, unit: PackageUnit) -> List[GeneratedFile]:
        files = self.backend.generate(ctx, unit)
        if unit.entities:
            files.append(GeneratedFile(
                path=out_path(unit.package, "storage", "conversions.py"),
                content=render_conversions(ctx, unit),
            ))
        files.extend(generate_validate(ctx, unit))
        files.extend(generate_rpc(ctx, unit))
        files.extend(generate_graphql(ctx, unit))
        files.extend(generate_indices(ctx, unit, files))
        log.info(
            "Package %s: %d files", unit.package or "(root)", len(files),
            extra={"stage": GenerationStage.PACKAGE.value},
        )
        return files

    def run(self, raw: bytes) -> List[GeneratedFile]:
        ctx, units = self.resolve(raw)
        files: List[GeneratedFile] = []
        for unit in units:
            files.extend(self.generate_unit(ctx, unit))
        return files
