"""Storage backends selectable through the `backend=` plugin parameter."""
import logging
from abc import ABC, abstractmethod
from typing import List

from protoc_gen_synapse.core.workflow import GenerationStage
from protoc_gen_synapse.generators.plan import implementation_enabled, plan_service, storage_enabled
from protoc_gen_synapse.generators.storage.ddl import render_schema_sql
from protoc_gen_synapse.generators.storage.render_entity import render_entity, render_enum
from protoc_gen_synapse.generators.storage.render_storage import (
    render_defaults,
    render_impl,
    render_trait,
    trait_module,
)
from protoc_gen_synapse.generators.types import GeneratedFile, PackageUnit, RenderContext
from protoc_gen_synapse.generators.utils import out_path
from protoc_gen_synapse.ir.naming import to_snake_case

log = logging.getLogger(__name__)


class StorageBackend(ABC):
    name: str = ""

    @abstractmethod
    def generate(self, ctx: RenderContext, unit: PackageUnit) -> List[GeneratedFile]:
        """Emit entity and storage files for one package."""
        raise NotImplementedError


class SqlAlchemyBackend(StorageBackend):
    """SQLAlchemy 2.0 declarative entities with async session storage."""

    name = "sqlalchemy"

    def generate(self, ctx: RenderContext, unit: PackageUnit) -> List[GeneratedFile]:
        files = []
        for entity in unit.entities:
            files.append(GeneratedFile(
                path=out_path(unit.package, "entities", f"{to_snake_case(entity.name)}.py"),
                content=render_entity(ctx, entity),
            ))
        for enum in unit.enums:
            files.append(GeneratedFile(
                path=out_path(unit.package, "entities", f"{to_snake_case(enum.name)}.py"),
                content=render_enum(enum),
            ))
        for service in unit.services:
            if not storage_enabled(ctx, service):
                continue
            extra = {"proto_file": service.file_name, "stage": GenerationStage.STORAGE.value}
            plans = plan_service(ctx, service)
            module = trait_module(service)
            files.append(GeneratedFile(
                path=out_path(unit.package, "storage", f"{module}.py"),
                content=render_trait(ctx, service, plans),
            ))
            if implementation_enabled(ctx, service):
                files.append(GeneratedFile(
                    path=out_path(unit.package, "storage", f"{module}_defaults.py"),
                    content=render_defaults(ctx, service, plans),
                ))
                files.append(GeneratedFile(
                    path=out_path(unit.package, "storage", f"{module}_impl.py"),
                    content=render_impl(ctx, service, plans),
                ))
            log.info("Storage for %s: %d methods", service.name, len(plans), extra=extra)
        if unit.entities:
            files.append(GeneratedFile(
                path=out_path(unit.package, "storage", "schema.sql"),
                content=render_schema_sql(ctx, unit.entities),
            ))
        return files
