"""Dataclasses shared by the generation backends."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from protoc_gen_synapse.core.config import Settings
from protoc_gen_synapse.ir.model import Entity, Enum, FileIr, Service
from protoc_gen_synapse.ir.resolver import TypeIndex
from protoc_gen_synapse.options.cache import OptionsCache


@dataclass
class GeneratedFile:
    """Represents a generated file."""
    path: str  # Relative to the protoc output directory
    content: str


@dataclass
class PackageUnit:
    """All IR for one proto package among the files to generate."""
    package: str
    files: List[FileIr] = field(default_factory=list)

    @property
    def entities(self) -> List[Entity]:
        return [e for f in self.files for e in f.entities]

    @property
    def enums(self) -> List[Enum]:
        return [e for f in self.files for e in f.enums]

    @property
    def services(self) -> List[Service]:
        return [s for f in self.files for s in f.services]

    @property
    def file_names(self) -> List[str]:
        return [f.file_name for f in self.files]


@dataclass
class RenderContext:
    """Read-only lookups every renderer may consult."""
    cache: OptionsCache
    index: TypeIndex
    settings: Settings
    entities: Dict[str, Entity] = field(default_factory=dict)  # full name -> entity
    enums: Dict[str, Enum] = field(default_factory=dict)  # full name -> enum
    services: List[Service] = field(default_factory=list)  # every service being generated
    plans: Dict[str, list] = field(default_factory=dict)  # service full name -> method plans

    def entity(self, full_name: str) -> Optional[Entity]:
        return self.entities.get(full_name.lstrip("."))

    def enum(self, full_name: str) -> Optional[Enum]:
        return self.enums.get(full_name.lstrip("."))

    def entity_in_package(self, package: str, name: str) -> Optional[Entity]:
        """Entity by simple or "pkg.Name" reference, relative to package."""
        if "." in name:
            return self.entity(name)
        return self.entity(f"{package}.{name}" if package else name)
