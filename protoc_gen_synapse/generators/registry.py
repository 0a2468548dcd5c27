from dataclasses import dataclass
from typing import Dict, Optional

from protoc_gen_synapse.core.errors import UnknownBackendError
from protoc_gen_synapse.generators.storage.backend import SqlAlchemyBackend, StorageBackend


@dataclass
class BackendRegistry:
    mapping: Dict[str, StorageBackend]

    def get(self, name: str) -> StorageBackend:
        try:
            return self.mapping[name.strip().lower()]
        except KeyError:
            raise UnknownBackendError(name) from None

    def resolve(self, name: Optional[str], default: str) -> StorageBackend:
        """Backend for a plugin parameter value, falling back to the configured default."""
        return self.get(name if name else default)

    @staticmethod
    def default() -> "BackendRegistry":
        sqlalchemy = SqlAlchemyBackend()
        return BackendRegistry(mapping={
            "seaorm": sqlalchemy,
            "sea_orm": sqlalchemy,
            "sea-orm": sqlalchemy,
            "sqlalchemy": sqlalchemy,
        })
