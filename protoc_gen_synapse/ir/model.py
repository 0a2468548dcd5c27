"""Backend-neutral intermediate representation built from annotated descriptors."""
from dataclasses import dataclass, field
from enum import Enum as PyEnum
from typing import Dict, List, Optional


class FieldKind(str, PyEnum):
    BOOL = "bool"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    FLOAT = "float"
    DOUBLE = "double"
    STRING = "string"
    BYTES = "bytes"
    TIMESTAMP = "timestamp"
    MESSAGE = "message"
    ENUM = "enum"


INTEGER_KINDS = {FieldKind.INT32, FieldKind.INT64, FieldKind.UINT32, FieldKind.UINT64}
FLOAT_KINDS = {FieldKind.FLOAT, FieldKind.DOUBLE}


@dataclass(frozen=True)
class FieldType:
    """Scalar kind, plus the fully-qualified type name for messages and enums."""
    kind: FieldKind
    type_name: str = ""

    @property
    def is_integer(self) -> bool:
        return self.kind in INTEGER_KINDS

    @property
    def is_float(self) -> bool:
        return self.kind in FLOAT_KINDS


class RelationType(str, PyEnum):
    BELONGS_TO = "belongs_to"
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    MANY_TO_MANY = "many_to_many"


class OneofStrategy(str, PyEnum):
    FLATTEN = "flatten"
    JSON = "json"
    TAGGED = "tagged"

    @classmethod
    def parse(cls, value: str) -> "OneofStrategy":
        lowered = (value or "").lower()
        if lowered == "json":
            return cls.JSON
        if lowered == "tagged":
            return cls.TAGGED
        return cls.FLATTEN


class EnumDbType(str, PyEnum):
    STRING = "string"
    INTEGER = "integer"


@dataclass
class Field:
    name: str
    proto_name: str
    number: int
    field_type: FieldType
    nullable: bool = False
    repeated: bool = False
    primary_key: bool = False
    auto_increment: bool = False
    unique: bool = False
    column_name: Optional[str] = None
    default_value: Optional[str] = None
    default_expr: Optional[str] = None
    embed: bool = False
    column_type: Optional[str] = None
    oneof: Optional[str] = None
    hints: Dict[str, str] = field(default_factory=dict)

    @property
    def column(self) -> str:
        return self.column_name or self.name

    @property
    def is_timestamp(self) -> bool:
        return self.field_type.kind == FieldKind.TIMESTAMP


@dataclass(frozen=True)
class RelationTarget:
    """Where the related entity lives relative to the owning entity."""
    entity: str
    package: str
    module: str
    is_self: bool = False
    is_local: bool = True


@dataclass
class Relation:
    name: str
    relation_type: RelationType
    related: str
    foreign_key: str
    references: str = "id"
    through: Optional[str] = None
    target: Optional[RelationTarget] = None
    reverse: Optional[str] = None

    @property
    def is_self_referential(self) -> bool:
        return self.target is not None and self.target.is_self


@dataclass
class OneofColumn:
    name: str
    column_name: str
    field_type: Optional[FieldType] = None
    column_type: Optional[str] = None


@dataclass
class Oneof:
    name: str
    strategy: OneofStrategy
    variants: List[Field]
    columns: List[OneofColumn] = field(default_factory=list)
    column_prefix: str = ""
    discriminator_column: str = ""


@dataclass
class Entity:
    name: str
    table_name: str
    package: str
    file_name: str
    fields: List[Field] = field(default_factory=list)
    relations: List[Relation] = field(default_factory=list)
    oneofs: List[Oneof] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.package}.{self.name}" if self.package else self.name

    @property
    def primary_key(self) -> Optional[Field]:
        for f in self.fields:
            if f.primary_key:
                return f
        for f in self.fields:
            if f.name == "id":
                return f
        return None

    @property
    def columns(self) -> List[Field]:
        """Fields stored as their own column (oneof members excluded)."""
        return [f for f in self.fields if f.oneof is None]

    def field_named(self, name: str) -> Optional[Field]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def relation_named(self, name: str) -> Optional[Relation]:
        for r in self.relations:
            if r.name == name:
                return r
        return None


@dataclass
class EnumVariant:
    name: str
    proto_name: str
    number: int
    string_value: str
    int_value: int
    default: bool = False


@dataclass
class Enum:
    name: str
    package: str
    file_name: str
    full_name: str
    db_type: EnumDbType
    variants: List[EnumVariant] = field(default_factory=list)


@dataclass
class Method:
    name: str
    input_type: str
    output_type: str
    client_streaming: bool = False
    server_streaming: bool = False


@dataclass
class Service:
    name: str
    package: str
    file_name: str
    trait_name: str
    methods: List[Method] = field(default_factory=list)


@dataclass
class FileIr:
    """Everything the backends need for one file to generate."""
    file_name: str
    package: str
    entities: List[Entity] = field(default_factory=list)
    enums: List[Enum] = field(default_factory=list)
    services: List[Service] = field(default_factory=list)

    def entity_named(self, name: str) -> Optional[Entity]:
        for e in self.entities:
            if e.name == name:
                return e
        return None


PairingMap = Dict[str, str]
