"""Mapping from IR field types to SQLAlchemy column types and Python annotations."""
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Double,
    Float,
    Integer,
    LargeBinary,
    Numeric,
    String,
    Text,
    Time,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeEngine

from protoc_gen_synapse.ir.model import Enum, EnumDbType, Field, FieldKind
from protoc_gen_synapse.ir.naming import safe_identifier

RUNTIME_ORM = "protoc_gen_synapse.runtime.orm"


@dataclass(frozen=True)
class ColumnType:
    """A column type as emitted source plus a factory for the DDL snapshot."""
    expr: str  # source expression, e.g. "DateTime(timezone=True)"
    imports: Tuple[Tuple[str, str, Optional[str]], ...]  # (module, name, alias) needed by expr
    factory: Callable[[], TypeEngine]
    python: str  # annotation inside Mapped[...]


def _t(expr, names, factory, python, module="sqlalchemy") -> ColumnType:
    return ColumnType(expr, tuple((module, name, None) for name in names), factory, python)


_KIND_TYPES: Dict[FieldKind, ColumnType] = {
    FieldKind.BOOL: _t("Boolean", ["Boolean"], Boolean, "bool"),
    FieldKind.INT32: _t("Integer", ["Integer"], Integer, "int"),
    FieldKind.UINT32: _t("Integer", ["Integer"], Integer, "int"),
    FieldKind.INT64: _t("BigInteger", ["BigInteger"], BigInteger, "int"),
    FieldKind.UINT64: _t("BigInteger", ["BigInteger"], BigInteger, "int"),
    FieldKind.FLOAT: _t("Float", ["Float"], Float, "float"),
    FieldKind.DOUBLE: _t("Double", ["Double"], Double, "float"),
    FieldKind.STRING: _t("String", ["String"], String, "str"),
    FieldKind.BYTES: _t("LargeBinary", ["LargeBinary"], LargeBinary, "bytes"),
    FieldKind.TIMESTAMP: _t("DateTime(timezone=True)", ["DateTime"], lambda: DateTime(timezone=True), "datetime"),
    FieldKind.MESSAGE: _t("JSON", ["JSON"], JSON, "Any"),
    FieldKind.ENUM: _t("Integer", ["Integer"], Integer, "int"),
}

_JSON_BINARY = _t("JsonBinary", ["JsonBinary"], lambda: JSON().with_variant(JSONB(), "postgresql"), "Any", module=RUNTIME_ORM)

# Canonical column_type spellings (see ir.resolver.COLUMN_TYPE_SYNONYMS).
_CANONICAL_TYPES: Dict[str, ColumnType] = {
    "JsonBinary": _JSON_BINARY,
    "Json": _t("JSON", ["JSON"], JSON, "Any"),
    "Text": _t("Text", ["Text"], Text, "str"),
    "String": _t("String", ["String"], String, "str"),
    "Uuid": _t("Uuid(as_uuid=False)", ["Uuid"], lambda: Uuid(as_uuid=False), "str"),
    "Integer": _t("Integer", ["Integer"], Integer, "int"),
    "BigInteger": _t("BigInteger", ["BigInteger"], BigInteger, "int"),
    "Boolean": _t("Boolean", ["Boolean"], Boolean, "bool"),
    "Float": _t("Float", ["Float"], Float, "float"),
    "Double": _t("Double", ["Double"], Double, "float"),
    "Decimal": _t("Numeric", ["Numeric"], Numeric, "float"),
    "Date": _t("Date", ["Date"], Date, "date"),
    "Time": _t("Time", ["Time"], Time, "time"),
    "DateTime": _t("DateTime", ["DateTime"], DateTime, "datetime"),
    "TimestampWithTimeZone": _t("DateTime(timezone=True)", ["DateTime"], lambda: DateTime(timezone=True), "datetime"),
    "Binary": _t("LargeBinary", ["LargeBinary"], LargeBinary, "bytes"),
}


def canonical_column_type(name: Optional[str]) -> Optional[ColumnType]:
    if not name:
        return None
    return _CANONICAL_TYPES.get(name)


def enum_column_type(enum: Enum) -> ColumnType:
    """String enums store the member value in VARCHAR(64); integer enums their number."""
    if enum.db_type == EnumDbType.INTEGER:
        return _t(f"IntEnumType({enum.name})", ["IntEnumType"], Integer, enum.name, module=RUNTIME_ORM)
    return ColumnType(
        expr=f"SAEnum({enum.name}, native_enum=False, length=64, values_callable=string_enum_values)",
        imports=(("sqlalchemy", "Enum", "SAEnum"), (RUNTIME_ORM, "string_enum_values", None)),
        factory=lambda: String(64),
        python=enum.name,
    )


# SQLite only auto-increments INTEGER PRIMARY KEY columns
_AUTO_BIG_KEY = ColumnType(
    expr='BigInteger().with_variant(Integer(), "sqlite")',
    imports=(("sqlalchemy", "BigInteger", None), ("sqlalchemy", "Integer", None)),
    factory=lambda: BigInteger().with_variant(Integer(), "sqlite"),
    python="int",
)


def field_column_type(field: Field, enum: Optional[Enum] = None) -> ColumnType:
    """Column type of a plain field: explicit override, then enum, then repeated/kind."""
    override = canonical_column_type(field.column_type)
    if override is not None:
        return override
    if field.field_type.kind == FieldKind.ENUM and enum is not None:
        return enum_column_type(enum)
    if field.repeated:
        return _t("JSON", ["JSON"], JSON, "Any")
    if field.primary_key and field.auto_increment and field.field_type.kind in (FieldKind.INT64, FieldKind.UINT64):
        return _AUTO_BIG_KEY
    return _KIND_TYPES[field.field_type.kind]


def column_type_for_kind(kind: FieldKind) -> ColumnType:
    return _KIND_TYPES[kind]


# Attribute names declarative mappings reserve for themselves.
_RESERVED_ATTRIBUTES = {"metadata", "registry"}


def attribute_name(name: str) -> str:
    """Mapped attribute for a column; reserved or keyword names gain a trailing underscore."""
    if name in _RESERVED_ATTRIBUTES:
        return name + "_"
    return safe_identifier(name)
