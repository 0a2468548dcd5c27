"""Declarative base and column types shared by generated entities."""
from typing import Optional, Type

from sqlalchemy import JSON, Integer
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

JsonBinary = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base shared by every generated entity."""


class IntEnumType(TypeDecorator):
    """Stores an IntEnum member as its integer value."""

    impl = Integer
    cache_ok = True

    def __init__(self, enum_class: Type, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect) -> Optional[int]:
        if value is None:
            return None
        return int(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_class(value)


def string_enum_values(enum_class) -> list:
    """values_callable for sqlalchemy.Enum so the stored text is the member value."""
    return [member.value for member in enum_class]
