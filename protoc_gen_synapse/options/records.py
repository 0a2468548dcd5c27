"""Typed option records recovered from synapse extension fields.

Field names follow the extension schema so that a dict produced by
json_format.MessageToDict(preserving_proto_field_name=True) validates
directly into the matching record.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class OptionsRecord(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


# synapse.storage

class RelationType(str, Enum):
    UNSPECIFIED = "RELATION_TYPE_UNSPECIFIED"
    BELONGS_TO = "RELATION_TYPE_BELONGS_TO"
    HAS_ONE = "RELATION_TYPE_HAS_ONE"
    HAS_MANY = "RELATION_TYPE_HAS_MANY"
    MANY_TO_MANY = "RELATION_TYPE_MANY_TO_MANY"


class EnumStorageType(str, Enum):
    UNSPECIFIED = "ENUM_STORAGE_TYPE_UNSPECIFIED"
    STRING = "ENUM_STORAGE_TYPE_STRING"
    INTEGER = "ENUM_STORAGE_TYPE_INTEGER"


class RelationDef(OptionsRecord):
    name: str = ""
    type: RelationType = RelationType.UNSPECIFIED
    related: str = ""
    foreign_key: str = ""
    references: str = ""
    through: str = ""


class EntityOptions(OptionsRecord):
    table_name: str = ""
    skip: bool = False
    relations: List[RelationDef] = []


class ColumnOptions(OptionsRecord):
    primary_key: bool = False
    auto_increment: Optional[bool] = None
    unique: bool = False
    column_name: str = ""
    default_value: str = ""
    embed: bool = False
    column_type: str = ""
    default_expr: str = ""
    nullable: bool = False


class OneofOptions(OptionsRecord):
    strategy: str = ""
    column_prefix: str = ""
    discriminator_column: str = ""


class EnumOptions(OptionsRecord):
    storage_type: EnumStorageType = EnumStorageType.UNSPECIFIED
    skip: bool = False


class EnumValueOptions(OptionsRecord):
    string_value: str = ""
    int_value: int = 0
    default: bool = False
    skip: bool = False


class StorageServiceOptions(OptionsRecord):
    generate_storage: bool = False
    trait_name: str = ""
    skip: bool = False
    generate_implementation: bool = False


class StorageMethodOptions(OptionsRecord):
    skip: bool = False
    method_name: str = ""
    entity_name: str = ""
    operation: str = ""


# synapse.grpc

class GrpcServiceOptions(OptionsRecord):
    skip: bool = False
    struct_name: str = ""
    storage_trait: str = ""


class GrpcMethodOptions(OptionsRecord):
    skip: bool = False
    method_name: str = ""
    input_type: str = ""


class ResponseOptions(OptionsRecord):
    rich_errors: bool = False


# synapse.graphql

class Deprecation(OptionsRecord):
    reason: str = ""


class FromContext(OptionsRecord):
    path: str = ""
    required: bool = False
    error_message: str = ""


class GraphqlTypeOptions(OptionsRecord):
    skip: bool = False
    name: str = ""
    input: bool = False
    node: bool = False
    description: str = ""


class GraphqlFieldOptions(OptionsRecord):
    skip: bool = False
    name: str = ""
    description: str = ""
    deprecated: Optional[Deprecation] = None
    from_context: Optional[FromContext] = None


class GraphqlServiceOptions(OptionsRecord):
    skip: bool = False


class QueryOptions(OptionsRecord):
    skip: bool = False
    name: str = ""
    description: str = ""
    output_type: str = ""
    output_field: str = ""


class MutationOptions(OptionsRecord):
    skip: bool = False
    name: str = ""
    description: str = ""
    input_type: str = ""
    output_type: str = ""
    output_field: str = ""


class SubscriptionOptions(OptionsRecord):
    skip: bool = False
    name: str = ""
    description: str = ""
    output_type: str = ""


# synapse.validate

class LengthRule(OptionsRecord):
    min: int = 0
    max: int = 0
    equal: int = 0


class RangeRule(OptionsRecord):
    min: Optional[float] = None
    max: Optional[float] = None
    exclusive_min: bool = False
    exclusive_max: bool = False


class Rules(OptionsRecord):
    required: bool = False
    email: bool = False
    url: bool = False
    uuid: bool = False
    ascii: bool = False
    alphanumeric: bool = False
    ip: bool = False
    ipv4: bool = False
    ipv6: bool = False
    pattern: str = ""
    length: Optional[LengthRule] = None
    range: Optional[RangeRule] = None
    unique_items: bool = False
    message: str = ""


class ValidateMessageOptions(OptionsRecord):
    skip: bool = False
    name: str = ""
    generate_conversion: bool = False


class ValidateFieldOptions(OptionsRecord):
    skip: bool = False
    rename: str = ""
    rules: Optional[Rules] = None
