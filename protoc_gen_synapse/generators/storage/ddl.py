"""CREATE TABLE snapshot for a package, compiled with SQLAlchemy's PostgreSQL dialect."""
from typing import Dict, List

from sqlalchemy import Column, ForeignKey, MetaData, Table, text
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateTable

from protoc_gen_synapse.generators.storage.types import canonical_column_type, column_type_for_kind, field_column_type
from protoc_gen_synapse.generators.types import RenderContext
from protoc_gen_synapse.ir.model import Entity, FieldKind, RelationType


def _foreign_keys(ctx: RenderContext, entity: Entity, tables: Dict[str, Entity]) -> Dict[str, str]:
    """column -> "table.column" for belongs-to relations whose target table is in the snapshot."""
    result = {}
    for relation in entity.relations:
        if relation.relation_type != RelationType.BELONGS_TO or relation.target is None:
            continue
        target = ctx.entity_in_package(relation.target.package, relation.target.entity)
        if target is None or tables.get(target.table_name) is not target:
            continue
        referenced = target.field_named(relation.references)
        if referenced is None:
            continue
        fk_field = entity.field_named(relation.foreign_key)
        column = fk_field.column if fk_field is not None else relation.foreign_key
        result[column] = f"{target.table_name}.{referenced.column}"
    return result


def build_table(ctx: RenderContext, metadata: MetaData, entity: Entity, tables: Dict[str, Entity]) -> Table:
    foreign_keys = _foreign_keys(ctx, entity, tables)
    columns = []
    for field in entity.columns:
        enum = ctx.enum(field.field_type.type_name) if field.field_type.kind == FieldKind.ENUM else None
        args = [field.column, field_column_type(field, enum).factory()]
        if field.column in foreign_keys:
            args.append(ForeignKey(foreign_keys[field.column]))
        kwargs = {
            "primary_key": field.primary_key,
            "nullable": field.nullable and not field.primary_key,
            "unique": field.unique or None,
        }
        if field.primary_key:
            kwargs["autoincrement"] = field.auto_increment
        if field.default_expr:
            kwargs["server_default"] = text(field.default_expr)
        elif field.default_value:
            kwargs["server_default"] = field.default_value
        columns.append(Column(*args, **kwargs))
    for oneof in entity.oneofs:
        for oneof_column in oneof.columns:
            if oneof_column.column_type:
                column_type = canonical_column_type(oneof_column.column_type)
            else:
                column_type = column_type_for_kind(oneof_column.field_type.kind)
            columns.append(Column(oneof_column.column_name, column_type.factory(), nullable=True))
    return Table(entity.table_name, metadata, *columns)


def render_schema_sql(ctx: RenderContext, entities: List[Entity]) -> str:
    """CREATE TABLE statements for entities, in declaration order."""
    metadata = MetaData()
    tables = {e.table_name: e for e in entities}
    dialect = postgresql.dialect()
    statements = ["-- @generated by protoc-gen-synapse. Do not edit.",
                  "-- Bootstrap snapshot of the entity tables; not a migration."]
    built = []
    for entity in entities:
        if entity.table_name in metadata.tables:
            continue
        built.append((entity, build_table(ctx, metadata, entity, tables)))
    # foreign keys resolve against the complete metadata
    for entity, table in built:
        ddl = str(CreateTable(table).compile(dialect=dialect)).strip()
        statements.append("")
        statements.append(f"-- {entity.full_name}")
        statements.append(ddl + ";")
    return "\n".join(statements) + "\n"
