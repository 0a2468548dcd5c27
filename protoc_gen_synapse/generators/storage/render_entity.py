"""Entity and enum rendering for the SQLAlchemy storage backend."""
import logging
from typing import List, Optional

from protoc_gen_synapse.generators.storage.types import (
    ColumnType,
    attribute_name,
    canonical_column_type,
    column_type_for_kind,
    field_column_type,
)
from protoc_gen_synapse.generators.types import RenderContext
from protoc_gen_synapse.generators.utils import (
    Imports,
    module_header,
    package_module,
    py_literal,
    render_module,
)
from protoc_gen_synapse.ir.model import (
    Entity,
    Enum,
    EnumDbType,
    Field,
    FieldKind,
    Oneof,
    Relation,
    RelationType,
)
from protoc_gen_synapse.ir.naming import to_plural_snake_case, to_shouty_case, to_snake_case

log = logging.getLogger(__name__)

_PYTHON_TYPE_IMPORTS = {
    "Any": ("typing", "Any"),
    "datetime": ("datetime", "datetime"),
    "date": ("datetime", "date"),
    "time": ("datetime", "time"),
}


# proto3 reads an unset scalar as its zero value; columns do the same
_ZERO_DEFAULTS = {
    FieldKind.BOOL: "False",
    FieldKind.INT32: "0",
    FieldKind.INT64: "0",
    FieldKind.UINT32: "0",
    FieldKind.UINT64: "0",
    FieldKind.FLOAT: "0.0",
    FieldKind.DOUBLE: "0.0",
    FieldKind.STRING: '""',
    FieldKind.BYTES: 'b""',
}


def zero_default(field: Field) -> Optional[str]:
    """Python-side default for a NOT NULL scalar column the schema gives no default."""
    if field.nullable or field.primary_key or field.repeated or field.column_type:
        return None
    if field.default_value or field.default_expr:
        return None
    return _ZERO_DEFAULTS.get(field.field_type.kind)


def entity_class_path(package: str, name: str) -> str:
    """Module-qualified class path usable in relationship() strings."""
    return f"{package_module(package, 'entities', to_snake_case(name))}.{name}"


def import_enum(imports: Imports, enum: Enum, package: str, relative: str = ".") -> str:
    """Import an enum class; same-package enums are imported relative to the caller."""
    module = to_snake_case(enum.name)
    if enum.package == package:
        return imports.add(f"{relative}{module}", enum.name)
    return imports.add(package_module(enum.package, "entities", module), enum.name)


def _annotation(imports: Imports, column: ColumnType, nullable: bool) -> str:
    python = column.python
    if python in _PYTHON_TYPE_IMPORTS:
        imports.add(*_PYTHON_TYPE_IMPORTS[python])
    if nullable:
        imports.add("typing", "Optional")
        return f"Mapped[Optional[{python}]]"
    return f"Mapped[{python}]"


def _use_type(imports: Imports, column: ColumnType) -> str:
    for module, name, alias in column.imports:
        imports.add(module, name, alias)
    return column.expr


def render_column(
    imports: Imports,
    attribute: str,
    column_name: str,
    column: ColumnType,
    nullable: bool,
    field: Optional[Field] = None,
    default: Optional[str] = None,
) -> str:
    """One `attr: Mapped[...] = mapped_column(...)` line."""
    args = []
    if column_name != attribute:
        args.append(py_literal(column_name))
    args.append(_use_type(imports, column))
    if field is not None:
        if field.primary_key:
            args.append("primary_key=True")
            args.append(f"autoincrement={field.auto_increment}")
        if field.unique:
            args.append("unique=True")
        if field.default_expr:
            imports.add("sqlalchemy", "text")
            args.append(f"server_default=text({py_literal(field.default_expr)})")
        elif field.default_value:
            args.append(f"server_default={py_literal(field.default_value)}")
    if default is not None:
        args.append(f"default={default}")
    if nullable:
        args.append("nullable=True")
    annotation = _annotation(imports, column, nullable)
    return f"    {attribute}: {annotation} = mapped_column({', '.join(args)})"


def _field_lines(ctx: RenderContext, imports: Imports, entity: Entity) -> List[str]:
    lines = []
    for field in entity.columns:
        enum = ctx.enum(field.field_type.type_name) if field.field_type.kind == FieldKind.ENUM else None
        column = field_column_type(field, enum)
        default = None
        if enum is not None:
            enum_class = import_enum(imports, enum, entity.package)
            default_variant = next((v for v in enum.variants if v.default), None)
            if default_variant is not None and not field.default_value:
                default = f"{enum_class}.{to_shouty_case(default_variant.name)}"
        else:
            default = zero_default(field)
        nullable = field.nullable and not field.primary_key
        lines.append(render_column(
            imports,
            attribute_name(field.name),
            field.column,
            column,
            nullable,
            field=field,
            default=default,
        ))
    return lines


def _oneof_lines(ctx: RenderContext, imports: Imports, entity: Entity, oneof: Oneof) -> List[str]:
    lines = [f"    # oneof {oneof.name} ({oneof.strategy.value})"]
    for oneof_column in oneof.columns:
        if oneof_column.column_type:
            column = canonical_column_type(oneof_column.column_type)
        else:
            field_type = oneof_column.field_type
            enum = ctx.enum(field_type.type_name) if field_type.kind == FieldKind.ENUM else None
            variant = entity.field_named(oneof_column.name)
            if variant is not None:
                column = field_column_type(variant, enum)
                if enum is not None:
                    import_enum(imports, enum, entity.package)
            else:
                column = column_type_for_kind(field_type.kind)
        lines.append(render_column(
            imports,
            attribute_name(oneof_column.name),
            oneof_column.column_name,
            column,
            True,
        ))
    return lines


def junction_table(ctx: RenderContext, entity: Entity, relation: Relation) -> str:
    junction = ctx.entity_in_package(entity.package, relation.through)
    if junction is not None:
        return junction.table_name
    return to_plural_snake_case(relation.through.rsplit(".", 1)[-1])


def render_relationship(ctx: RenderContext, entity: Entity, relation: Relation) -> Optional[List[str]]:
    """relationship() wiring joined on annotated columns, so no ForeignKey constraint is required."""
    target = relation.target
    owner = entity_class_path(entity.package, entity.name)
    related = entity_class_path(target.package, target.entity)
    args = [py_literal(related)]
    if relation.relation_type == RelationType.BELONGS_TO:
        join = f"foreign({owner}.{relation.foreign_key}) == remote({related}.{relation.references})"
        args.append(f"primaryjoin={py_literal(join)}")
        args.append("uselist=False")
    elif relation.relation_type in (RelationType.HAS_MANY, RelationType.HAS_ONE):
        if not relation.foreign_key:
            log.warning(
                "Relation %s.%s has no foreign_key; skipping",
                entity.name, relation.name,
                extra={"proto_file": entity.file_name},
            )
            return None
        join = f"{owner}.{relation.references} == remote(foreign({related}.{relation.foreign_key}))"
        args.append(f"primaryjoin={py_literal(join)}")
        args.append("uselist=False" if relation.relation_type == RelationType.HAS_ONE else "uselist=True")
        if relation.reverse is None:
            args.append("viewonly=True")
    else:
        if not relation.through:
            log.info(
                "Many-to-many relation %s.%s has no junction entity; skipping",
                entity.name, relation.name,
                extra={"proto_file": entity.file_name},
            )
            return None
        table = junction_table(ctx, entity, relation)
        local_key = relation.foreign_key or f"{to_snake_case(entity.name)}_id"
        remote_key = f"{to_snake_case(target.entity)}_id"
        args.append(f"secondary={py_literal(table)}")
        args.append(f"primaryjoin={py_literal(f'{owner}.{relation.references} == foreign({table}.c.{local_key})')}")
        args.append(f"secondaryjoin={py_literal(f'{related}.id == foreign({table}.c.{remote_key})')}")
        args.append("uselist=True")
        args.append("viewonly=True")
    if relation.reverse is not None:
        args.append(f"back_populates={py_literal(relation.reverse)}")
    lines = [f"    {relation.name} = relationship("]
    lines.extend(f"        {arg}," for arg in args)
    lines.append("    )")
    return lines


def render_entity(ctx: RenderContext, entity: Entity) -> str:
    """Generate the SQLAlchemy model for an entity."""
    imports = Imports()
    imports.add("sqlalchemy.orm", "Mapped")
    imports.add("sqlalchemy.orm", "mapped_column")
    imports.add("protoc_gen_synapse.runtime.orm", "Base")

    if entity.primary_key is None:
        log.warning(
            "Entity %s has no primary key column", entity.name,
            extra={"proto_file": entity.file_name},
        )

    body = [
        f"class {entity.name}(Base):",
        f"    __tablename__ = {py_literal(entity.table_name)}",
        "",
    ]
    body.extend(_field_lines(ctx, imports, entity))
    for oneof in entity.oneofs:
        body.append("")
        body.extend(_oneof_lines(ctx, imports, entity, oneof))

    relationships = []
    for relation in entity.relations:
        rendered = render_relationship(ctx, entity, relation)
        if rendered:
            relationships.append(rendered)
    if relationships:
        imports.add("sqlalchemy.orm", "relationship")
        for rendered in relationships:
            body.append("")
            body.extend(rendered)

    body.append("")
    body.append("    def __repr__(self) -> str:")
    pk = entity.primary_key
    if pk is not None:
        body.append(f'        return f"<{entity.name} {pk.name}={{self.{attribute_name(pk.name)}!r}}>"')
    else:
        body.append(f'        return "<{entity.name}>"')

    header = module_header(f"{entity.name} entity (table {entity.table_name}).", entity.file_name)
    return render_module(header, imports, body)


def render_enum(enum: Enum) -> str:
    """Generate a Python enum with wire-number conversions."""
    imports = Imports()
    imports.add("enum")
    imports.add("typing", "Optional")
    integer = enum.db_type == EnumDbType.INTEGER
    base = "enum.IntEnum" if integer else "str, enum.Enum"

    body = [f"class {enum.name}({base}):"]
    if enum.variants:
        for variant in enum.variants:
            value = variant.int_value if integer else py_literal(variant.string_value)
            body.append(f"    {to_shouty_case(variant.name)} = {value}")
    else:
        body.append("    pass")
    body.extend([
        "",
        "    @classmethod",
        f'    def from_proto(cls, number: int) -> Optional["{enum.name}"]:',
        '        """Member for a wire enum number; None for unspecified or unknown numbers."""',
        "        return _FROM_PROTO.get(number)",
        "",
        "    def to_proto(self) -> int:",
        "        return _TO_PROTO[self]",
        "",
        "    @classmethod",
        f'    def default(cls) -> Optional["{enum.name}"]:',
        "        return _DEFAULT",
        "",
        "",
        "_FROM_PROTO = {",
    ])
    for variant in enum.variants:
        body.append(f"    {variant.number}: {enum.name}.{to_shouty_case(variant.name)},")
    body.append("}")
    body.append("_TO_PROTO = {member: number for number, member in _FROM_PROTO.items()}")
    default_variant = next((v for v in enum.variants if v.default), enum.variants[0] if enum.variants else None)
    if default_variant is not None:
        body.append(f"_DEFAULT = {enum.name}.{to_shouty_case(default_variant.name)}")
    else:
        body.append("_DEFAULT = None")

    header = module_header(f"{enum.name} enum ({enum.db_type.value} storage).", enum.file_name)
    return render_module(header, imports, body)
