"""Relation resolution: option records to IR relations, targets and self-join pairing."""
import logging
from typing import List, Optional, Sequence

from protoc_gen_synapse.ir.model import PairingMap, Relation, RelationTarget, RelationType
from protoc_gen_synapse.ir.naming import to_snake_case
from protoc_gen_synapse.options import records

log = logging.getLogger(__name__)

_RELATION_TYPES = {
    records.RelationType.BELONGS_TO: RelationType.BELONGS_TO,
    records.RelationType.HAS_ONE: RelationType.HAS_ONE,
    records.RelationType.HAS_MANY: RelationType.HAS_MANY,
    records.RelationType.MANY_TO_MANY: RelationType.MANY_TO_MANY,
}

# Directions that can describe the two ends of one self-join.
_COMPLEMENTS = {
    RelationType.BELONGS_TO: {RelationType.HAS_MANY, RelationType.HAS_ONE},
    RelationType.HAS_MANY: {RelationType.BELONGS_TO},
    RelationType.HAS_ONE: {RelationType.BELONGS_TO},
}


def resolve_target(related: str, entity_name: str, package: str) -> RelationTarget:
    """Resolve "Entity" or "pkg.Entity" against the owning entity's package.

    Cross-package targets get the absolute module of the generated entity;
    same-package targets a module relative to the entities package.
    """
    if "." in related:
        target_package, target_name = related.rsplit(".", 1)
    else:
        target_package, target_name = package, related
    module_name = to_snake_case(target_name)
    if target_package and target_package != package:
        return RelationTarget(
            entity=target_name,
            package=target_package,
            module=f"{target_package}.entities.{module_name}",
            is_local=False,
        )
    return RelationTarget(
        entity=target_name,
        package=package,
        module=f".{module_name}",
        is_self=to_snake_case(target_name) == to_snake_case(entity_name),
    )


def build_relation(definition: records.RelationDef, entity_name: str, package: str) -> Optional[Relation]:
    relation_type = _RELATION_TYPES.get(definition.type)
    if relation_type is None or not definition.name or not definition.related:
        log.warning(
            "Ignoring incomplete relation %r on %s",
            definition.name,
            entity_name,
        )
        return None
    target = resolve_target(definition.related, entity_name, package)
    foreign_key = definition.foreign_key
    if not foreign_key and relation_type == RelationType.BELONGS_TO:
        foreign_key = f"{to_snake_case(target.entity)}_id"
    return Relation(
        name=definition.name,
        relation_type=relation_type,
        related=definition.related,
        foreign_key=foreign_key,
        references=definition.references or "id",
        through=definition.through or None,
        target=target,
    )


def _complementary(a: Relation, b: Relation) -> bool:
    if b.relation_type not in _COMPLEMENTS.get(a.relation_type, set()):
        return False
    if a.foreign_key and b.foreign_key:
        return a.foreign_key == b.foreign_key
    return True


def pair_self_relations(relations: Sequence[Relation]) -> PairingMap:
    """Match each self-referential relation with at most one reverse partner.

    Returns a symmetric map of relation name to partner name. Relations are
    scanned in declaration order and the first unpaired compatible partner
    wins, so the result does not depend on anything but the input order.
    """
    pairing: PairingMap = {}
    candidates = [r for r in relations if r.is_self_referential]
    for relation in candidates:
        if relation.name in pairing:
            continue
        for other in candidates:
            if other.name == relation.name or other.name in pairing:
                continue
            if _complementary(relation, other):
                pairing[relation.name] = other.name
                pairing[other.name] = relation.name
                break
    return pairing


def resolve_relations(definitions: Sequence[records.RelationDef], entity_name: str, package: str) -> List[Relation]:
    relations = [
        r for r in (build_relation(d, entity_name, package) for d in definitions)
        if r is not None
    ]
    pairing = pair_self_relations(relations)
    for relation in relations:
        relation.reverse = pairing.get(relation.name)
        if relation.is_self_referential and relation.reverse is None:
            log.info("Self-referential relation %s.%s has no reverse partner", entity_name, relation.name)
    return relations
