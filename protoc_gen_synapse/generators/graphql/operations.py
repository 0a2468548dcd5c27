"""Which RPCs become GraphQL queries, mutations and subscriptions, and what they return."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from protoc_gen_synapse.generators.graphql.types import entity_type_name
from protoc_gen_synapse.generators.plan import MethodPlan, Operation, graphql_enabled, plan_service
from protoc_gen_synapse.generators.types import PackageUnit, RenderContext
from protoc_gen_synapse.ir.model import Service
from protoc_gen_synapse.ir.naming import to_plural_snake_case, to_snake_case

log = logging.getLogger(__name__)


class Kind(str, Enum):
    QUERY = "query"
    MUTATION = "mutation"
    SUBSCRIPTION = "subscription"


@dataclass
class GraphqlOperation:
    plan: MethodPlan
    kind: Kind
    field_name: str
    graphql_name: str = ""  # explicit schema name; strawberry camel-cases field_name otherwise
    description: str = ""
    input_type: str = ""  # message the GraphQL input builds
    output_message: Optional[str] = None  # message returned to the client, None for scalars
    output_field: str = ""  # response field holding the result, "" for the whole response
    output_repeated: bool = False
    default: bool = False  # CRUD operation derived from the plan, not from options

    @property
    def operation(self) -> Operation:
        return self.plan.operation if self.default else Operation.UNKNOWN

    @property
    def service(self) -> Service:
        return self.plan.service


def _find_message(ctx: RenderContext, package: str, name: str) -> Optional[str]:
    name = name.lstrip(".")
    for candidate in (name, f"{package}.{name}" if package else name):
        if ctx.index.message(candidate) is not None:
            return candidate
    return None


def _field_of(ctx: RenderContext, message: str, name: str):
    entry = ctx.index.message(message)
    if entry is None:
        return None
    for field in entry.descriptor.field:
        if field.name == name:
            return field
    return None


def _resolve_output(ctx: RenderContext, op: GraphqlOperation, output_type: str = "", output_field: str = "") -> None:
    response = op.plan.method.output_type
    op.output_message = response
    if output_field:
        field = _field_of(ctx, response, output_field)
        if field is None:
            log.warning(
                "Response %s has no field %s; returning the whole response", response, output_field,
                extra={"proto_file": op.service.file_name},
            )
        else:
            op.output_field = output_field
            op.output_repeated = field.label == field.LABEL_REPEATED
            op.output_message = field.type_name.lstrip(".") or None
    if output_type:
        found = _find_message(ctx, op.service.package, output_type)
        if found is None:
            log.warning(
                "Unknown output type %s on %s.%s", output_type, op.service.name, op.plan.name,
                extra={"proto_file": op.service.file_name},
            )
        else:
            op.output_message = found


def _default_operation(ctx: RenderContext, plan: MethodPlan) -> Optional[GraphqlOperation]:
    if plan.entity is None or plan.operation == Operation.UNKNOWN:
        return None
    type_snake = to_snake_case(entity_type_name(ctx, plan.entity))
    if plan.operation == Operation.GET:
        op = GraphqlOperation(plan, Kind.QUERY, type_snake, default=True)
    elif plan.operation == Operation.LIST:
        op = GraphqlOperation(plan, Kind.QUERY, to_plural_snake_case(entity_type_name(ctx, plan.entity)), default=True)
    else:
        op = GraphqlOperation(plan, Kind.MUTATION, f"{plan.operation.value}_{type_snake}", default=True)
    op.input_type = plan.method.input_type
    if plan.operation == Operation.LIST:
        op.output_message = plan.entity.full_name
        op.output_repeated = True
    elif plan.operation == Operation.DELETE:
        op.output_message = None
    else:
        _resolve_output(ctx, op, output_field=plan.result_field or "")
    return op


def _custom_operation(ctx: RenderContext, plan: MethodPlan) -> Optional[GraphqlOperation]:
    service = plan.service
    subscription = ctx.cache.get_subscription_options(service.file_name, service.name, plan.name)
    query = ctx.cache.get_query_options(service.file_name, service.name, plan.name)
    mutation = ctx.cache.get_mutation_options(service.file_name, service.name, plan.name)
    if any(o is not None and o.skip for o in (subscription, query, mutation)):
        return None
    if subscription is not None:
        if not plan.streaming:
            log.warning(
                "Subscription %s.%s is not server-streaming; skipped", service.name, plan.name,
                extra={"proto_file": service.file_name},
            )
            return None
        options, kind = subscription, Kind.SUBSCRIPTION
    elif plan.streaming:
        return None
    elif query is not None:
        options, kind = query, Kind.QUERY
    elif mutation is not None:
        options, kind = mutation, Kind.MUTATION
    else:
        return None
    op = GraphqlOperation(
        plan,
        kind,
        to_snake_case(options.name) if options.name else to_snake_case(plan.name),
        graphql_name=options.name,
        description=options.description,
        input_type=plan.method.input_type,
    )
    if kind == Kind.MUTATION and mutation.input_type:
        found = _find_message(ctx, service.package, mutation.input_type)
        if found is not None:
            op.input_type = found
    _resolve_output(ctx, op, options.output_type, getattr(options, "output_field", ""))
    return op


def service_operations(ctx: RenderContext, service: Service) -> List[GraphqlOperation]:
    """Annotated methods first take their annotation; otherwise CRUD methods map to defaults."""
    result = []
    for plan in plan_service(ctx, service):
        op = _custom_operation(ctx, plan)
        if op is None and not _annotated(ctx, plan):
            op = _default_operation(ctx, plan)
        if op is None:
            log.debug(
                "Method %s.%s not exposed in GraphQL", service.name, plan.name,
                extra={"proto_file": service.file_name},
            )
            continue
        result.append(op)
    return result


def _annotated(ctx: RenderContext, plan: MethodPlan) -> bool:
    service = plan.service
    return any(o is not None for o in (
        ctx.cache.get_subscription_options(service.file_name, service.name, plan.name),
        ctx.cache.get_query_options(service.file_name, service.name, plan.name),
        ctx.cache.get_mutation_options(service.file_name, service.name, plan.name),
    ))


def graphql_services(ctx: RenderContext, unit: PackageUnit) -> List[Service]:
    return [s for s in unit.services if graphql_enabled(ctx, s)]


def unit_operations(ctx: RenderContext, unit: PackageUnit) -> List[GraphqlOperation]:
    return [op for service in graphql_services(ctx, unit) for op in service_operations(ctx, service)]
