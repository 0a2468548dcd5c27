"""Per-method generation plans shared by the storage, RPC and GraphQL backends.

A plan fixes, once per RPC, the Python method name, the CRUD operation, the
entity it works on and the request/response shapes, so every backend emits
calls that line up with the storage interface.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from protoc_gen_synapse.generators.types import RenderContext
from protoc_gen_synapse.ir.model import Entity, Method, Service
from protoc_gen_synapse.ir.naming import simple_name, singularize, to_pascal_case, to_snake_case

log = logging.getLogger(__name__)

_VERBS = ("Get", "List", "Create", "Update", "Delete")


class Operation(str, Enum):
    GET = "get"
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    UNKNOWN = "unknown"

    @property
    def is_query(self) -> bool:
        return self in (Operation.GET, Operation.LIST)

    @property
    def is_mutation(self) -> bool:
        return self in (Operation.CREATE, Operation.UPDATE, Operation.DELETE)


def infer_operation(method_name: str) -> Operation:
    for verb in _VERBS:
        if method_name.startswith(verb):
            return Operation(verb.lower())
    return Operation.UNKNOWN


def parse_operation(value: str) -> Operation:
    try:
        return Operation(value.strip().lower())
    except ValueError:
        return Operation.UNKNOWN


def infer_entity_name(method_name: str) -> str:
    """GetUser -> User, ListPostsByAuthor -> Post, ArchiveUser -> ArchiveUser."""
    name = method_name
    for verb in _VERBS:
        if method_name.startswith(verb):
            name = method_name[len(verb):]
            break
    index = name.find("By")
    if index > 0:
        name = name[:index]
    if method_name.startswith("List"):
        name = singularize(name)
    return name


@dataclass
class MethodPlan:
    service: Service
    method: Method
    python_name: str
    operation: Operation
    entity_name: str
    entity: Optional[Entity] = None
    domain_type: Optional[str] = None
    result_field: Optional[str] = None

    @property
    def name(self) -> str:
        return self.method.name

    @property
    def entity_snake(self) -> str:
        return to_snake_case(self.entity_name)

    @property
    def streaming(self) -> bool:
        return self.method.server_streaming


def storage_enabled(ctx: RenderContext, service: Service) -> bool:
    options = ctx.cache.get_service_options(service.file_name, service.name)
    return options is not None and options.generate_storage and not options.skip


def implementation_enabled(ctx: RenderContext, service: Service) -> bool:
    options = ctx.cache.get_service_options(service.file_name, service.name)
    return storage_enabled(ctx, service) and options.generate_implementation


def rpc_enabled(ctx: RenderContext, service: Service) -> bool:
    grpc = ctx.cache.get_grpc_service_options(service.file_name, service.name)
    if grpc is not None:
        return not grpc.skip
    return storage_enabled(ctx, service)


def graphql_enabled(ctx: RenderContext, service: Service) -> bool:
    options = ctx.cache.get_graphql_service_options(service.file_name, service.name)
    if options is not None:
        return not options.skip
    return storage_enabled(ctx, service)


def domain_type_name(ctx: RenderContext, full_name: str) -> Optional[str]:
    """Name of the validated domain type generated for a request message, if any."""
    entry = ctx.index.message(full_name)
    if entry is None:
        return None
    options = ctx.cache.get_validate_message_options(entry.file_name, entry.path)
    if options is None or options.skip or not options.generate_conversion or not options.name:
        return None
    return options.name


def result_field(ctx: RenderContext, output_type: str, entity_name: str) -> Optional[str]:
    """Response field carrying the entity: snake name of the entity, else the first message field."""
    entry = ctx.index.message(output_type)
    if entry is None:
        return None
    wanted = to_snake_case(entity_name)
    fallback = None
    for field in entry.descriptor.field:
        if field.name == wanted:
            return field.name
        if fallback is None and field.type_name and field.label != field.LABEL_REPEATED:
            fallback = field.name
    return fallback


def plan_method(ctx: RenderContext, service: Service, method: Method) -> MethodPlan:
    options = ctx.cache.get_method_options(service.file_name, service.name, method.name)
    python_name = to_snake_case(method.name)
    operation = infer_operation(method.name)
    entity_name = infer_entity_name(method.name)
    if options is not None:
        if options.method_name:
            python_name = options.method_name
        if options.operation:
            operation = parse_operation(options.operation)
        if options.entity_name:
            entity_name = options.entity_name
    if method.server_streaming:
        operation = Operation.UNKNOWN
    entity_name = to_pascal_case(simple_name(entity_name)) if "." not in entity_name else entity_name
    entity = ctx.entity_in_package(service.package, entity_name)
    plan = MethodPlan(
        service=service,
        method=method,
        python_name=python_name,
        operation=operation,
        entity_name=simple_name(entity_name),
        entity=entity,
        domain_type=domain_type_name(ctx, method.input_type),
    )
    if operation in (Operation.GET, Operation.CREATE, Operation.UPDATE):
        plan.result_field = result_field(ctx, method.output_type, plan.entity_name)
    return plan


def plan_service(ctx: RenderContext, service: Service) -> List[MethodPlan]:
    """Plans for every method; client-streaming methods are left to the servicer base class."""
    key = f"{service.package}.{service.name}"
    if key in ctx.plans:
        return ctx.plans[key]
    plans = []
    for method in service.methods:
        if method.client_streaming:
            log.info(
                "Skipping client-streaming method %s.%s", service.name, method.name,
                extra={"proto_file": service.file_name},
            )
            continue
        plans.append(plan_method(ctx, service, method))
    ctx.plans[key] = plans
    return plans


def find_plan(ctx: RenderContext, entity: Entity, operation: Operation) -> Optional[MethodPlan]:
    """First planned method performing operation on entity, services in generation order."""
    for service in ctx.services:
        for plan in plan_service(ctx, service):
            if plan.operation == operation and plan.entity is entity:
                return plan
    return None
