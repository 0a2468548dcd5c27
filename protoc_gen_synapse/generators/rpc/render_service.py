"""Async grpcio servicers that validate requests and delegate to storage."""
import logging
from typing import List, Optional

from protoc_gen_synapse.core.workflow import GenerationStage
from protoc_gen_synapse.generators.plan import MethodPlan, plan_service, rpc_enabled, storage_enabled
from protoc_gen_synapse.generators.rules import check_arguments, has_rules, message_rules
from protoc_gen_synapse.generators.storage.render_storage import trait_module
from protoc_gen_synapse.generators.types import GeneratedFile, PackageUnit, RenderContext
from protoc_gen_synapse.generators.utils import Imports, module_header, out_path, py_literal, render_module, wire_type
from protoc_gen_synapse.ir.model import Service
from protoc_gen_synapse.ir.naming import proto_module, to_snake_case

log = logging.getLogger(__name__)

_RUNTIME_ERRORS = "protoc_gen_synapse.runtime.errors"


def servicer_name(ctx: RenderContext, service: Service) -> str:
    options = ctx.cache.get_grpc_service_options(service.file_name, service.name)
    if options is not None and options.struct_name:
        return options.struct_name
    return f"{service.name}Servicer"


def _grpc_module(imports: Imports, service: Service) -> str:
    module = proto_module(service.file_name) + "_grpc"
    if "." in module:
        parent, leaf = module.rsplit(".", 1)
        return imports.add(parent, leaf)
    return imports.add(module)


def _rich_errors(ctx: RenderContext, output_type: str) -> bool:
    entry = ctx.index.message(output_type)
    if entry is None:
        return False
    options = ctx.cache.get_response_options(entry.file_name, entry.path)
    return options is not None and options.rich_errors


def _domain_type(ctx: RenderContext, service: Service, plan: MethodPlan) -> Optional[str]:
    options = ctx.cache.get_grpc_method_options(service.file_name, service.name, plan.name)
    if options is not None and options.input_type:
        return options.input_type
    return plan.domain_type


def _storage_method(ctx: RenderContext, service: Service, plan: MethodPlan) -> str:
    options = ctx.cache.get_grpc_method_options(service.file_name, service.name, plan.name)
    if options is not None and options.method_name:
        return options.method_name
    return plan.python_name


def _handler_lines(ctx: RenderContext, imports: Imports, service: Service, plan: MethodPlan) -> List[str]:
    request = wire_type(ctx, imports, plan.method.input_type)
    response = wire_type(ctx, imports, plan.method.output_type)
    rich = _rich_errors(ctx, plan.method.output_type)
    domain = _domain_type(ctx, service, plan)
    storage_call = f"self.storage.{_storage_method(ctx, service, plan)}"

    validation: List[str] = []
    argument = "request"
    if domain:
        local = imports.add(f"..validate.{to_snake_case(domain)}", domain)
        validation.append(f"            payload = {local}.from_message(request)")
        argument = "payload"
    else:
        checks = [r for r in message_rules(ctx, plan.method.input_type) if has_rules(r.rules)]
        if checks:
            check = imports.add("protoc_gen_synapse.runtime.validation", "check")
        for rule in checks:
            args = ", ".join([py_literal(rule.name), f"request.{rule.proto_name}"] + check_arguments(rule.rules))
            validation.append(f"            {check}({args})")

    for name in ("StorageError", "ValidationError"):
        imports.add(_RUNTIME_ERRORS, name)
    abort = imports.add("protoc_gen_synapse.runtime.service", "abort")
    if plan.streaming:
        iterator = imports.add("typing", "AsyncIterator")
        lines = [
            f"    async def {plan.name}(self, request: {request}, context) -> {iterator}[{response}]:",
            "        try:",
            *validation,
            f"            async for response in {storage_call}({argument}):",
            "                yield response",
        ]
    else:
        lines = [
            f"    async def {plan.name}(self, request: {request}, context) -> {response}:",
            "        try:",
            *validation,
            f"            return await {storage_call}({argument})",
        ]
    lines.extend([
        "        except (ValidationError, StorageError) as e:",
        f"            await {abort}(context, e, rich_errors={rich})",
    ])
    return lines


def _skipped(ctx: RenderContext, service: Service, plan: MethodPlan) -> bool:
    options = ctx.cache.get_grpc_method_options(service.file_name, service.name, plan.name)
    return options is not None and options.skip


def render_servicer(ctx: RenderContext, service: Service, plans: List[MethodPlan]) -> str:
    """Generate the servicer class and its registration helper for one service."""
    imports = Imports()
    grpc_module = _grpc_module(imports, service)
    name = servicer_name(ctx, service)
    imports.add("grpc")
    storage_annotation = ""
    if storage_enabled(ctx, service):
        trait = imports.add(f"..storage.{trait_module(service)}", service.trait_name)
        storage_annotation = f": {trait}"

    body = [
        f"class {name}({grpc_module}.{service.name}Servicer):",
        f'    """Serves {service.name}; failures map to NOT_FOUND, INTERNAL or INVALID_ARGUMENT."""',
        "",
        f"    def __init__(self, storage{storage_annotation}):",
        "        self.storage = storage",
    ]
    for plan in plans:
        if _skipped(ctx, service, plan):
            continue
        body.append("")
        body.extend(_handler_lines(ctx, imports, service, plan))
    body.extend([
        "",
        "",
        f"def add_to_server(server: grpc.aio.Server, storage{storage_annotation}) -> {name}:",
        f"    servicer = {name}(storage)",
        f"    {grpc_module}.add_{service.name}Servicer_to_server(servicer, server)",
        "    return servicer",
    ])
    header = module_header(f"gRPC servicer for {service.name}.", service.file_name)
    return render_module(header, imports, body)


def generate_rpc(ctx: RenderContext, unit: PackageUnit) -> List[GeneratedFile]:
    files = []
    for service in unit.services:
        if not rpc_enabled(ctx, service):
            continue
        plans = plan_service(ctx, service)
        files.append(GeneratedFile(
            path=out_path(unit.package, "rpc", f"{to_snake_case(service.name)}.py"),
            content=render_servicer(ctx, service, plans),
        ))
        log.info(
            "Servicer %s: %d handlers", servicer_name(ctx, service), len(plans),
            extra={"proto_file": service.file_name, "stage": GenerationStage.RPC.value},
        )
    return files
