"""Response assembly and optional on-disk dump for generated files."""
import logging
from pathlib import Path
from typing import List

from google.protobuf.compiler import plugin_pb2

from protoc_gen_synapse.core.errors import GeneratorError
from protoc_gen_synapse.core.workflow import GenerationStage
from protoc_gen_synapse.generators.types import GeneratedFile

log = logging.getLogger(__name__)


def build_response(files: List[GeneratedFile]) -> plugin_pb2.CodeGeneratorResponse:
    """
    Build the CodeGeneratorResponse for a successful run.

    Args:
        files: Generated files in emission order

    Returns:
        Response announcing proto3 optional support
    """
    response = plugin_pb2.CodeGeneratorResponse()
    response.supported_features = plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL
    for generated in files:
        out = response.file.add()
        out.name = generated.path
        out.content = generated.content
    return response


def error_response(message: str) -> plugin_pb2.CodeGeneratorResponse:
    response = plugin_pb2.CodeGeneratorResponse()
    response.supported_features = plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL
    response.error = message
    return response


def write_response(response: plugin_pb2.CodeGeneratorResponse, out_dir: Path) -> List[Path]:
    """
    Mirror a response's files under out_dir, the way protoc lays them out.

    Args:
        response: Successful CodeGeneratorResponse
        out_dir: Directory standing in for protoc's --synapse_out

    Returns:
        Paths written, in response order

    Raises:
        GeneratorError: a file name is absolute or climbs out of out_dir
    """
    root = out_dir.resolve()
    written: List[Path] = []
    for out in response.file:
        target = (root / out.name).resolve()
        if Path(out.name).is_absolute() or root not in target.parents:
            raise GeneratorError(f"Refusing to write {out.name} outside {out_dir}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(out.content, encoding="utf-8")
        written.append(target)
        log.debug("Wrote %s", out.name, extra={"stage": GenerationStage.WRITE.value})
    log.info(
        "Wrote %d files to %s", len(written), out_dir,
        extra={"stage": GenerationStage.WRITE.value},
    )
    return written
