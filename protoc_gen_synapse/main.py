"""protoc-gen-synapse entry point: CodeGeneratorRequest on stdin, response on stdout."""
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

from google.protobuf.compiler import plugin_pb2
from google.protobuf.message import DecodeError as ProtobufDecodeError

from protoc_gen_synapse.core.config import settings
from protoc_gen_synapse.core.errors import DecodeError, GeneratorError
from protoc_gen_synapse.core.logging import configure_logging
from protoc_gen_synapse.generators.generator import Generator
from protoc_gen_synapse.generators.writer import build_response, error_response, write_response
from protoc_gen_synapse.options.schema import SchemaContext

log = logging.getLogger(__name__)


def _parse_parameter_string(parameter: str) -> Dict[str, str]:
    """Comma-separated key=value pairs; bare keys map to an empty string."""
    params: Dict[str, str] = {}
    for part in parameter.split(","):
        part = part.strip()
        if not part:
            continue
        key, _, value = part.partition("=")
        params[key.strip()] = value.strip()
    return params


def _read_parameter(raw: bytes) -> str:
    try:
        return plugin_pb2.CodeGeneratorRequest.FromString(raw).parameter
    except ProtobufDecodeError as e:
        raise DecodeError(f"Failed to decode CodeGeneratorRequest: {e}") from e


def run(raw: bytes, schema: Optional[SchemaContext] = None) -> bytes:
    """Serialized CodeGeneratorResponse for serialized request bytes; never raises."""
    try:
        params = _parse_parameter_string(_read_parameter(raw))
        generator = Generator(schema or SchemaContext.build(), backend=params.get("backend"))
        response = build_response(generator.run(raw))
        if settings.dump_dir:
            write_response(response, Path(settings.dump_dir))
    except GeneratorError as e:
        log.error("Generation failed: %s", e)
        return error_response(str(e)).SerializeToString()
    except Exception as e:
        log.exception("Unexpected generator failure")
        return error_response(f"Internal generator error: {e}").SerializeToString()

    return response.SerializeToString()


def main() -> None:
    configure_logging(settings.log_level)
    raw = sys.stdin.buffer.read()
    sys.stdout.buffer.write(run(raw))
    sys.stdout.buffer.flush()


if __name__ == "__main__":
    main()
