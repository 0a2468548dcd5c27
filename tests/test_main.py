"""Tests for the plugin entry point: request bytes in, response bytes out."""
import pytest
from google.protobuf.compiler import plugin_pb2

from protoc_gen_synapse.core.config import settings
from protoc_gen_synapse.core.errors import GeneratorError
from protoc_gen_synapse.generators.writer import write_response
from protoc_gen_synapse.main import _parse_parameter_string, run

from conftest import blog_file, build_request


def decode(raw: bytes) -> plugin_pb2.CodeGeneratorResponse:
    return plugin_pb2.CodeGeneratorResponse.FromString(raw)


def test_parameter_parsing():
    assert _parse_parameter_string("") == {}
    assert _parse_parameter_string("backend=seaorm, verbose") == {"backend": "seaorm", "verbose": ""}


def test_successful_run(schema):
    raw = build_request(schema, blog_file(), parameter="backend=sqlalchemy").SerializeToString()
    response = decode(run(raw, schema))
    assert not response.error
    assert response.supported_features == plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL
    names = [f.name for f in response.file]
    assert "blog/v1/entities/user.py" in names
    assert "blog/v1/graphql/schema.py" in names


def test_unknown_backend_is_reported(schema):
    raw = build_request(schema, blog_file(), parameter="backend=mongo").SerializeToString()
    response = decode(run(raw, schema))
    assert response.error == "Unknown backend: mongo"
    assert len(response.file) == 0


def test_missing_file_is_reported(schema):
    raw = build_request(schema, blog_file(), files_to_generate=["missing.proto"]).SerializeToString()
    response = decode(run(raw, schema))
    assert response.error == "File descriptor not found: missing.proto"
    assert len(response.file) == 0


def test_undecodable_request_is_reported(schema):
    response = decode(run(b"\xff\xff\xff", schema))
    assert response.error.startswith("Failed to decode CodeGeneratorRequest")


def test_dump_dir_mirrors_the_response(schema, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "dump_dir", str(tmp_path))
    response = decode(run(build_request(schema, blog_file()).SerializeToString(), schema))
    assert not response.error
    for out in response.file:
        assert (tmp_path / out.name).read_text(encoding="utf-8") == out.content


class TestWriteResponse:
    def test_writes_nested_paths(self, tmp_path):
        response = plugin_pb2.CodeGeneratorResponse()
        response.file.add(name="pkg/sub/mod.py", content="x = 1\n")
        written = write_response(response, tmp_path)
        assert written == [(tmp_path / "pkg/sub/mod.py").resolve()]
        assert written[0].read_text(encoding="utf-8") == "x = 1\n"

    @pytest.mark.parametrize("name", ["../escape.py", "pkg/../../escape.py", "/tmp/absolute.py"])
    def test_refuses_names_outside_the_directory(self, tmp_path, name):
        response = plugin_pb2.CodeGeneratorResponse()
        response.file.add(name=name, content="")
        with pytest.raises(GeneratorError, match="Refusing to write"):
            write_response(response, tmp_path / "out")
        assert not (tmp_path / "escape.py").exists()
