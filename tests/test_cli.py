"""CLI and end-to-end tests for rpcx-stub-generator.

Tests cover:
- Argument parsing and validation
- Stub generation from real schemas
- Output directory mirroring
- Cross-file type references
- Imported schemas, inline parameters and inheritance
- Error handling for invalid schemas and colliding outputs
"""

from __future__ import annotations

import argparse
import os
import subprocess
import sys
from pathlib import Path

import pytest
from conftest import CALCULATOR_SCHEMA, CLIENT_SCHEMA, GREETER_SCHEMA, ROBOT_SCHEMA, SHOP_SCHEMA

from rpcx_stub_generator import run as run_module
from rpcx_stub_generator.cli import main, setup_parser

REPO_ROOT = str(Path(__file__).resolve().parents[1])
RUN_MAIN = "import sys; from rpcx_stub_generator.cli import main; sys.exit(main(sys.argv[1:]))"


class TestArgumentParsing:
    """Test argument parsing and validation."""

    def test_parser_setup(self):
        parser = setup_parser()
        assert isinstance(parser, argparse.ArgumentParser)
        assert parser.description is not None

    def test_default_arguments(self):
        """Test default argument values."""
        args = setup_parser().parse_args([])

        assert args.paths == ["**/*.capnp"]
        assert args.excludes == []
        assert args.clean == []
        assert args.output_dir == ""
        assert args.import_paths == []
        assert args.recursive is False
        assert args.serialize_type == "ProtoBuffer"
        assert args.go_import_prefix == ""
        assert args.skip_gofmt is False

    def test_paths_argument(self):
        args = setup_parser().parse_args(["-p", "schema1.capnp", "schema2.capnp"])
        assert args.paths == ["schema1.capnp", "schema2.capnp"]

    def test_serialize_type_argument(self):
        args = setup_parser().parse_args(["--serialize-type", "MsgPack"])
        assert args.serialize_type == "MsgPack"

    def test_invalid_serialize_type(self):
        with pytest.raises(SystemExit):
            setup_parser().parse_args(["--serialize-type", "Avro"])


class TestGeneration:
    """Test stub generation from schema files."""

    def test_generates_beside_schemas(self, schema_dir, monkeypatch):
        monkeypatch.chdir(schema_dir.parent)

        assert main(["-p", str(schema_dir), "-r", "--no-gofmt"]) == 0

        assert (schema_dir / "greeter_rpcx.go").exists()
        assert (schema_dir / "store" / "store_rpcx.go").exists()

    def test_files_without_interfaces_are_skipped(self, schema_dir, monkeypatch):
        monkeypatch.chdir(schema_dir.parent)

        main(["-p", str(schema_dir), "-r", "--no-gofmt"])

        assert not (schema_dir / "plain_rpcx.go").exists()
        assert not (schema_dir / "store" / "models_rpcx.go").exists()

    def test_greeter_stubs(self, schema_dir, monkeypatch):
        monkeypatch.chdir(schema_dir.parent)

        main(["-p", str(schema_dir / "greeter.capnp"), "--no-gofmt"])
        output = (schema_dir / "greeter_rpcx.go").read_text()

        assert output.startswith("package greeter\n")
        assert '\t"context"' in output
        assert '\t"github.com/smallnest/rpcx/server"' in output
        assert "// Generated from greeter.capnp" in output
        assert "type GreeterImpl struct{}" in output
        assert (
            "func (s *GreeterImpl) SayHello(ctx context.Context, args *HelloRequest, reply *HelloReply) (err error)"
            in output
        )
        assert 'c.xclient.Call(ctx, "sayHello", args, reply)' in output
        assert 'c.oneclient.Call(ctx, c.serviceName, "sayGoodbye", args, reply)' in output
        assert output.index("SayHello is server rpc method") < output.index("SayGoodbye is server rpc method")

    def test_output_dir_mirrors_structure(self, schema_dir, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        output_dir = tmp_path / "out"

        assert main(["-p", str(schema_dir), "-r", "-o", str(output_dir), "--no-gofmt"]) == 0

        assert (output_dir / "greeter_rpcx.go").exists()
        assert (output_dir / "store" / "store_rpcx.go").exists()
        assert not (schema_dir / "greeter_rpcx.go").exists()

    def test_cross_file_types_are_imported(self, schema_dir, monkeypatch):
        monkeypatch.chdir(schema_dir.parent)

        main(["-p", str(schema_dir), "-r", "--go-import-prefix", "example.com/gen", "--no-gofmt"])
        output = (schema_dir / "store" / "store_rpcx.go").read_text()

        assert output.startswith("package store\n")
        assert '\t"example.com/gen/models"' in output
        assert (
            "func (c *StoreClient) Get(ctx context.Context, args *models.Item_Key) (reply *models.Item, err error)"
            in output
        )

    def test_serialize_type(self, schema_dir, monkeypatch):
        monkeypatch.chdir(schema_dir.parent)

        main(["-p", str(schema_dir / "greeter.capnp"), "--serialize-type", "JSON", "--no-gofmt"])
        output = (schema_dir / "greeter_rpcx.go").read_text()

        assert "opt.SerializeType = protocol.JSON" in output

    def test_repeated_runs_are_identical(self, schema_dir, monkeypatch):
        monkeypatch.chdir(schema_dir.parent)
        stub = schema_dir / "greeter_rpcx.go"

        main(["-p", str(schema_dir / "greeter.capnp"), "--no-gofmt"])
        first = stub.read_text()
        main(["-p", str(schema_dir / "greeter.capnp"), "--no-gofmt"])

        assert stub.read_text() == first

    def test_excludes(self, schema_dir, monkeypatch):
        monkeypatch.chdir(schema_dir.parent)

        main(["-p", str(schema_dir), "-r", "-e", str(schema_dir / "greeter.capnp"), "--no-gofmt"])

        assert not (schema_dir / "greeter_rpcx.go").exists()
        assert (schema_dir / "store" / "store_rpcx.go").exists()

    def test_clean(self, schema_dir, monkeypatch):
        monkeypatch.chdir(schema_dir.parent)
        stale = schema_dir / "stale_rpcx.go"
        stale.write_text("package stale\n")

        main(["-p", str(schema_dir / "greeter.capnp"), "-c", str(schema_dir / "*_rpcx.go"), "--no-gofmt"])

        assert not stale.exists()
        assert (schema_dir / "greeter_rpcx.go").exists()


class TestImportedSchemas:
    """Test schemas whose method types are defined in other files."""

    def test_single_file_with_import(self, schema_dir, monkeypatch):
        monkeypatch.chdir(schema_dir.parent)
        store_dir = schema_dir / "store"

        assert (
            main(["-p", str(store_dir / "store.capnp"), "--go-import-prefix", "example.com/gen", "--no-gofmt"]) == 0
        )
        output = (store_dir / "store_rpcx.go").read_text()

        assert '\t"example.com/gen/models"' in output
        assert "args *models.Item_Key" in output
        assert not (store_dir / "models_rpcx.go").exists()

    def test_excluded_import_still_resolves(self, schema_dir, monkeypatch):
        monkeypatch.chdir(schema_dir.parent)
        store_dir = schema_dir / "store"

        assert main(["-p", str(store_dir), "-e", str(store_dir / "models.capnp"), "--no-gofmt"]) == 0

        assert "reply *models.Item" in (store_dir / "store_rpcx.go").read_text()

    def test_package_named_like_an_rpcx_package_is_aliased(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "client.capnp").write_text(CLIENT_SCHEMA)
        (tmp_path / "shop.capnp").write_text(SHOP_SCHEMA)

        assert main(["-p", str(tmp_path / "*.capnp"), "--go-import-prefix", "example.com/gen", "--no-gofmt"]) == 0
        output = (tmp_path / "shop_rpcx.go").read_text()

        assert '\tclient2 "example.com/gen/client"' in output
        assert '\t"github.com/smallnest/rpcx/client"' in output
        assert (
            "func (s *ShopImpl) Buy(ctx context.Context, args *client2.Item, reply *client2.Item) (err error)" in output
        )
        assert "xclient client.XClient" in output


class TestInterfaceShapes:
    """Test interfaces beyond plain methods with named structs."""

    def test_inline_parameters(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "calculator.capnp").write_text(CALCULATOR_SCHEMA)

        assert main(["-p", str(tmp_path / "calculator.capnp"), "--no-gofmt"]) == 0
        output = (tmp_path / "calculator_rpcx.go").read_text()

        assert (
            "func (c *CalculatorClient) Evaluate(ctx context.Context, args *Calculator_evaluate_Params) "
            "(reply *Calculator_evaluate_Results, err error)" in output
        )
        assert "*reply = Calculator_evaluate_Results{}" in output

    def test_inherited_methods(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "robot.capnp").write_text(ROBOT_SCHEMA)

        assert main(["-p", str(tmp_path / "robot.capnp"), "--no-gofmt"]) == 0
        output = (tmp_path / "robot_rpcx.go").read_text()

        walk = "func (s *RobotImpl) Walk(ctx context.Context, args *Empty, reply *Empty) (err error)"
        identify = "func (s *RobotImpl) Identify(ctx context.Context, args *Empty, reply *Name) (err error)"
        assert walk in output
        assert identify in output
        assert output.index(walk) < output.index(identify)
        assert 'c.xclient.Call(ctx, "identify", args, reply)' in output


class TestErrors:
    """Test failures that abort generation."""

    def test_invalid_schema(self, tmp_path):
        """pycapnp may abort the interpreter on parse errors, so the generator runs in a child process."""
        (tmp_path / "broken.capnp").write_text("struct Missing {")
        (tmp_path / "greeter.capnp").write_text(GREETER_SCHEMA)
        env = {**os.environ, "PYTHONPATH": os.pathsep.join(filter(None, [REPO_ROOT, os.environ.get("PYTHONPATH")]))}

        result = subprocess.run(
            [sys.executable, "-c", RUN_MAIN, "-p", str(tmp_path / "*.capnp"), "--no-gofmt"],
            cwd=tmp_path,
            env=env,
            capture_output=True,
            text=True,
        )

        assert result.returncode != 0
        assert list(tmp_path.glob("*_rpcx.go")) == []

    def test_colliding_output_files(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "a-b.capnp").write_text(GREETER_SCHEMA)
        (tmp_path / "a_b.capnp").write_text(GREETER_SCHEMA.replace("@0xdbb9ad1f14bf0b36", "@0xdbb9ad1f14bf0b3e"))

        assert main(["-p", str(tmp_path / "*.capnp"), "--no-gofmt"]) == 1

        assert not (tmp_path / "a_b_rpcx.go").exists()

    def test_no_schemas_found(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert main(["-p", str(tmp_path / "*.capnp"), "--no-gofmt"]) == 0


class TestFormatting:
    """Test the best-effort gofmt step."""

    def test_missing_gofmt_returns_input(self, monkeypatch):
        def missing(*args, **kwargs):
            raise FileNotFoundError("gofmt")

        monkeypatch.setattr(run_module.subprocess, "run", missing)

        assert run_module.format_outputs("package x\n") == "package x\n"

    def test_failing_gofmt_returns_input(self, monkeypatch):
        def failing(*args, **kwargs):
            raise subprocess.CalledProcessError(2, ["gofmt"], output="", stderr="syntax error")

        monkeypatch.setattr(run_module.subprocess, "run", failing)

        assert run_module.format_outputs("package x\n") == "package x\n"

    def test_formatted_output_is_used(self, monkeypatch):
        def formatter(*args, **kwargs):
            return subprocess.CompletedProcess(args[0], 0, stdout="formatted\n", stderr="")

        monkeypatch.setattr(run_module.subprocess, "run", formatter)

        assert run_module.format_outputs("raw") == "formatted\n"
