"""Pytest configuration and fixtures for rpcx stub generator tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from rpcx_stub_generator.symbols import GoImport, GoSymbol, SymbolTable
from rpcx_stub_generator.writer_dto import CompiledFile, MethodDeclaration, ServiceDeclaration

HELLO_PACKAGE = GoImport(path="example.com/hello", name="hello")
SHARED_PACKAGE = GoImport(path="example.com/shared", name="shared")

HELLO_REQUEST = "0xa000000000000001"
HELLO_REPLY = "0xa000000000000002"
SHARED_STATUS = "0xb000000000000001"
MISSING = "0xffffffffffffffff"

GREETER_SCHEMA = """
@0xdbb9ad1f14bf0b36;

struct HelloRequest {
    name @0 :Text;
}

struct HelloReply {
    message @0 :Text;
}

interface Greeter {
    sayHello @0 HelloRequest -> HelloReply;
    sayGoodbye @1 HelloRequest -> HelloReply;
}
"""

MODELS_SCHEMA = """
@0xdbb9ad1f14bf0b37;

struct Item {
    id @0 :UInt32;

    struct Key {
        value @0 :Text;
    }
}
"""

STORE_SCHEMA = """
@0xdbb9ad1f14bf0b38;

using Models = import "models.capnp";

interface Store {
    get @0 Models.Item.Key -> Models.Item;
}
"""

PLAIN_SCHEMA = """
@0xdbb9ad1f14bf0b39;

struct Plain {
    field @0 :Text;
}
"""

CALCULATOR_SCHEMA = """
@0xdbb9ad1f14bf0b3a;

interface Calculator {
    evaluate @0 (expression :Text) -> (value :Float64);
}
"""

CLIENT_SCHEMA = """
@0xdbb9ad1f14bf0b3b;

struct Item {
    id @0 :UInt32;
}
"""

SHOP_SCHEMA = """
@0xdbb9ad1f14bf0b3c;

using Client = import "client.capnp";

interface Shop {
    buy @0 Client.Item -> Client.Item;
}
"""

ROBOT_SCHEMA = """
@0xdbb9ad1f14bf0b3d;

struct Empty {}

struct Name {
    value @0 :Text;
}

interface Identifiable {
    identify @0 Empty -> Name;
}

interface Robot extends(Identifiable) {
    walk @0 Empty -> Empty;
}
"""


class RecordingSink:
    """Output sink that records every call."""

    def __init__(self):
        self.fragments = []
        self.declared = []

    def print_fragment(self, fragment):
        self.fragments.append(fragment)

    def declare_package(self, path):
        self.declared.append(path)

    @property
    def text(self) -> str:
        return "\n\n".join(str(f) for f in self.fragments)


@pytest.fixture
def symbol_table():
    """Symbol table with two types in the `hello` package and one in `shared`."""
    return SymbolTable(
        {
            HELLO_REQUEST: GoSymbol("HelloRequest", HELLO_PACKAGE),
            HELLO_REPLY: GoSymbol("HelloReply", HELLO_PACKAGE),
            SHARED_STATUS: GoSymbol("Status", SHARED_PACKAGE),
        }
    )


@pytest.fixture
def context(symbol_table):
    """Resolution context of a file in the `hello` package."""
    return symbol_table.context_for(HELLO_PACKAGE)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def greeter_file():
    """A file with one service `Greeter` and one method `SayHello`."""
    return CompiledFile(
        name="greeter.capnp",
        services=(
            ServiceDeclaration(
                name="Greeter",
                methods=(MethodDeclaration("SayHello", HELLO_REQUEST, HELLO_REPLY),),
            ),
        ),
    )


@pytest.fixture
def schema_dir(tmp_path) -> Path:
    """Create a temporary directory with test schemas."""
    directory = tmp_path / "schemas"
    directory.mkdir()

    (directory / "greeter.capnp").write_text(GREETER_SCHEMA)
    (directory / "plain.capnp").write_text(PLAIN_SCHEMA)

    subdir = directory / "store"
    subdir.mkdir()
    (subdir / "models.capnp").write_text(MODELS_SCHEMA)
    (subdir / "store.capnp").write_text(STORE_SCHEMA)

    return directory
