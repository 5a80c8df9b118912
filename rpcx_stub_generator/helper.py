"""Helper functionality that is used in other modules of this package."""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import Any

CAPNP_SUFFIX = ".capnp"
GO_OUTPUT_SUFFIX = "_rpcx.go"


def exported_name(raw: str) -> str:
    """Turn a declared name into an exported Go identifier.

    Only the first character is upper-cased, the remainder is kept as is.
    E.g. `sayHello` becomes `SayHello`, `greeter` becomes `Greeter`.

    Args:
        raw (str): The name as declared in the schema.

    Returns:
        str: The exported name, or an empty string for an empty name.
    """
    if not raw:
        return ""
    return raw[0].upper() + raw[1:]


def replace_capnp_suffix(original: str) -> str:
    """Replaces the .capnp suffix of a schema file name with the suffix of the generated Go file.

    Hyphens and dots are converted to underscores, as Go tooling expects plain file names.
    For example, `some-module.capnp` becomes `some_module_rpcx.go`.

    Args:
        original (str): The file name of the schema.

    Returns:
        str: The file name of the generated Go file.
    """
    stem = original[: -len(CAPNP_SUFFIX)] if original.endswith(CAPNP_SUFFIX) else original
    return sanitize_identifier(stem) + GO_OUTPUT_SUFFIX


def sanitize_identifier(name: str) -> str:
    """Replace every character that is not valid in a Go identifier by an underscore.

    A leading digit is prefixed by an underscore.

    Args:
        name (str): The original name.

    Returns:
        str: The sanitized name.
    """
    name = re.sub(r"\W", "_", name)
    if name[:1].isdigit():
        name = f"_{name}"
    return name


def go_package_name(schema_file_name: str) -> str:
    """Derive a Go package name from the file name of a schema.

    E.g. `hello-world.capnp` becomes `hello_world`.

    Args:
        schema_file_name (str): The base name of the schema file.

    Returns:
        str: The package name.
    """
    stem = schema_file_name
    if stem.endswith(CAPNP_SUFFIX):
        stem = stem[: -len(CAPNP_SUFFIX)]
    return sanitize_identifier(stem).lower()


def go_symbol_name(scoped_name: str) -> str:
    """Converts a scoped capnp name to the name of the Go type that go-capnp generates for it.

    Nested names are joined with underscores, `Outer.Inner` becomes `Outer_Inner`.
    """
    return scoped_name.replace(".", "_")


def type_ref(type_id: int) -> str:
    """Format a capnp node id as a type reference."""
    return f"{type_id:#018x}"


def iter_nested_schemas(schema: Any, node_type: str, scope: str = "") -> Iterator[tuple[str, Any]]:
    """Recursively yield all nested schemas of one node type below a schema.

    Args:
        schema (Any): The schema to search, usually the schema of a file.
        node_type (str): The node type to look for, e.g. `struct` or `interface`.
        scope (str): The scoped name of `schema`, empty for files.

    Yields:
        tuple[str, Any]: The scoped name (e.g. `Outer.Inner`) and the nested schema.
    """
    for nested_node in schema.node.nestedNodes:
        nested_schema = schema.get_nested(nested_node.name)
        scoped_name = f"{scope}.{nested_node.name}" if scope else nested_node.name

        if nested_schema.node.which() == node_type:
            yield scoped_name, nested_schema

        yield from iter_nested_schemas(nested_schema, node_type, scoped_name)


def schema_file_name(node: Any) -> str:
    """Return the display name of the schema file that defines a node.

    E.g. `store/models.capnp:Item.Key` yields `store/models.capnp`.
    """
    return node.displayName.split(":", 1)[0]
