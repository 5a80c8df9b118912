"""Command-line interface for generating rpcx service stubs for *.capnp schemas.

Notes:
    - The generated Go code compiles against github.com/smallnest/rpcx and the Go types
      that go-capnp generates for the same schemas.
"""

from __future__ import annotations

import argparse
import logging
import os.path
from collections.abc import Sequence

from rpcx_stub_generator import capnp_types
from rpcx_stub_generator.run import run
from rpcx_stub_generator.symbols import StubGenerationError

logger = logging.getLogger(__name__)


def _add_recursive_argument(parser: argparse.ArgumentParser):
    """Add a recursive argument to a parser.

    Args:
        parser (argparse.ArgumentParser): The parser to add the argument to.
    """
    parser.add_argument(
        "-r",
        "--recursive",
        dest="recursive",
        default=False,
        action="store_true",
        help="recursively search for *.capnp files with a given glob expression.",
    )


def setup_parser() -> argparse.ArgumentParser:
    """Setup for the parser.

    Returns:
        argparse.ArgumentParser: The parser after setup.
    """
    parser = argparse.ArgumentParser(description="Generate rpcx service stubs for capnp schema files.")

    parser.add_argument(
        "-c",
        "--clean",
        type=str,
        nargs="+",
        default=[],
        help="path or glob expressions that match files to clean up before stub generation.",
    )

    parser.add_argument(
        "-p",
        "--paths",
        type=str,
        nargs="+",
        default=["**/*.capnp"],
        help="path or glob expressions that match *.capnp files for stub generation.",
    )

    parser.add_argument(
        "-e",
        "--excludes",
        type=str,
        nargs="+",
        default=[],
        help="path or glob expressions to exclude from path matches.",
    )

    parser.add_argument(
        "-o",
        "--output-dir",
        type=str,
        default="",
        help="directory to write all generated stubs to; defaults to alongside each schema if omitted.",
    )

    parser.add_argument(
        "-I",
        "--import-path",
        dest="import_paths",
        type=str,
        nargs="+",
        default=[],
        help="additional import paths for resolving absolute imports (e.g., /capnp/c++.capnp).",
    )

    parser.add_argument(
        "--serialize-type",
        dest="serialize_type",
        choices=capnp_types.SERIALIZE_TYPES,
        default=capnp_types.DEFAULT_SERIALIZE_TYPE,
        help="rpcx serialize type that generated XClient factories configure.",
    )

    parser.add_argument(
        "--go-import-prefix",
        dest="go_import_prefix",
        type=str,
        default="",
        help="import path prefix of Go packages for schemas without a $Go.import annotation.",
    )

    parser.add_argument(
        "--no-gofmt",
        dest="skip_gofmt",
        default=False,
        action="store_true",
        help="skip formatting the generated stubs with gofmt.",
    )

    _add_recursive_argument(parser)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the stub generator.

    Args:
        argv (Sequence[str] | None, optional): Run arguments. Defaults to None.

    Returns:
        int: Error code.
    """
    logging.basicConfig(level=logging.INFO)

    root_directory = os.getcwd()
    logging.info("Working from root directory: %s", root_directory)

    parser = setup_parser()
    args = parser.parse_args(argv)

    try:
        run(args, root_directory)
    except StubGenerationError as e:
        logger.error("Stub generation failed: %s", e)
        return 1

    return 0
