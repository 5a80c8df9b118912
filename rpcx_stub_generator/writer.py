"""Generate rpcx service stubs for compiled schema files."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from rpcx_stub_generator import capnp_types, emitters, helper
from rpcx_stub_generator.symbols import GoImport, ResolutionContext, SymbolNotFoundError
from rpcx_stub_generator.writer_dto import (
    CompiledFile,
    Fragment,
    MethodDeclaration,
    MethodRecord,
    ServiceDeclaration,
    ServiceRecord,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratorOptions:
    """Options that change the generated code.

    Attributes:
        serialize_type: The `protocol.SerializeType` that generated XClient factories configure.
    """

    serialize_type: str = capnp_types.DEFAULT_SERIALIZE_TYPE

    def __post_init__(self):
        """Sanity check for the serialize type."""
        if self.serialize_type not in capnp_types.SERIALIZE_TYPES:
            raise ValueError(
                f"Unknown serialize type '{self.serialize_type}'. "
                f"Valid types are: {', '.join(capnp_types.SERIALIZE_TYPES)}"
            )


class OutputSink(Protocol):
    """Receiver of the generated fragments and the packages they depend on."""

    def print_fragment(self, fragment: Fragment) -> None: ...

    def declare_package(self, path: str) -> None: ...


class GoFile:
    """Buffer for the contents of one generated Go file."""

    def __init__(self, package: GoImport):
        """Initialize an empty file.

        Args:
            package (GoImport): The package that the file belongs to.
        """
        self.package = package
        self.fragments: list[Fragment] = []
        self.package_paths: list[str] = []
        self._imports: set[GoImport] = set()

    def print_fragment(self, fragment: Fragment) -> None:
        """Append a fragment to the body of the file."""
        self.fragments.append(fragment)

    def declare_package(self, path: str) -> None:
        """Add the import of a package by its path."""
        # Preserve declaration order while avoiding duplicates
        if path not in self.package_paths:
            self.package_paths.append(path)

    def add_imports(self, imports: Iterable[GoImport]) -> None:
        """Add imports of packages that resolved types are defined in."""
        self._imports.update(imports)

    @property
    def is_empty(self) -> bool:
        """Whether nothing was printed to the file."""
        return not self.fragments

    @property
    def imports(self) -> list[str]:
        """The import specs of the file, standard library packages first.

        Returns:
            list[str]: Import specs, with an empty string separating the two groups.
        """
        specs_by_path = {path: f'"{path}"' for path in self.package_paths}
        for imp in self._imports:
            if imp.path.rsplit("/", 1)[-1] == imp.name:
                specs_by_path[imp.path] = f'"{imp.path}"'
            else:
                specs_by_path[imp.path] = f'{imp.name} "{imp.path}"'

        # Declared paths without a dot in their first element belong to the standard library.
        std_paths = {p for p in self.package_paths if "." not in p.split("/", 1)[0]}
        std = [specs_by_path[p] for p in sorted(std_paths)]
        other = [specs_by_path[p] for p in sorted(specs_by_path.keys() - std_paths)]

        if std and other:
            return [*std, "", *other]
        return std or other

    def dumps_go(self) -> str:
        """Generates the string output of the Go file.

        Returns:
            str: The output string.
        """
        out = [f"package {self.package.name}", ""]

        imports = self.imports
        if imports:
            out.append("import (")
            out.extend(f"\t{spec}" if spec else "" for spec in imports)
            out.append(")")
            out.append("")

        out.append("\n\n".join(str(fragment) for fragment in self.fragments))
        return "\n".join(out) + "\n"


class Writer:
    """Emits the server skeleton, client wrapper and single-target client wrapper of each service."""

    def __init__(self, options: GeneratorOptions | None = None):
        """Initialize the writer.

        Args:
            options (GeneratorOptions | None): Options for the generated code. Defaults to `GeneratorOptions()`.
        """
        self.options = options or GeneratorOptions()

    def generate(self, compiled_file: CompiledFile, context: ResolutionContext, sink: OutputSink) -> ResolutionContext:
        """Generate the stubs of all services in a compiled file.

        Nothing is printed or declared to the sink unless all type references of the file resolve.

        Args:
            compiled_file (CompiledFile): The file to generate stubs for.
            context (ResolutionContext): The resolution context of the file.
            sink (OutputSink): The receiver of fragments and package declarations.

        Raises:
            SymbolNotFoundError: If a method references a type that is not in the symbol table.

        Returns:
            ResolutionContext: The context, extended by all imports that resolved types require.
        """
        if not compiled_file.services:
            return context

        fragments = [emitters.provenance(compiled_file.name)]
        for service in compiled_file.services:
            service_fragments, context = self._generate_service(compiled_file, service, context)
            fragments.extend(service_fragments)

        for path in capnp_types.REQUIRED_PKG_PATHS:
            sink.declare_package(path)

        for fragment in fragments:
            sink.print_fragment(fragment)

        return context

    def _generate_service(
        self, compiled_file: CompiledFile, service: ServiceDeclaration, context: ResolutionContext
    ) -> tuple[list[Fragment], ResolutionContext]:
        """Generate all fragments of one service, in their fixed order."""
        service_record = ServiceRecord.create(service)
        logger.debug("Generating service '%s' with %d methods.", service.name, len(service.methods))

        method_records = []
        for method in service.methods:
            method_record, context = self._resolve_method(compiled_file, service_record, method, context)
            method_records.append(method_record)

        fragments = [emitters.server_skeleton(service_record)]
        fragments.extend(emitters.server_method(m) for m in method_records)

        fragments.append(emitters.client_wrapper(service_record, self.options.serialize_type))
        fragments.extend(emitters.client_method(m) for m in method_records)

        fragments.append(emitters.one_client_wrapper(service_record))
        fragments.extend(emitters.one_client_method(m) for m in method_records)

        return fragments, context

    def _resolve_method(
        self,
        compiled_file: CompiledFile,
        service_record: ServiceRecord,
        method: MethodDeclaration,
        context: ResolutionContext,
    ) -> tuple[MethodRecord, ResolutionContext]:
        """Resolve the input and output types of a method.

        All three stub families print the names resolved here, so they cannot diverge.
        """
        try:
            input_type, context = context.resolve(method.input_type)
            output_type, context = context.resolve(method.output_type)
        except SymbolNotFoundError as e:
            raise e.attribute(compiled_file.name, service_record.raw_name, method.name) from e

        record = MethodRecord(
            service=service_record,
            raw_name=method.name,
            name=helper.exported_name(method.name),
            input_type=input_type,
            output_type=output_type,
        )
        return record, context
