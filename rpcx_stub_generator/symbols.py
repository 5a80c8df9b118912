"""Symbol table and type name resolution for generated Go code."""

from __future__ import annotations

import logging
import os.path
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from rpcx_stub_generator import capnp_types, helper
from rpcx_stub_generator.capnp_types import ModuleRegistryType

logger = logging.getLogger(__name__)


class StubGenerationError(Exception):
    """Base class for errors that abort stub generation."""


class SymbolNotFoundError(StubGenerationError):
    """Raised when a type reference is missing from the symbol table.

    Attributes:
        type_ref: The reference that failed to resolve.
        file_name: The schema file being generated, if known.
        service: The service whose method referenced the type, if known.
        method: The method that referenced the type, if known.
    """

    def __init__(self, type_ref: str, file_name: str = "", service: str = "", method: str = ""):
        self.type_ref = type_ref
        self.file_name = file_name
        self.service = service
        self.method = method
        super().__init__(str(self))

    def attribute(self, file_name: str, service: str, method: str) -> SymbolNotFoundError:
        """Return a copy of this error that names where the reference was found."""
        return SymbolNotFoundError(self.type_ref, file_name=file_name, service=service, method=method)

    def __str__(self) -> str:
        message = f"Type reference '{self.type_ref}' was not found in the symbol table"
        if self.file_name:
            message += f" (file '{self.file_name}', service '{self.service}', method '{self.method}')"
        return message + "."


@dataclass(frozen=True, order=True)
class GoImport:
    """A Go package that generated code imports."""

    path: str
    name: str


@dataclass(frozen=True)
class GoSymbol:
    """A Go type that a type reference stands for.

    Attributes:
        name: The name of the type inside its package.
        package: The Go package that defines the type.
    """

    name: str
    package: GoImport


class SymbolTable:
    """Maps type references to the Go types generated for them."""

    def __init__(self, symbols: dict[str, GoSymbol] | None = None):
        self._symbols: dict[str, GoSymbol] = dict(symbols) if symbols else {}

    def __len__(self) -> int:
        return len(self._symbols)

    def __contains__(self, type_ref: str) -> bool:
        return type_ref in self._symbols

    def add(self, type_ref: str, symbol: GoSymbol) -> None:
        """Register the Go type of a type reference."""
        self._symbols[type_ref] = symbol

    def lookup(self, type_ref: str) -> GoSymbol:
        """Look up the Go type of a type reference.

        Raises:
            SymbolNotFoundError: If the reference is unknown.
        """
        try:
            return self._symbols[type_ref]
        except KeyError:
            raise SymbolNotFoundError(type_ref) from None

    @property
    def packages(self) -> list[GoImport]:
        """All packages that define a type of the table, sorted by import path."""
        return sorted({symbol.package for symbol in self._symbols.values()})

    def context_for(self, package: GoImport) -> ResolutionContext:
        """Start a resolution context for a file that is generated into the given package."""
        return ResolutionContext(symbols=self, package=package, imports=self._import_names(package))

    def _import_names(self, package: GoImport) -> dict[str, GoImport]:
        """Assign every foreign package a name that is unique within a file of `package`.

        Names of the packages every generated file imports are never reused. A foreign package
        whose name is taken is imported under its name with a numeric suffix, e.g. `client2`.
        """
        taken = {path.rsplit("/", 1)[-1] for path in capnp_types.REQUIRED_PKG_PATHS}
        imports: dict[str, GoImport] = {}

        for foreign in self.packages:
            if foreign.path == package.path or foreign.path in imports:
                continue

            name = foreign.name
            suffix = 2
            while name in taken:
                name = f"{foreign.name}{suffix}"
                suffix += 1

            taken.add(name)
            imports[foreign.path] = GoImport(foreign.path, name)

        return imports

    @classmethod
    def from_module_registry(cls, module_registry: ModuleRegistryType, go_import_prefix: str = "") -> SymbolTable:
        """Build the symbol table of all structs defined by the loaded modules.

        Besides the declared structs, the implicit parameter and result structs of methods with
        inline parameter lists are registered under the names go-capnp generates for them,
        `<Interface>_<method>_Params` and `<Interface>_<method>_Results`.

        Args:
            module_registry (ModuleRegistryType): The loaded modules, keyed by their file node id.
            go_import_prefix (str): Prefix for the import paths of modules without a `$Go.import` annotation.

        Returns:
            SymbolTable: The symbol table.
        """
        table = cls()
        packages = {
            module_id: module_go_package(path, module, go_import_prefix)
            for module_id, (path, module) in module_registry.items()
        }

        for module_id, (_, module) in module_registry.items():
            for scoped_name, schema in helper.iter_nested_schemas(module.schema, capnp_types.CapnpElementType.STRUCT):
                symbol = GoSymbol(helper.go_symbol_name(scoped_name), packages[module_id])
                table.add(helper.type_ref(schema.node.id), symbol)

        # Declared structs of all modules must be known before implicit ones are named.
        for module_id, (_, module) in module_registry.items():
            for scoped_name, schema in helper.iter_nested_schemas(
                module.schema, capnp_types.CapnpElementType.INTERFACE
            ):
                for method in schema.node.interface.methods:
                    for struct_id, suffix in ((method.paramStructType, "Params"), (method.resultStructType, "Results")):
                        ref = helper.type_ref(struct_id)
                        if ref not in table:
                            name = helper.go_symbol_name(f"{scoped_name}.{method.name}_{suffix}")
                            table.add(ref, GoSymbol(name, packages[module_id]))

        logger.debug("Symbol table holds %d types.", len(table))
        return table


@dataclass(frozen=True)
class ResolutionContext:
    """Per-file state of type name resolution.

    Resolving a type returns a new context that additionally requires the import of the
    type's package, when the type lives in another package than the generated file.

    Attributes:
        symbols: The symbol table to resolve against.
        package: The package of the generated file.
        required: Imports that resolved types require.
        imports: The names under which foreign packages are imported, keyed by import path.
    """

    symbols: SymbolTable
    package: GoImport
    required: frozenset[GoImport] = field(default_factory=frozenset)
    imports: Mapping[str, GoImport] = field(default_factory=dict)

    def resolve(self, type_ref: str) -> tuple[str, ResolutionContext]:
        """Resolve a type reference to the name under which generated code refers to it.

        Args:
            type_ref (str): The type reference of a method input or output.

        Raises:
            SymbolNotFoundError: If the reference is unknown.

        Returns:
            tuple[str, ResolutionContext]: The canonical name and the updated context.
        """
        symbol = self.symbols.lookup(type_ref)
        if symbol.package.path == self.package.path:
            return symbol.name, self

        package = self.imports.get(symbol.package.path, symbol.package)
        context = replace(self, required=self.required | {package})
        return f"{package.name}.{symbol.name}", context


def _annotation_text(node: Any, annotation_id: int) -> str | None:
    for annotation in node.annotations:
        if annotation.id == annotation_id:
            return annotation.value.text
    return None


def module_go_package(path: str, module: Any, go_import_prefix: str = "") -> GoImport:
    """Determine the Go package that the types of a schema module are generated into.

    The `$Go.package` and `$Go.import` annotations of go-capnp take precedence. Without them,
    the package is named after the schema file and imported from below `go_import_prefix`.

    Args:
        path (str): The path of the schema file.
        module (Any): The loaded schema module.
        go_import_prefix (str): Import path prefix for modules without a `$Go.import` annotation.

    Returns:
        GoImport: The package.
    """
    node = module.schema.node
    name = _annotation_text(node, capnp_types.GO_PACKAGE_ANNOTATION_ID) or helper.go_package_name(
        os.path.basename(path)
    )
    import_path = _annotation_text(node, capnp_types.GO_IMPORT_ANNOTATION_ID)
    if not import_path:
        import_path = f"{go_import_prefix.rstrip('/')}/{name}" if go_import_prefix else name
    return GoImport(path=import_path, name=name)

