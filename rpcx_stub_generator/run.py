"""Top-level module for stub generation."""

from __future__ import annotations

import argparse
import glob
import logging
import os.path
import subprocess
from types import ModuleType
from typing import Any

import capnp

from rpcx_stub_generator import capnp_types, helper
from rpcx_stub_generator.capnp_types import ModuleRegistryType
from rpcx_stub_generator.symbols import StubGenerationError, SymbolTable, module_go_package
from rpcx_stub_generator.writer import GeneratorOptions, GoFile, Writer
from rpcx_stub_generator.writer_dto import CompiledFile, MethodDeclaration, ServiceDeclaration

if hasattr(capnp, "remove_import_hook"):
    capnp.remove_import_hook()


logger = logging.getLogger(__name__)


class SchemaLoadError(StubGenerationError):
    """Raised when a schema file cannot be parsed."""

    pass


def format_outputs(raw_input: str) -> str:
    """Formats raw Go source using gofmt.

    Args:
        raw_input (str): The unformatted input.

    Returns:
        str: The formatted outputs, or the input if gofmt is unavailable or fails.
    """
    try:
        result = subprocess.run(
            ["gofmt"],
            input=raw_input,
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout

    except FileNotFoundError:
        logger.warning("gofmt not found, skipping formatting of generated code")
        return raw_input
    except subprocess.CalledProcessError as e:
        logger.warning(f"gofmt formatting failed: {e}")
        logger.warning(f"Stderr: {e.stderr}")
        # Return unformatted output on error
        return raw_input


def index_interfaces(module_registry: ModuleRegistryType) -> dict[str, Any]:
    """Map the type references of all interfaces of the loaded modules to their schemas."""
    return {
        helper.type_ref(schema.node.id): schema
        for _, module in module_registry.values()
        for _, schema in helper.iter_nested_schemas(module.schema, capnp_types.CapnpElementType.INTERFACE)
    }


def interface_methods(schema: Any, interfaces: dict[str, Any], seen: set[str] | None = None) -> list[Any]:
    """List the methods of an interface in declaration order, followed by the methods it inherits.

    A method that is declared under the same name by an interface and one of its superclasses
    is listed once, as the Go receiver can only have one method of that name.

    Args:
        schema (Any): The schema of the interface.
        interfaces (dict[str, Any]): All known interfaces, keyed by type reference.
        seen (set[str] | None): Superclasses that were already visited.

    Returns:
        list[Any]: The method nodes.
    """
    seen = set() if seen is None else seen
    methods = sorted(schema.node.interface.methods, key=lambda m: m.codeOrder)

    for superclass in schema.node.interface.superclasses:
        ref = helper.type_ref(superclass.id)
        if ref in seen:
            continue
        seen.add(ref)

        base = interfaces.get(ref)
        if base is None:
            logger.warning(
                "Superclass '%s' of '%s' is not loaded, its methods are not generated.", ref, schema.node.displayName
            )
            continue
        methods.extend(interface_methods(base, interfaces, seen))

    unique: dict[str, Any] = {}
    for method in methods:
        unique.setdefault(method.name, method)
    return list(unique.values())


def compiled_file_from_module(module: ModuleType, path: str, interfaces: dict[str, Any] | None = None) -> CompiledFile:
    """Describe the services of a loaded schema module.

    Every interface becomes a service. Its methods are listed in the order they are declared
    in the schema, followed by inherited methods, with the ids of their parameter and result
    structs as type references.

    Args:
        module (ModuleType): The loaded schema module.
        path (str): The path of the schema file.
        interfaces (dict[str, Any] | None): Known interfaces for resolving superclasses.
            Defaults to the interfaces of the module itself.

    Returns:
        CompiledFile: The descriptor of the file.
    """
    if interfaces is None:
        interfaces = index_interfaces({module.schema.node.id: (path, module)})

    services = []
    for scoped_name, schema in helper.iter_nested_schemas(module.schema, capnp_types.CapnpElementType.INTERFACE):
        methods = interface_methods(schema, interfaces)
        services.append(
            ServiceDeclaration(
                name=helper.go_symbol_name(scoped_name),
                methods=tuple(
                    MethodDeclaration(
                        name=method.name,
                        input_type=helper.type_ref(method.paramStructType),
                        output_type=helper.type_ref(method.resultStructType),
                    )
                    for method in methods
                ),
            )
        )

    return CompiledFile(name=os.path.basename(path), services=tuple(services))


def generate_stubs(
    module: ModuleType,
    path: str,
    symbols: SymbolTable,
    writer: Writer,
    go_import_prefix: str = "",
    interfaces: dict[str, Any] | None = None,
) -> GoFile | None:
    """Entry-point for generating the rpcx stubs of one schema module.

    Args:
        module (ModuleType): The module to generate stubs for.
        path (str): The path of the schema file.
        symbols (SymbolTable): The symbol table of all loaded modules.
        writer (Writer): The writer that emits the stubs.
        go_import_prefix (str): Import path prefix for modules without a `$Go.import` annotation.
        interfaces (dict[str, Any] | None): Known interfaces for resolving superclasses.

    Returns:
        GoFile | None: The generated file, or None if the schema declares no interfaces.
    """
    compiled_file = compiled_file_from_module(module, path, interfaces)

    package = module_go_package(path, module, go_import_prefix)
    go_file = GoFile(package)

    context = writer.generate(compiled_file, symbols.context_for(package), go_file)
    go_file.add_imports(context.required)

    if go_file.is_empty:
        return None
    return go_file


def find_schema_paths(
    paths: list[str], excludes: list[str], root_directory: str, recursive: bool = False
) -> list[str]:
    """Find all schema files that the search paths match, except for excluded ones.

    Args:
        paths (list[str]): Paths, directories or glob expressions to search.
        excludes (list[str]): Paths or glob expressions to exclude.
        root_directory (str): The directory that relative paths are relative to.
        recursive (bool): Whether to search directories and `**` globs recursively.

    Returns:
        list[str]: The sorted schema paths.
    """
    excluded_paths: set[str] = set()
    for exclude in excludes:
        exclude_path = os.path.join(root_directory, exclude)
        if os.path.isfile(exclude_path):
            excluded_paths.add(exclude_path)
        else:
            excluded_paths.update(glob.glob(exclude_path, recursive=recursive))

    search_paths: set[str] = set()
    for path in paths:
        search_path = os.path.join(root_directory, path)

        if recursive and os.path.isdir(search_path):
            for root, _, files in os.walk(search_path):
                search_paths.update(os.path.join(root, f) for f in files if f.endswith(helper.CAPNP_SUFFIX))
        elif os.path.isdir(search_path):
            for file in os.listdir(search_path):
                file_path = os.path.join(search_path, file)
                if os.path.isfile(file_path) and file.endswith(helper.CAPNP_SUFFIX):
                    search_paths.add(file_path)
        else:
            search_paths.update(glob.glob(search_path, recursive=recursive))

    return sorted(search_paths - excluded_paths)


def _parse_schema(parser: capnp.SchemaParser, path: str, import_paths: list[str]) -> ModuleType:
    try:
        return parser.load(path, imports=import_paths)
    except capnp.KjException as e:
        raise SchemaLoadError(f"Failed to load schema '{path}': {e}") from e


def load_modules(
    schema_paths: list[str], import_paths: list[str], parser: capnp.SchemaParser | None = None
) -> ModuleRegistryType:
    """Parse schema files into a module registry.

    Args:
        schema_paths (list[str]): The schema files to parse.
        import_paths (list[str]): Directories for resolving absolute imports.
        parser (capnp.SchemaParser | None): The parser to load with. Defaults to a new parser.

    Raises:
        SchemaLoadError: If a schema cannot be parsed.

    Returns:
        ModuleRegistryType: The loaded modules, keyed by their file node id.
    """
    parser = parser or capnp.SchemaParser()
    module_registry: ModuleRegistryType = {}

    for path in schema_paths:
        module = _parse_schema(parser, path, import_paths)
        module_registry[module.schema.node.id] = (path, module)

    return module_registry


def referenced_schema_files(module: ModuleType) -> set[str]:
    """Collect the display names of all schema files that define parameter or result structs of the module."""
    files = set()
    for _, schema in helper.iter_nested_schemas(module.schema, capnp_types.CapnpElementType.INTERFACE):
        for method in schema.as_interface().methods.values():
            files.add(helper.schema_file_name(method.param_type.node))
            files.add(helper.schema_file_name(method.result_type.node))
    return files


def find_schema_file(display_name: str, importer_path: str, import_paths: list[str]) -> str | None:
    """Find an imported schema file on disk.

    The display name is tried as is, as an absolute path, next to the importing schema and
    below every import path.

    Args:
        display_name (str): The display name of the imported file.
        importer_path (str): The path of the schema that imports the file.
        import_paths (list[str]): Directories for resolving absolute imports.

    Returns:
        str | None: The path of the file, or None if it was not found.
    """
    relative_name = display_name.lstrip("/")
    candidates = [
        display_name,
        os.path.join(os.sep, relative_name),
        os.path.join(os.path.dirname(importer_path), os.path.basename(display_name)),
        *(os.path.join(p, relative_name) for p in import_paths),
    ]
    for candidate in candidates:
        if os.path.isfile(candidate):
            return candidate
    return None


def _display_key(display_name: str) -> str:
    return os.path.normpath(display_name).lstrip("/")


def load_imported_modules(
    module_registry: ModuleRegistryType, import_paths: list[str], parser: capnp.SchemaParser
) -> ModuleRegistryType:
    """Load the schema files that define method types of the registered modules, but are not registered.

    Such files are imported by a registered schema, but were excluded or not matched by the
    search paths. They contribute to the symbol table only.

    Args:
        module_registry (ModuleRegistryType): The modules to generate stubs for.
        import_paths (list[str]): Directories for resolving absolute imports.
        parser (capnp.SchemaParser): The parser that loaded the registered modules.

    Raises:
        SchemaLoadError: If an imported schema cannot be parsed.

    Returns:
        ModuleRegistryType: The additionally loaded modules, keyed by their file node id.
    """
    known = {_display_key(module.schema.node.displayName) for _, module in module_registry.values()}
    imported: ModuleRegistryType = {}
    pending = list(module_registry.values())

    while pending:
        importer_path, module = pending.pop()
        for display_name in sorted(referenced_schema_files(module)):
            if _display_key(display_name) in known:
                continue
            known.add(_display_key(display_name))

            path = find_schema_file(display_name, importer_path, import_paths)
            if path is None:
                logger.warning("Imported schema '%s' was not found on disk.", display_name)
                continue

            imported_module = _parse_schema(parser, path, import_paths)
            if imported_module.schema.node.id in module_registry:
                continue

            logger.debug("Loaded imported schema '%s'.", path)
            imported[imported_module.schema.node.id] = (path, imported_module)
            pending.append((path, imported_module))

    return imported


def output_directory_for(path: str, output_dir: str, common_base: str | None) -> str:
    """Determine the directory that the stubs of a schema are written to.

    Without an output directory, stubs are placed next to their schema. Otherwise the directory
    structure below the common base of all schemas is mirrored into the output directory.
    """
    if not output_dir:
        return os.path.dirname(path)

    if common_base is None:
        return output_dir

    rel_dir = os.path.relpath(os.path.dirname(os.path.abspath(path)), common_base)
    return os.path.normpath(os.path.join(output_dir, rel_dir))


def run(args: argparse.Namespace, root_directory: str):
    """Run the stub generator on a set of paths that point to *.capnp schemas.

    All stubs are generated before the first file is written, so that a failing schema
    leaves no partial outputs behind.

    Args:
        args (argparse.Namespace): The arguments that were passed when calling the stub generator.
        root_directory (str): The directory, from which the generator is executed.

    Raises:
        StubGenerationError: If a schema cannot be loaded or a stub cannot be generated.
    """
    paths: list[str] = args.paths
    excludes: list[str] = getattr(args, "excludes", [])
    clean: list[str] = getattr(args, "clean", [])
    recursive: bool = getattr(args, "recursive", False)
    output_dir: str = getattr(args, "output_dir", "")
    import_paths: list[str] = getattr(args, "import_paths", [])
    go_import_prefix: str = getattr(args, "go_import_prefix", "")
    skip_gofmt: bool = getattr(args, "skip_gofmt", False)
    options = GeneratorOptions(
        serialize_type=getattr(args, "serialize_type", capnp_types.DEFAULT_SERIALIZE_TYPE),
    )

    cleanup_paths: set[str] = set()
    for c in clean:
        cleanup_paths.update(glob.glob(os.path.join(root_directory, c), recursive=recursive))

    for cleanup_path in sorted(cleanup_paths):
        os.remove(cleanup_path)

    schema_paths = find_schema_paths(paths, excludes, root_directory, recursive)
    if not schema_paths:
        logger.warning("No schema files found.")
        return

    # Convert import paths to absolute paths relative to root_directory
    absolute_import_paths = [os.path.join(root_directory, p) for p in import_paths]

    parser = capnp.SchemaParser()
    module_registry = load_modules(schema_paths, absolute_import_paths, parser)
    imported_registry = load_imported_modules(module_registry, absolute_import_paths, parser)
    all_modules = {**imported_registry, **module_registry}

    symbols = SymbolTable.from_module_registry(all_modules, go_import_prefix)
    interfaces = index_interfaces(all_modules)
    writer = Writer(options)

    common_base = None
    if output_dir:
        common_base = os.path.commonpath([os.path.dirname(os.path.abspath(p)) for p in schema_paths])

    outputs: dict[str, str] = {}
    sources: dict[str, str] = {}
    for path, module in sorted(module_registry.values(), key=lambda entry: entry[0]):
        go_file = generate_stubs(module, path, symbols, writer, go_import_prefix, interfaces)
        if go_file is None:
            logger.info("Skipping '%s', it declares no interfaces.", path)
            continue

        output_directory = output_directory_for(path, output_dir, common_base)
        output_file_path = os.path.join(output_directory, helper.replace_capnp_suffix(os.path.basename(path)))
        if output_file_path in sources:
            raise StubGenerationError(
                f"Schemas '{sources[output_file_path]}' and '{path}' both generate '{output_file_path}'."
            )
        sources[output_file_path] = path

        output = go_file.dumps_go()
        if not skip_gofmt:
            output = format_outputs(output)

        outputs[output_file_path] = output

    for output_file_path, output in outputs.items():
        os.makedirs(os.path.dirname(output_file_path) or ".", exist_ok=True)
        with open(output_file_path, "w", encoding="utf8") as output_file:
            output_file.write(output)

        logger.info("Wrote stubs to '%s'.", output_file_path)
