"""Data Transfer Objects for the stub writer.

The descriptor classes describe a compiled schema file as the writer consumes it.
The record classes carry everything a single emission function needs, so that
formatting stays separate from name resolution.
"""

from __future__ import annotations

from dataclasses import dataclass

from rpcx_stub_generator import helper


@dataclass(frozen=True)
class MethodDeclaration:
    """One remote method of a service.

    Attributes:
        name: The method name as declared in the schema.
        input_type: Type reference of the parameter message.
        output_type: Type reference of the result message.
    """

    name: str
    input_type: str
    output_type: str


@dataclass(frozen=True)
class ServiceDeclaration:
    """A named group of remote methods, in declaration order."""

    name: str
    methods: tuple[MethodDeclaration, ...] = ()


@dataclass(frozen=True)
class CompiledFile:
    """A compilation unit with its services, in declaration order."""

    name: str
    services: tuple[ServiceDeclaration, ...] = ()


@dataclass(frozen=True)
class ServiceRecord:
    """Names used by the per-service declarations.

    Attributes:
        raw_name: The service name as declared.
        name: The exported service name, used as prefix of all generated identifiers.
    """

    raw_name: str
    name: str

    @classmethod
    def create(cls, service: ServiceDeclaration) -> ServiceRecord:
        """Derive the record of a service declaration."""
        return cls(raw_name=service.name, name=helper.exported_name(service.name))


@dataclass(frozen=True)
class MethodRecord:
    """Names and resolved types used by the per-method declarations.

    Attributes:
        service: The record of the enclosing service.
        raw_name: The method name as declared, used as remote call identifier.
        name: The exported method name.
        input_type: Canonical Go name of the parameter message.
        output_type: Canonical Go name of the result message.
    """

    service: ServiceRecord
    raw_name: str
    name: str
    input_type: str
    output_type: str


class FragmentRole:
    """Roles of generated fragments."""

    PROVENANCE = "provenance"
    SERVER_SKELETON = "server_skeleton"
    SERVER_METHOD = "server_method"
    CLIENT_WRAPPER = "client_wrapper"
    CLIENT_METHOD = "client_method"
    ONE_CLIENT_WRAPPER = "one_client_wrapper"
    ONE_CLIENT_METHOD = "one_client_method"


@dataclass(frozen=True)
class Fragment:
    """A block of generated Go source.

    Attributes:
        role: One of the `FragmentRole` values.
        text: The source text, without trailing newline.
    """

    role: str
    text: str

    def __str__(self) -> str:
        return self.text
