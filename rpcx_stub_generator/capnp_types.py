"""Types and constants that are shared between the capnp loader and the Go emitter."""

from __future__ import annotations

from types import ModuleType

RPCX_SERVER_PKG_PATH = "github.com/smallnest/rpcx/server"
RPCX_CLIENT_PKG_PATH = "github.com/smallnest/rpcx/client"
RPCX_PROTOCOL_PKG_PATH = "github.com/smallnest/rpcx/protocol"
CONTEXT_PKG_PATH = "context"

# Declaration order of the packages every generated file imports.
REQUIRED_PKG_PATHS = (
    RPCX_SERVER_PKG_PATH,
    RPCX_CLIENT_PKG_PATH,
    RPCX_PROTOCOL_PKG_PATH,
    CONTEXT_PKG_PATH,
)

# Values of `protocol.SerializeType` in rpcx.
SERIALIZE_TYPES = ("SerializeNone", "JSON", "ProtoBuffer", "MsgPack", "Thrift")
DEFAULT_SERIALIZE_TYPE = "ProtoBuffer"

# Annotation ids declared in go-capnp's `go.capnp`.
GO_PACKAGE_ANNOTATION_ID = 0xBEA97F1023792BE0
GO_IMPORT_ANNOTATION_ID = 0xE130B601260E44B5


class CapnpElementType:
    """Types of capnproto nodes."""

    FILE = "file"
    STRUCT = "struct"
    ENUM = "enum"
    INTERFACE = "interface"
    CONST = "const"
    ANNOTATION = "annotation"


ModuleRegistryType = dict[int, tuple[str, ModuleType]]
