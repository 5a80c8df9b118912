"""Emission functions for the declaration families of the generated Go code.

Each function renders one declaration family from a record and knows nothing
about schemas or symbol tables. Go code is indented with tabs, as gofmt does.
"""

from __future__ import annotations

from rpcx_stub_generator.writer_dto import Fragment, FragmentRole, MethodRecord, ServiceRecord

SECTION_RULE = "// ======================================================"


def _lines(*lines: str) -> str:
    return "\n".join(lines)


def provenance(file_name: str) -> Fragment:
    """The comment that names the schema a file was generated from."""
    return Fragment(
        FragmentRole.PROVENANCE,
        _lines(
            "// This following code was generated by rpcx",
            f"// Generated from {file_name}",
        ),
    )


def server_skeleton(service: ServiceRecord) -> Fragment:
    """The implementation type of a service and the function that serves it."""
    name = service.name
    return Fragment(
        FragmentRole.SERVER_SKELETON,
        _lines(
            "//================== server skeleton===================",
            f"type {name}Impl struct{{}}",
            "",
            f"// ServeFor{name} starts a server only registers one service.",
            "// You can register more services and only start one server.",
            "// It blocks until the application exits.",
            f"func ServeFor{name}(addr string) error {{",
            "\ts := server.NewServer()",
            f'\ts.RegisterName("{name}", new({name}Impl), "")',
            '\treturn s.Serve("tcp", addr)',
            "}",
        ),
    )


def server_method(method: MethodRecord) -> Fragment:
    """A server method whose body only fills in an empty reply."""
    return Fragment(
        FragmentRole.SERVER_METHOD,
        _lines(
            f"// {method.name} is server rpc method as defined",
            f"func (s *{method.service.name}Impl) {method.name}"
            f"(ctx context.Context, args *{method.input_type}, reply *{method.output_type}) (err error) {{",
            "\t// TODO: add business logics",
            "",
            "\t// TODO: setting return values",
            f"\t*reply = {method.output_type}{{}}",
            "",
            "\treturn nil",
            "}",
        ),
    )


def client_wrapper(service: ServiceRecord, serialize_type: str) -> Fragment:
    """The XClient wrapper type, its constructor and the XClient factory of a service.

    Args:
        service (ServiceRecord): The service.
        serialize_type (str): Name of the `protocol.SerializeType` the factory configures.
    """
    name = service.name
    return Fragment(
        FragmentRole.CLIENT_WRAPPER,
        _lines(
            "//================== client stub===================",
            f"// {name}Client is a client wrapped XClient.",
            f"type {name}Client struct {{",
            "\txclient client.XClient",
            "}",
            "",
            f"// New{name}Client wraps a XClient as {name}Client.",
            f"// You can pass a shared XClient object created by NewXClientFor{name}.",
            f"func New{name}Client(xclient client.XClient) *{name}Client {{",
            f"\treturn &{name}Client{{xclient: xclient}}",
            "}",
            "",
            f"// NewXClientFor{name} creates a XClient.",
            "// You can configure this client with more options such as etcd registry, "
            "serialize type, select algorithm and fail mode.",
            f"func NewXClientFor{name}(addr string) client.XClient {{",
            '\td := client.NewPeer2PeerDiscovery("tcp@"+addr, "")',
            "\topt := client.DefaultOption",
            f"\topt.SerializeType = protocol.{serialize_type}",
            "",
            f'\txclient := client.NewXClient("{name}", client.Failtry, client.RoundRobin, d, opt)',
            "\treturn xclient",
            "}",
            "",
            SECTION_RULE,
        ),
    )


def client_method(method: MethodRecord) -> Fragment:
    """A client method that calls the remote method through the wrapped XClient."""
    return Fragment(
        FragmentRole.CLIENT_METHOD,
        _lines(
            f"// {method.name} is client rpc method as defined",
            f"func (c *{method.service.name}Client) {method.name}"
            f"(ctx context.Context, args *{method.input_type}) (reply *{method.output_type}, err error) {{",
            f"\treply = &{method.output_type}{{}}",
            f'\terr = c.xclient.Call(ctx, "{method.raw_name}", args, reply)',
            "\treturn reply, err",
            "}",
        ),
    )


def one_client_wrapper(service: ServiceRecord) -> Fragment:
    """The OneClient wrapper type of a service and its constructor.

    The wrapper stores the name the service is registered under by `ServeFor<Service>`.
    """
    name = service.name
    return Fragment(
        FragmentRole.ONE_CLIENT_WRAPPER,
        _lines(
            "//================== oneclient stub===================",
            f"// {name}OneClient is a client wrapped oneClient.",
            f"type {name}OneClient struct {{",
            "\tserviceName string",
            "\toneclient   client.OneClient",
            "}",
            "",
            f"// New{name}OneClient wraps a OneClient as {name}OneClient.",
            "// You can pass a shared OneClient object that serves several services.",
            f"func New{name}OneClient(oneclient client.OneClient) *{name}OneClient {{",
            f"\treturn &{name}OneClient{{",
            f'\t\tserviceName: "{name}",',
            "\t\toneclient:   oneclient,",
            "\t}",
            "}",
            "",
            SECTION_RULE,
        ),
    )


def one_client_method(method: MethodRecord) -> Fragment:
    """A client method that calls the remote method through the wrapped OneClient."""
    return Fragment(
        FragmentRole.ONE_CLIENT_METHOD,
        _lines(
            f"// {method.name} is client rpc method as defined",
            f"func (c *{method.service.name}OneClient) {method.name}"
            f"(ctx context.Context, args *{method.input_type}) (reply *{method.output_type}, err error) {{",
            f"\treply = &{method.output_type}{{}}",
            f'\terr = c.oneclient.Call(ctx, c.serviceName, "{method.raw_name}", args, reply)',
            "\treturn reply, err",
            "}",
        ),
    )
