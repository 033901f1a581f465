import pytest
from pydantic import ValidationError

from protocol.message_schema import (
    Capabilities,
    ErrorCode,
    InitializeResult,
    ProtocolError,
    RpcError,
    RpcRequest,
    RpcResponse,
    ServerInfo,
    ToolParameter,
    ToolResult,
    build_input_schema,
    validate_tool_arguments,
)


def test_transport_and_domain_codes_do_not_collide() -> None:
    transport = {c for c in ErrorCode if RpcError(code=c, message="").is_transport_error}
    domain = set(ErrorCode) - transport
    assert ErrorCode.INTERNAL_ERROR in transport
    assert ErrorCode.INVALID_TOOL_PARAMS in domain
    assert not {int(c) for c in transport} & {int(c) for c in domain}


def test_request_to_dict_keeps_absent_id_absent() -> None:
    assert "id" not in RpcRequest(method="ping").to_dict()
    assert RpcRequest(method="ping", id=None).to_dict()["id"] is None
    assert RpcRequest(method="ping", id=7).to_dict() == {"jsonrpc": "2.0", "method": "ping", "id": 7}


@pytest.mark.parametrize("payload", [
    [],
    {"params": {}},
    {"method": 5},
    {"method": "ping", "jsonrpc": "1.0"},
    {"method": "ping", "id": True},
    {"method": "ping", "id": 1.5},
])
def test_from_dict_rejects_bad_envelopes(payload) -> None:
    with pytest.raises(ProtocolError) as exc:
        RpcRequest.from_dict(payload)
    assert exc.value.code == ErrorCode.INVALID_REQUEST


def test_response_requires_exactly_one_of_result_or_error() -> None:
    with pytest.raises(ValidationError):
        RpcResponse(id=1)
    with pytest.raises(ValidationError):
        RpcResponse(result={}, error=RpcError(code=-32603, message="x"), id=1)

    assert RpcResponse.success(None, 1).to_dict() == {"jsonrpc": "2.0", "result": None, "id": 1}
    failed = RpcResponse.failure(RpcError(code=-32001, message="nope", data={"tool": "x"}), "a")
    assert failed.to_dict()["error"] == {"code": -32001, "message": "nope", "data": {"tool": "x"}}


def test_capabilities_serialize_as_empty_objects() -> None:
    caps = Capabilities(tools=True, logging=True)
    assert caps.to_dict() == {"tools": {}, "logging": {}}
    assert Capabilities.from_dict({"tools": {}}) == Capabilities(tools=True)


def test_initialize_result_wire_names() -> None:
    result = InitializeResult(server_info=ServerInfo(name="s", version="2"))
    wire = result.to_dict()
    assert wire["protocolVersion"] == "2024-11-05"
    assert wire["serverInfo"] == {"name": "s", "version": "2"}
    assert InitializeResult.from_dict(wire) == result


def test_build_input_schema_from_parameters() -> None:
    schema = build_input_schema([
        ToolParameter(name="path", type="string", description="p"),
        ToolParameter(name="limit", type="integer", required=False, default=10),
    ])
    assert schema["required"] == ["path"]
    assert schema["properties"]["limit"] == {"type": "integer", "description": "", "default": 10}


def test_tool_result_wire_shape() -> None:
    assert ToolResult.text("hi").to_dict() == {"content": [{"type": "text", "text": "hi"}]}
    assert ToolResult.error("bad").to_dict()["isError"] is True
    parsed = ToolResult.from_dict({"content": [{"type": "json", "data": [1, 2]}], "isError": False})
    assert parsed.content[0].data == [1, 2]


SCHEMA = {
    "type": "object",
    "properties": {
        "path": {"type": "string"},
        "count": {"type": "integer"},
        "ratio": {"type": "number"},
        "flag": {"type": "boolean"},
    },
    "required": ["path"],
}


def test_validate_accepts_extra_fields_and_ints_as_numbers() -> None:
    validate_tool_arguments({"path": "a", "ratio": 3, "unknown": object()}, SCHEMA)


@pytest.mark.parametrize("arguments", [
    "not an object",
    {"count": 1},
    {"path": 1},
    {"path": "a", "count": True},
    {"path": "a", "count": 1.5},
    {"path": "a", "ratio": False},
    {"path": "a", "flag": "yes"},
])
def test_validate_rejects_bad_arguments(arguments) -> None:
    with pytest.raises(ProtocolError) as exc:
        validate_tool_arguments(arguments, SCHEMA)
    assert exc.value.code == ErrorCode.INVALID_TOOL_PARAMS
