import pytest

from protocol.client import ProtocolClient, next_request_id
from protocol.message_schema import ErrorCode, ProtocolError, ToolResult
from protocol.server import ToolServer


class RecordingServer:
    """Wraps a ToolServer and keeps every request it sees."""

    def __init__(self, server):
        self.server = server
        self.requests = []

    def handle_request(self, payload):
        self.requests.append(payload)
        return self.server.handle_request(payload)


def _echo_server():
    server = ToolServer("echo-server", "1.2.3")
    server.register_tool(
        "echo",
        "echo",
        {"type": "object", "properties": {"message": {"type": "string"}}, "required": ["message"]},
        lambda args: ToolResult.text(args["message"]),
    )
    return server


def test_initialize_then_use() -> None:
    client = ProtocolClient(_echo_server())
    result = client.initialize("tests", "0.1")

    assert client.is_initialized
    assert result.server_info.name == "echo-server"
    assert client.server_capabilities.tools is True
    assert [t.name for t in client.list_tools()] == ["echo"]
    assert client.call_tool("echo", {"message": "hi"}).content[0].text == "hi"
    client.ping()


def test_second_initialize_is_rejected_without_contacting_server() -> None:
    recorder = RecordingServer(_echo_server())
    client = ProtocolClient(recorder)
    client.initialize("tests", "0.1")

    with pytest.raises(ProtocolError) as exc:
        client.initialize("tests", "0.1")
    assert exc.value.code == ErrorCode.INVALID_REQUEST
    assert len(recorder.requests) == 1


def test_errors_surface_as_received() -> None:
    client = ProtocolClient(_echo_server())
    with pytest.raises(ProtocolError) as exc:
        client.list_tools()
    assert exc.value.code == ErrorCode.SERVER_NOT_INITIALIZED

    client.initialize("tests", "0.1")
    with pytest.raises(ProtocolError) as exc:
        client.call_tool("echo", {})
    assert exc.value.code == ErrorCode.INVALID_TOOL_PARAMS


def test_request_ids_increase_across_clients() -> None:
    first = RecordingServer(_echo_server())
    second = RecordingServer(_echo_server())
    ProtocolClient(first).initialize("a", "1")
    ProtocolClient(second).initialize("b", "1")
    later = next_request_id()

    ids = [first.requests[0]["id"], second.requests[0]["id"], later]
    assert ids == sorted(ids)
    assert len(set(ids)) == 3


def test_malformed_response_is_internal_error() -> None:
    class Broken:
        def handle_request(self, payload):
            return {"jsonrpc": "2.0", "id": payload["id"]}

    with pytest.raises(ProtocolError) as exc:
        ProtocolClient(Broken()).initialize("x", "1")
    assert exc.value.code == ErrorCode.INTERNAL_ERROR
