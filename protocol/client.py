# protocol/client.py

import itertools
import threading
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from protocol.message_schema import (
    PROTOCOL_VERSION,
    Capabilities,
    ErrorCode,
    InitializeResult,
    ProtocolError,
    RpcRequest,
    RpcResponse,
    ToolDefinition,
    ToolResult,
)
from utils.logger import logger

# request ids are unique across every client in the process
_id_counter = itertools.count(1)
_id_lock = threading.Lock()


def next_request_id() -> int:
    with _id_lock:
        return next(_id_counter)


class ProtocolClient:
    """
    Synchronous caller for a ToolServer: one outstanding request at a time.

    Dispatcher errors are raised as ProtocolError exactly as received; the
    client never retries.
    """

    def __init__(self, server):
        # anything with handle_request(dict) -> dict will do
        self._send_fn: Callable[[Dict[str, Any]], Dict[str, Any]] = server.handle_request
        self.server_result: Optional[InitializeResult] = None

    @property
    def is_initialized(self) -> bool:
        return self.server_result is not None

    @property
    def server_capabilities(self) -> Optional[Capabilities]:
        return self.server_result.capabilities if self.server_result else None

    def initialize(self, client_name: str, client_version: str) -> InitializeResult:
        if self.server_result is not None:
            raise ProtocolError(ErrorCode.INVALID_REQUEST, "Client already initialized")
        params = {
            "protocolVersion": PROTOCOL_VERSION,
            "clientInfo": {"name": client_name, "version": client_version},
            "capabilities": Capabilities(tools=True).to_dict(),
        }
        result = self._send("initialize", params)
        try:
            self.server_result = InitializeResult.from_dict(result)
        except (AttributeError, ValidationError) as e:
            raise ProtocolError(ErrorCode.INTERNAL_ERROR, f"Failed to parse initialize result: {e}")
        return self.server_result

    def list_tools(self) -> List[ToolDefinition]:
        result = self._send("tools/list", {})
        try:
            return [ToolDefinition.model_validate(tool) for tool in result.get("tools", [])]
        except (AttributeError, ValidationError) as e:
            raise ProtocolError(ErrorCode.INTERNAL_ERROR, f"Failed to parse tools list: {e}")

    def call_tool(self, name: str, arguments: Any) -> ToolResult:
        result = self._send("tools/call", {"name": name, "arguments": arguments})
        try:
            return ToolResult.from_dict(result)
        except (AttributeError, ValidationError) as e:
            raise ProtocolError(ErrorCode.INTERNAL_ERROR, f"Failed to parse tool result: {e}")

    def ping(self) -> None:
        self._send("ping", {})

    def _send(self, method: str, params: Dict[str, Any]) -> Any:
        request = RpcRequest(method=method, params=params, id=next_request_id())
        logger.debug(f"[ProtocolClient] -> {method} id={request.id}")
        raw = self._send_fn(request.to_dict())
        try:
            response = RpcResponse.model_validate(raw)
        except ValidationError as e:
            raise ProtocolError(ErrorCode.INTERNAL_ERROR, f"Invalid response: {e.error_count()} error(s)")
        if response.error is not None:
            raise ProtocolError.from_rpc_error(response.error)
        return response.result
