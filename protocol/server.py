# protocol/server.py

import json
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from protocol.message_schema import (
    PROTOCOL_VERSION,
    CallToolParams,
    Capabilities,
    ClientInfo,
    ErrorCode,
    InitializeParams,
    InitializeResult,
    ProtocolError,
    RpcError,
    RpcRequest,
    RpcResponse,
    ServerInfo,
    ToolDefinition,
    ToolParameter,
    ToolResult,
    build_input_schema,
    validate_tool_arguments,
)
from utils.logger import logger

ToolHandler = Callable[[Dict[str, Any]], ToolResult]
ToolSchema = Union[Dict[str, Any], Sequence[ToolParameter]]


class ToolServer:
    """
    In-process tool registry and JSON-RPC dispatcher.

    Supported methods: initialize, tools/list, tools/call, ping.
    tools/list and tools/call fail with SERVER_NOT_INITIALIZED until an
    initialize request has succeeded; there is no way back to the
    uninitialized state.
    """

    def __init__(self, name: str, version: str = "1.0.0", capabilities: Optional[Capabilities] = None):
        self.server_info = ServerInfo(name=name, version=version)
        self.capabilities = capabilities or Capabilities()
        self.client_info: Optional[ClientInfo] = None

        self._tools: Dict[str, ToolDefinition] = {}
        self._handlers: Dict[str, ToolHandler] = {}
        self._initialized = False
        self._lock = threading.Lock()

        self._methods: Dict[str, Callable[[Any], Any]] = {
            "initialize": self._handle_initialize,
            "tools/list": self._handle_list_tools,
            "tools/call": self._handle_call_tool,
            "ping": self._handle_ping,
        }

    # ─── registration ────────────────────────────────────────

    def register_tool(self, name: str, description: str, schema: ToolSchema, handler: ToolHandler) -> None:
        """Store or replace a tool. The last registration for a name wins."""
        if isinstance(schema, dict):
            input_schema = schema
        else:
            input_schema = build_input_schema(list(schema))
        tool = ToolDefinition(name=name, description=description, input_schema=input_schema)
        with self._lock:
            replaced = name in self._tools
            self._tools[name] = tool
            self._handlers[name] = handler
        logger.debug(f"[ToolServer:{self.server_info.name}] {'Replaced' if replaced else 'Registered'} tool {name}")

    def unregister_tool(self, name: str) -> None:
        with self._lock:
            self._tools.pop(name, None)
            self._handlers.pop(name, None)

    def list_tool_names(self) -> List[str]:
        with self._lock:
            return list(self._tools)

    @property
    def is_initialized(self) -> bool:
        with self._lock:
            return self._initialized

    # ─── operations ──────────────────────────────────────────

    def initialize(self, params: InitializeParams) -> InitializeResult:
        with self._lock:
            self.client_info = params.client_info
            self._initialized = True
        logger.info(
            f"[ToolServer:{self.server_info.name}] Initialized by "
            f"{params.client_info.name} {params.client_info.version}"
        )
        return InitializeResult(
            protocol_version=PROTOCOL_VERSION,
            server_info=self.server_info,
            capabilities=self.capabilities,
        )

    def list_tools(self) -> List[ToolDefinition]:
        with self._lock:
            self._require_initialized()
            return list(self._tools.values())

    def call_tool(self, name: str, arguments: Any) -> ToolResult:
        """
        Validate and run one tool.

        Every failure is raised as ProtocolError; a handler that raises
        anything else is reported as TOOL_EXECUTION_FAILED.
        """
        with self._lock:
            self._require_initialized()
            tool = self._tools.get(name)
            handler = self._handlers.get(name)
        if tool is None or handler is None:
            raise ProtocolError(ErrorCode.TOOL_NOT_FOUND, f"Tool not found: {name}", {"tool": name})

        validate_tool_arguments(arguments, tool.input_schema)

        # the handler runs outside the lock
        try:
            result = handler(arguments)
        except ProtocolError:
            raise
        except Exception as e:
            logger.exception(f"[ToolServer:{self.server_info.name}] Tool {name} raised")
            raise ProtocolError(
                ErrorCode.TOOL_EXECUTION_FAILED,
                f"Tool execution failed: {e}",
                {"tool": name},
            )
        if not isinstance(result, ToolResult):
            raise ProtocolError(
                ErrorCode.TOOL_EXECUTION_FAILED,
                f"Tool execution failed: {name} returned {type(result).__name__}, expected ToolResult",
                {"tool": name},
            )
        # results travel as JSON; a payload json cannot encode is a failed call
        try:
            json.dumps(result.to_dict())
        except (TypeError, ValueError) as e:
            raise ProtocolError(
                ErrorCode.TOOL_EXECUTION_FAILED,
                f"Tool execution failed: {name} returned a result that is not JSON serializable ({e})",
                {"tool": name},
            )
        return result

    def get_function_schemas(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [tool.to_function_schema() for tool in self._tools.values()]

    def _require_initialized(self) -> None:
        # caller holds the lock
        if not self._initialized:
            raise ProtocolError(
                ErrorCode.SERVER_NOT_INITIALIZED,
                "Server not initialized. Call 'initialize' first.",
            )

    # ─── JSON-RPC boundary ───────────────────────────────────

    def handle_request(self, payload: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
        """
        Answer one JSON-RPC request. Never raises.

        payload may be raw JSON text or an already decoded object. Requests
        that cannot be parsed are answered with a null id.
        """
        # 1) decode
        if isinstance(payload, (str, bytes, bytearray)):
            try:
                payload = json.loads(payload)
            except (ValueError, UnicodeDecodeError) as e:
                logger.warning(f"[ToolServer:{self.server_info.name}] Unparseable request: {e}")
                error = RpcError(code=ErrorCode.PARSE_ERROR, message=f"JSON parse error: {e}")
                return RpcResponse.failure(error).to_dict()

        # 2) envelope
        try:
            request = RpcRequest.from_dict(payload)
        except ProtocolError as e:
            return RpcResponse.failure(e.error).to_dict()

        logger.debug(f"[ToolServer:{self.server_info.name}] <- {request.method} id={request.id}")

        # 3) route
        method = self._methods.get(request.method)
        try:
            if method is None:
                raise ProtocolError(ErrorCode.METHOD_NOT_FOUND, f"Method not found: {request.method}")
            result = method(request.params)
        except ProtocolError as e:
            return RpcResponse.failure(e.error, request.id).to_dict()
        except Exception as e:
            logger.exception(f"[ToolServer:{self.server_info.name}] Internal error in {request.method}")
            error = RpcError(code=ErrorCode.INTERNAL_ERROR, message=f"Internal error: {e}")
            return RpcResponse.failure(error, request.id).to_dict()

        return RpcResponse.success(result, request.id).to_dict()

    def _handle_initialize(self, params: Any) -> Dict[str, Any]:
        if not isinstance(params, dict):
            raise ProtocolError(ErrorCode.INVALID_PARAMS, "Initialize requires parameters")
        try:
            init_params = InitializeParams.model_validate(params)
        except ValidationError as e:
            raise ProtocolError(ErrorCode.INVALID_PARAMS, f"Invalid initialize params: {e.error_count()} error(s)")
        return self.initialize(init_params).to_dict()

    def _handle_list_tools(self, params: Any) -> Dict[str, Any]:
        return {"tools": [tool.to_dict() for tool in self.list_tools()]}

    def _handle_call_tool(self, params: Any) -> Dict[str, Any]:
        # not-initialized wins over a malformed params object
        with self._lock:
            self._require_initialized()
        if not isinstance(params, dict):
            raise ProtocolError(ErrorCode.INVALID_PARAMS, "Tool call requires parameters")
        try:
            call = CallToolParams.model_validate(params)
        except ValidationError:
            raise ProtocolError(ErrorCode.INVALID_PARAMS, "Tool call requires a string 'name'")
        return self.call_tool(call.name, call.arguments).to_dict()

    def _handle_ping(self, params: Any) -> Dict[str, Any]:
        return {}
