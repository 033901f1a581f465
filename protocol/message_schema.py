# protocol/message_schema.py

"""
JSON-RPC 2.0 envelope and the MCP payload types carried inside it.

Everything here is data plus validation. The dispatcher (protocol/server.py)
and the client (protocol/client.py) are the only places that give these
types behaviour.
"""

import json
from enum import IntEnum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    ValidationError,
    model_validator,
)

PROTOCOL_VERSION = "2024-11-05"

RequestId = Union[StrictStr, StrictInt, None]


class ErrorCode(IntEnum):
    # transport level
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # domain level
    TOOL_NOT_FOUND = -32001
    TOOL_EXECUTION_FAILED = -32002
    INVALID_TOOL_PARAMS = -32003
    SERVER_NOT_INITIALIZED = -32004


TRANSPORT_ERRORS = frozenset({
    ErrorCode.PARSE_ERROR,
    ErrorCode.INVALID_REQUEST,
    ErrorCode.METHOD_NOT_FOUND,
    ErrorCode.INVALID_PARAMS,
    ErrorCode.INTERNAL_ERROR,
})


class RpcError(BaseModel):
    code: int = Field(..., description="JSON-RPC or MCP error code")
    message: str = Field(..., description="Human readable message")
    data: Optional[Any] = Field(default=None, description="Optional structured detail")

    @property
    def is_transport_error(self) -> bool:
        return self.code in TRANSPORT_ERRORS

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


class ProtocolError(Exception):
    """Raised wherever a Python caller meets an RpcError."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message)
        self.error = RpcError(code=int(code), message=message, data=data)

    @classmethod
    def from_rpc_error(cls, error: RpcError) -> "ProtocolError":
        return cls(error.code, error.message, error.data)

    @property
    def code(self) -> int:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.message

    def __repr__(self) -> str:
        return f"ProtocolError(code={self.code}, message={self.message!r})"


class RpcRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    jsonrpc: Literal["2.0"] = "2.0"
    method: StrictStr
    params: Optional[Any] = None
    id: RequestId = None

    @property
    def is_notification(self) -> bool:
        # an explicit null id is still a request; only a missing id is not
        return "id" not in self.model_fields_set

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.params is not None:
            out["params"] = self.params
        if not self.is_notification:
            out["id"] = self.id
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, payload: Any) -> "RpcRequest":
        """Validate a decoded request, raising ProtocolError(INVALID_REQUEST)."""
        if not isinstance(payload, dict):
            raise ProtocolError(ErrorCode.INVALID_REQUEST, "Request must be a JSON object")
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            raise ProtocolError(
                ErrorCode.INVALID_REQUEST,
                f"Invalid request: bad field(s) {', '.join(fields) or 'unknown'}",
            )


class RpcResponse(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    result: Optional[Any] = None
    error: Optional[RpcError] = None
    id: RequestId = None

    @model_validator(mode="after")
    def _result_xor_error(self) -> "RpcResponse":
        has_result = "result" in self.model_fields_set
        has_error = "error" in self.model_fields_set and self.error is not None
        if has_result == has_error:
            raise ValueError("response must carry exactly one of result or error")
        return self

    @classmethod
    def success(cls, result: Any, request_id: RequestId = None) -> "RpcResponse":
        return cls(result=result, id=request_id)

    @classmethod
    def failure(cls, error: RpcError, request_id: RequestId = None) -> "RpcResponse":
        return cls(error=error, id=request_id)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.error is not None:
            out["error"] = self.error.to_dict()
        else:
            out["result"] = self.result
        out["id"] = self.id
        return out


# ─── MCP handshake ───────────────────────────────────────────


class ServerInfo(BaseModel):
    name: str
    version: str


class ClientInfo(BaseModel):
    name: str = "unknown"
    version: str = "unknown"


class Capabilities(BaseModel):
    tools: bool = True
    prompts: bool = False
    resources: bool = False
    logging: bool = False

    def to_dict(self) -> Dict[str, Any]:
        # MCP advertises a capability as an (empty) object under its name
        return {name: {} for name, enabled in self.model_dump().items() if enabled}

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "Capabilities":
        payload = payload or {}
        return cls(**{name: name in payload for name in cls.model_fields})


class InitializeParams(BaseModel):
    protocol_version: str = Field(default=PROTOCOL_VERSION, alias="protocolVersion")
    client_info: ClientInfo = Field(default_factory=ClientInfo, alias="clientInfo")
    capabilities: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class InitializeResult(BaseModel):
    protocol_version: str = PROTOCOL_VERSION
    server_info: ServerInfo
    capabilities: Capabilities = Field(default_factory=Capabilities)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocolVersion": self.protocol_version,
            "serverInfo": self.server_info.model_dump(),
            "capabilities": self.capabilities.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "InitializeResult":
        info = payload.get("serverInfo") or {}
        return cls(
            protocol_version=payload.get("protocolVersion", PROTOCOL_VERSION),
            server_info=ServerInfo(
                name=info.get("name", "unknown"),
                version=info.get("version", "unknown"),
            ),
            capabilities=Capabilities.from_dict(payload.get("capabilities")),
        )


# ─── Tools ───────────────────────────────────────────────────

ParamType = Literal["string", "number", "integer", "boolean", "object", "array", "null"]


class ToolParameter(BaseModel):
    name: str
    type: ParamType
    description: str = ""
    required: bool = True
    default: Optional[Any] = None
    enum: Optional[List[Any]] = None

    def to_json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": self.type, "description": self.description}
        if self.default is not None:
            schema["default"] = self.default
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        return schema


def build_input_schema(parameters: List[ToolParameter]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {p.name: p.to_json_schema() for p in parameters},
        "required": [p.name for p in parameters if p.required],
    }


class ToolDefinition(BaseModel):
    name: str
    description: str
    input_schema: Dict[str, Any] = Field(default_factory=dict, alias="inputSchema")

    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    def to_function_schema(self) -> Dict[str, Any]:
        """OpenAI style function declaration consumed by chat backends."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class DataContent(BaseModel):
    type: Literal["json"] = "json"
    data: Any


ContentBlock = Union[TextContent, DataContent]


class ToolResult(BaseModel):
    content: List[ContentBlock] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def text(cls, text: str, is_error: bool = False) -> "ToolResult":
        return cls(content=[TextContent(text=text)], is_error=is_error)

    @classmethod
    def structured(cls, data: Any, is_error: bool = False) -> "ToolResult":
        return cls(content=[DataContent(data=data)], is_error=is_error)

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        return cls.text(message, is_error=True)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"content": [block.model_dump() for block in self.content]}
        if self.is_error:
            out["isError"] = True
        return out

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ToolResult":
        return cls.model_validate({
            "content": payload.get("content") or [],
            "isError": bool(payload.get("isError", False)),
        })


class CallToolParams(BaseModel):
    name: StrictStr
    arguments: Any = Field(default_factory=dict)


# ─── Argument validation ─────────────────────────────────────


def _matches_type(value: Any, expected: str) -> bool:
    # bool is a subclass of int in Python, JSON keeps them apart
    if expected == "string":
        return isinstance(value, str)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "object":
        return isinstance(value, dict)
    if expected == "array":
        return isinstance(value, list)
    if expected == "null":
        return value is None
    return True


def validate_tool_arguments(arguments: Any, schema: Dict[str, Any]) -> None:
    """
    Check arguments against a tool's input schema.

    Object shape, required fields, and the primitive type of every field
    that appears in both the arguments and the schema. Extra fields are
    ignored. Raises ProtocolError(INVALID_TOOL_PARAMS) on the first problem.
    """
    if not isinstance(arguments, dict):
        raise ProtocolError(ErrorCode.INVALID_TOOL_PARAMS, "Tool parameters must be an object")

    for field in schema.get("required") or []:
        if field not in arguments:
            raise ProtocolError(
                ErrorCode.INVALID_TOOL_PARAMS,
                f"Missing required parameter: {field}",
                {"parameter": field},
            )

    properties = schema.get("properties") or {}
    for field, value in arguments.items():
        expected = (properties.get(field) or {}).get("type")
        if expected and not _matches_type(value, expected):
            raise ProtocolError(
                ErrorCode.INVALID_TOOL_PARAMS,
                f"Invalid type for parameter '{field}': expected {expected}",
                {"parameter": field, "expected": expected},
            )
