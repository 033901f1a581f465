# llm/chat_schema.py

import json
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallFunction(BaseModel):
    name: str
    arguments: Any = Field(default_factory=dict)

    @field_validator("arguments", mode="before")
    @classmethod
    def _decode_arguments(cls, value: Any) -> Any:
        # OpenAI-style servers send arguments as a JSON string
        if isinstance(value, str):
            if not value.strip():
                return {}
            try:
                return json.loads(value)
            except ValueError:
                # left raw; the dispatcher rejects it as invalid arguments
                return value
        return value


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


class ToolCall(BaseModel):
    id: str = Field(default_factory=_new_call_id)
    type: str = "function"
    function: ToolCallFunction

    @field_validator("id", mode="before")
    @classmethod
    def _fill_missing_id(cls, value: Any) -> Any:
        # some llama.cpp builds omit the id; tool replies still need one to pair with
        if value is None or value == "":
            return _new_call_id()
        return value

    @property
    def name(self) -> str:
        return self.function.name

    def to_wire(self) -> Dict[str, Any]:
        arguments = self.function.arguments
        return {
            "id": self.id,
            "type": self.type,
            "function": {
                "name": self.function.name,
                "arguments": arguments if isinstance(arguments, str) else json.dumps(arguments),
            },
        }


class ChatMessage(BaseModel):
    role: ChatRole
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_call_id: Optional[str] = None

    @field_validator("content", mode="before")
    @classmethod
    def _null_content(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_wire(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            out["tool_calls"] = [call.to_wire() for call in self.tool_calls]
        if self.tool_call_id:
            out["tool_call_id"] = self.tool_call_id
        return out

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role=ChatRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role=ChatRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: Optional[List[ToolCall]] = None) -> "ChatMessage":
        return cls(role=ChatRole.ASSISTANT, content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> "ChatMessage":
        return cls(role=ChatRole.TOOL, content=content, tool_call_id=tool_call_id)


class CompletionConfig(BaseModel):
    """Model-call parameters, passed through to the backend untouched."""

    model_config = ConfigDict(extra="allow", frozen=True)

    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    max_tokens: Optional[int] = None
    min_tokens: Optional[int] = None
    repeat_penalty: Optional[float] = None
    repeat_last_n: Optional[int] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    seed: Optional[int] = None
    stop: List[str] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        out = self.model_dump(exclude_none=True)
        if not out.get("stop"):
            out.pop("stop", None)
        return out


class ChatResult(BaseModel):
    """Either final assistant content or a batch of tool-call requests."""

    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: Optional[str] = None

    @field_validator("content", mode="before")
    @classmethod
    def _null_content(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)
