# llm/backend_client.py

from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests
from pydantic import ValidationError

from llm.chat_schema import ChatMessage, ChatResult, CompletionConfig
from protocol.message_schema import ToolDefinition
from utils.logger import logger

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_TIMEOUT = 300.0


class LlmErrorCode(str, Enum):
    CONNECTION_FAILED = "connection_failed"
    REQUEST_TIMEOUT = "request_timeout"
    INVALID_RESPONSE = "invalid_response"
    SERVER_ERROR = "server_error"


class LlmError(Exception):
    def __init__(self, code: LlmErrorCode, message: str, http_status: int = 0):
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status

    def __str__(self) -> str:
        status = f" (HTTP {self.http_status})" if self.http_status else ""
        return f"{self.code.value}: {self.message}{status}"


class ChatBackend(Protocol):
    """What the agents and the coordinator need from a model server."""

    def chat_with_tools(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolDefinition],
        config: Optional[CompletionConfig] = None,
    ) -> ChatResult:
        ...

    def complete(self, prompt: str, config: Optional[CompletionConfig] = None) -> str:
        ...


class LlmClient:
    """
    Blocking client for a llama.cpp / OpenAI compatible HTTP server.

    Every failure (connection refused, timeout, non-200, malformed body)
    is raised as LlmError; nothing is retried here.
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    # ─── transport ───────────────────────────────────────────

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=body, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise LlmError(LlmErrorCode.REQUEST_TIMEOUT, f"Request to {path} timed out: {e}")
        except requests.exceptions.RequestException as e:
            raise LlmError(LlmErrorCode.CONNECTION_FAILED, f"Failed to connect to server: {e}")

        if response.status_code != 200:
            raise LlmError(
                LlmErrorCode.SERVER_ERROR,
                f"{path} failed: {response.text[:200]}",
                response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise LlmError(LlmErrorCode.INVALID_RESPONSE, f"Non-JSON body from {path}: {e}", response.status_code)
        if not isinstance(data, dict):
            raise LlmError(LlmErrorCode.INVALID_RESPONSE, f"Unexpected body from {path}", response.status_code)
        return data

    # ─── endpoints ───────────────────────────────────────────

    def health_check(self) -> bool:
        data = self._request("GET", "/health")
        return data.get("status") == "ok"

    def complete(self, prompt: str, config: Optional[CompletionConfig] = None) -> str:
        body = (config or CompletionConfig()).to_wire()
        body.update({"prompt": prompt, "stream": False})
        data = self._request("POST", "/completion", body)

        choices = data.get("choices") or []
        if choices and isinstance(choices[0], dict) and "text" in choices[0]:
            return choices[0]["text"] or ""
        # llama-server answers /completion with a bare "content" field
        if "content" in data:
            return data["content"] or ""
        raise LlmError(LlmErrorCode.INVALID_RESPONSE, "Completion response has no text")

    def chat(self, messages: Sequence[ChatMessage], config: Optional[CompletionConfig] = None) -> ChatResult:
        return self.chat_with_tools(messages, [], config)

    def chat_with_tools(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolDefinition],
        config: Optional[CompletionConfig] = None,
    ) -> ChatResult:
        body = (config or CompletionConfig()).to_wire()
        body["stream"] = False
        body["messages"] = [m.to_wire() for m in messages]
        if tools:
            body["tools"] = [t.to_function_schema() for t in tools]
            body["tool_choice"] = "auto"

        logger.debug(f"[LlmClient] chat with {len(messages)} message(s), {len(tools)} tool(s)")
        data = self._request("POST", "/v1/chat/completions", body)
        return self._parse_chat(data)

    def tokenize(self, content: str) -> List[int]:
        data = self._request("POST", "/tokenize", {"content": content})
        return list(data.get("tokens") or [])

    def detokenize(self, tokens: Sequence[int]) -> str:
        data = self._request("POST", "/detokenize", {"tokens": list(tokens)})
        return data.get("content") or ""

    @staticmethod
    def _parse_chat(data: Dict[str, Any]) -> ChatResult:
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            raise LlmError(LlmErrorCode.INVALID_RESPONSE, "Chat completion returned no choices")
        choice = choices[0]
        message = choice.get("message") or {}
        try:
            return ChatResult(
                content=message.get("content"),
                tool_calls=message.get("tool_calls") or [],
                finish_reason=choice.get("finish_reason"),
            )
        except ValidationError as e:
            raise LlmError(LlmErrorCode.INVALID_RESPONSE, f"Malformed chat message: {e.error_count()} error(s)")
