# agents/agent.py

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from llm.backend_client import ChatBackend, LlmError
from llm.chat_schema import ChatMessage, ChatRole, CompletionConfig, ToolCall
from protocol.client import ProtocolClient
from protocol.message_schema import ProtocolError, ToolResult
from protocol.server import ToolHandler, ToolSchema, ToolServer
from utils.logger import logger

ITERATION_LIMIT_MESSAGE = "Maximum tool iterations reached. Please simplify your request."
INTERRUPTED_TOOL_MESSAGE = "Tool call was interrupted before a result was recorded"


class AgentError(Exception):
    """The model backend failed; the process() call stopped."""


@dataclass(frozen=True)
class AgentConfig:
    name: str
    version: str = "1.0.0"
    system_prompt: str = ""
    llm_config: CompletionConfig = field(default_factory=CompletionConfig)
    max_tool_iterations: int = 10
    verbose: bool = False

    def __post_init__(self):
        if self.max_tool_iterations < 1:
            raise ValueError(f"max_tool_iterations must be >= 1, got {self.max_tool_iterations}")


@dataclass
class AgentResponse:
    content: str = ""
    tool_calls_made: List[str] = field(default_factory=list)
    iterations: int = 0
    stopped_by_limit: bool = False


def format_tool_outcome(result: Optional[ToolResult] = None, error: Optional[ProtocolError] = None) -> str:
    """Wrap one tool outcome into the JSON string stored in a tool message."""
    if error is not None:
        return json.dumps({"success": False, "error": error.message, "code": error.code})
    payload: Dict[str, Any] = {"success": True, "content": result.to_dict()["content"]}
    if result.is_error:
        payload["is_error"] = True
    return json.dumps(payload)


class Agent:
    """
    One persona: a system instruction, a model backend, a private tool
    server and the conversation transcript it drives.

    process() runs the bounded loop: ask the model, run the tools it
    requested in order, feed the results back, until the model answers
    without tool calls or max_tool_iterations round trips have been made.
    """

    def __init__(self, config: AgentConfig, backend: ChatBackend, server: Optional[ToolServer] = None):
        self.config = config
        self.backend = backend
        self.server = server or ToolServer(config.name, config.version)
        self.client = ProtocolClient(self.server)

        try:
            self.client.initialize(config.name, config.version)
        except ProtocolError as e:
            raise AgentError(f"Failed to initialize protocol client: {e.message}") from e

        self._history: List[ChatMessage] = []
        self._lock = threading.RLock()
        if config.system_prompt:
            self._history.append(ChatMessage.system(config.system_prompt))

    @property
    def name(self) -> str:
        return self.config.name

    def _log(self, message: str) -> None:
        logger.log(logging.INFO if self.config.verbose else logging.DEBUG, f"[Agent:{self.name}] {message}")

    # ─── transcript ──────────────────────────────────────────

    def get_conversation_history(self) -> List[ChatMessage]:
        with self._lock:
            return list(self._history)

    def clear_conversation(self) -> None:
        """Drop everything except system messages."""
        with self._lock:
            self._history = [m for m in self._history if m.role == ChatRole.SYSTEM]

    def add_system_instruction(self, instruction: str) -> None:
        with self._lock:
            self._history.append(ChatMessage.system(instruction))

    def _repair_transcript(self) -> int:
        """Close out tool calls left without results by an interrupted run."""
        answered = {m.tool_call_id for m in self._history if m.role == ChatRole.TOOL}
        repaired = 0
        for index, message in enumerate(list(self._history)):
            if message.role != ChatRole.ASSISTANT or not message.tool_calls:
                continue
            missing = [c for c in message.tool_calls if c.id not in answered]
            if not missing:
                continue
            # insert right after the assistant turn and any results it already has
            insert_at = index + 1
            while insert_at < len(self._history) and self._history[insert_at].role == ChatRole.TOOL:
                insert_at += 1
            patches = [
                ChatMessage.tool(json.dumps({"success": False, "error": INTERRUPTED_TOOL_MESSAGE}), call.id)
                for call in missing
            ]
            self._history[insert_at:insert_at] = patches
            answered.update(call.id for call in missing)
            repaired += len(patches)
        if repaired:
            logger.warning(f"[Agent:{self.name}] Repaired {repaired} unanswered tool call(s)")
        return repaired

    # ─── tools ───────────────────────────────────────────────

    def register_tool(self, name: str, description: str, schema: ToolSchema, handler: ToolHandler) -> None:
        self.server.register_tool(name, description, schema, handler)

    def get_function_schemas(self) -> List[Dict[str, Any]]:
        return self.server.get_function_schemas()

    def _invoke_tool(self, call: ToolCall) -> str:
        self._log(f"Calling tool: {call.name} args={call.function.arguments}")
        try:
            result = self.client.call_tool(call.name, call.function.arguments)
        except ProtocolError as e:
            self._log(f"Tool error: {e.message}")
            return format_tool_outcome(error=e)
        return format_tool_outcome(result=result)

    # ─── loop ────────────────────────────────────────────────

    def process(self, user_message: str) -> AgentResponse:
        with self._lock:
            self._log(f"Processing user message: {user_message}")
            self._repair_transcript()
            self._history.append(ChatMessage.user(user_message))

            response = AgentResponse()
            for iteration in range(self.config.max_tool_iterations):
                response.iterations = iteration + 1
                self._log(f"Iteration {response.iterations}")

                # 1) current catalog, through the protocol
                try:
                    tools = self.client.list_tools()
                except ProtocolError as e:
                    raise AgentError(f"Tool discovery failed: {e.message}") from e

                # 2) model round trip
                try:
                    chat = self.backend.chat_with_tools(list(self._history), tools, self.config.llm_config)
                except LlmError as e:
                    raise AgentError(f"LLM error: {e}") from e

                # 3) final answer
                if not chat.tool_calls:
                    response.content = chat.content
                    self._history.append(ChatMessage.assistant(chat.content))
                    self._log(f"Final response: {chat.content}")
                    return response

                # 4) tool calls, in the order requested
                self._log(f"LLM requested {len(chat.tool_calls)} tool call(s)")
                self._history.append(ChatMessage.assistant(chat.content, chat.tool_calls))
                for call in chat.tool_calls:
                    outcome = self._invoke_tool(call)
                    self._history.append(ChatMessage.tool(outcome, call.id))
                    response.tool_calls_made.append(call.name)

            response.stopped_by_limit = True
            response.content = ITERATION_LIMIT_MESSAGE
            self._log("Hit iteration limit")
            return response
