"""Pytest configuration for agentdesk tests."""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest


def pytest_configure() -> None:
    """Ensure the repository root is importable during tests."""
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))


class FakeBackend:
    """
    Scripted ChatBackend.

    chat_replies are consumed in order; an Exception instance is raised
    instead of returned. When the script runs out, repeat_last keeps
    returning the final entry.
    """

    def __init__(self, chat_replies=None, completion: str = "", repeat_last: bool = False):
        self.chat_replies: List[Any] = list(chat_replies or [])
        self.completion = completion
        self.repeat_last = repeat_last
        self.chat_calls: List[Dict[str, Any]] = []
        self.completion_prompts: List[str] = []

    def chat_with_tools(self, messages, tools, config=None):
        from llm.chat_schema import ChatResult

        self.chat_calls.append({"messages": list(messages), "tools": list(tools), "config": config})
        if not self.chat_replies:
            return ChatResult(content="done")
        reply = self.chat_replies[0] if self.repeat_last and len(self.chat_replies) == 1 else self.chat_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def complete(self, prompt, config=None):
        self.completion_prompts.append(prompt)
        if isinstance(self.completion, Exception):
            raise self.completion
        return self.completion


def tool_call_reply(name: str, arguments: Optional[Dict[str, Any]] = None, call_id: str = "call_1", content: str = ""):
    from llm.chat_schema import ChatResult

    return ChatResult.model_validate({
        "content": content,
        "tool_calls": [{"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments or {}}}],
    })


def final_reply(content: str):
    from llm.chat_schema import ChatResult

    return ChatResult(content=content)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def initialized_server():
    from protocol.message_schema import InitializeParams, ToolParameter, ToolResult
    from protocol.server import ToolServer

    server = ToolServer("test-server")
    server.register_tool(
        "echo",
        "Echo the message back",
        [ToolParameter(name="message", type="string", description="Text to echo")],
        lambda args: ToolResult.text(args["message"]),
    )
    server.initialize(InitializeParams())
    return server
