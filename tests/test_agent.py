import json

import pytest
from conftest import FakeBackend, final_reply, tool_call_reply

from agents.agent import ITERATION_LIMIT_MESSAGE, Agent, AgentConfig, AgentError
from llm.backend_client import LlmError, LlmErrorCode
from llm.chat_schema import ChatMessage, ChatResult, ChatRole, ToolCall
from protocol.message_schema import ToolParameter, ToolResult


def _agent(backend, max_tool_iterations=5, system_prompt="You are a test agent."):
    agent = Agent(
        AgentConfig(name="Tester", system_prompt=system_prompt, max_tool_iterations=max_tool_iterations),
        backend,
    )
    agent.register_tool(
        "echo",
        "Echo a message",
        [ToolParameter(name="message", type="string")],
        lambda args: ToolResult.text(args["message"]),
    )
    return agent


def _assert_transcript_consistent(history):
    requested = set()
    for message in history:
        if message.role == ChatRole.ASSISTANT:
            requested.update(call.id for call in message.tool_calls)
        if message.role == ChatRole.TOOL:
            assert message.tool_call_id in requested


def test_config_rejects_zero_iterations() -> None:
    with pytest.raises(ValueError):
        AgentConfig(name="x", max_tool_iterations=0)


def test_direct_answer() -> None:
    backend = FakeBackend([final_reply("Hello there")])
    agent = _agent(backend)

    response = agent.process("hi")

    assert response.content == "Hello there"
    assert response.tool_calls_made == []
    assert response.iterations == 1
    assert not response.stopped_by_limit
    roles = [m.role for m in agent.get_conversation_history()]
    assert roles == [ChatRole.SYSTEM, ChatRole.USER, ChatRole.ASSISTANT]
    assert [t.name for t in backend.chat_calls[0]["tools"]] == ["echo"]


def test_tool_round_trip() -> None:
    backend = FakeBackend([tool_call_reply("echo", {"message": "ping"}, "c1"), final_reply("Echoed")])
    agent = _agent(backend)

    response = agent.process("echo ping")

    assert response.content == "Echoed"
    assert response.tool_calls_made == ["echo"]
    tool_message = agent.get_conversation_history()[3]
    assert tool_message.role == ChatRole.TOOL
    assert tool_message.tool_call_id == "c1"
    assert json.loads(tool_message.content) == {"success": True, "content": [{"type": "text", "text": "ping"}]}


def test_tool_errors_are_fed_back_not_raised() -> None:
    backend = FakeBackend([
        tool_call_reply("missing_tool", {}, "c1"),
        tool_call_reply("echo", {}, "c2"),
        final_reply("gave up"),
    ])
    agent = _agent(backend)

    response = agent.process("do it")

    assert response.content == "gave up"
    assert response.tool_calls_made == ["missing_tool", "echo"]
    payloads = [json.loads(m.content) for m in agent.get_conversation_history() if m.role == ChatRole.TOOL]
    assert payloads[0]["success"] is False and payloads[0]["code"] == -32001
    assert payloads[1]["code"] == -32003


def test_tools_run_in_requested_order() -> None:
    order = []
    batch = ChatResult(tool_calls=[
        ToolCall.model_validate({"id": f"c{i}", "function": {"name": "record", "arguments": {"n": i}}})
        for i in range(3)
    ])
    backend = FakeBackend([batch, final_reply("ok")])
    agent = _agent(backend)
    agent.register_tool("record", "record", {"type": "object"}, lambda a: order.append(a["n"]) or ToolResult.text("ok"))

    agent.process("go")

    assert order == [0, 1, 2]
    tool_ids = [m.tool_call_id for m in agent.get_conversation_history() if m.role == ChatRole.TOOL]
    assert tool_ids == ["c0", "c1", "c2"]


@pytest.mark.parametrize("limit", [1, 2, 5])
def test_iteration_limit_is_exact(limit) -> None:
    backend = FakeBackend([tool_call_reply("echo", {"message": "again"})], repeat_last=True)
    agent = _agent(backend, max_tool_iterations=limit)

    response = agent.process("loop forever")

    assert len(backend.chat_calls) == limit
    assert response.stopped_by_limit
    assert response.content == ITERATION_LIMIT_MESSAGE
    assert response.tool_calls_made == ["echo"] * limit
    _assert_transcript_consistent(agent.get_conversation_history())


def test_single_iteration_limit_keeps_tool_result() -> None:
    backend = FakeBackend([tool_call_reply("echo", {"message": "x"})], repeat_last=True)
    agent = _agent(backend, max_tool_iterations=1)

    response = agent.process("go")

    assert response.stopped_by_limit is True
    assert response.tool_calls_made == ["echo"]
    assert agent.get_conversation_history()[-1].role == ChatRole.TOOL


def test_backend_failure_raises_agent_error() -> None:
    backend = FakeBackend([LlmError(LlmErrorCode.CONNECTION_FAILED, "refused")])
    agent = _agent(backend)

    with pytest.raises(AgentError):
        agent.process("hi")
    # nothing appended for the failed round trip
    assert agent.get_conversation_history()[-1].role == ChatRole.USER


def test_interrupted_transcript_is_repaired() -> None:
    backend = FakeBackend([final_reply("recovered")])
    agent = _agent(backend)
    dangling = ToolCall.model_validate({"id": "lost", "function": {"name": "echo", "arguments": {}}})
    agent._history += [ChatMessage.user("first"), ChatMessage.assistant("", [dangling])]

    agent.process("second")

    history = agent.get_conversation_history()
    assert history[3].role == ChatRole.TOOL
    assert history[3].tool_call_id == "lost"
    assert json.loads(history[3].content)["success"] is False
    _assert_transcript_consistent(history)


def test_clear_conversation_keeps_system_messages() -> None:
    agent = _agent(FakeBackend([final_reply("a")]))
    agent.add_system_instruction("Be brief.")
    agent.process("hi")

    agent.clear_conversation()

    history = agent.get_conversation_history()
    assert [m.content for m in history] == ["You are a test agent.", "Be brief."]


def test_function_schemas_cover_registered_tools() -> None:
    agent = _agent(FakeBackend())
    assert [s["function"]["name"] for s in agent.get_function_schemas()] == ["echo"]


def test_unserializable_tool_result_is_fed_back_as_error() -> None:
    from datetime import datetime

    backend = FakeBackend([tool_call_reply("when", {}, "c1"), final_reply("handled")])
    agent = _agent(backend)
    agent.register_tool("when", "timestamp", {"type": "object"},
                        lambda a: ToolResult.structured({"t": datetime(2024, 1, 1)}))

    response = agent.process("what time is it")

    assert response.content == "handled"
    tool_message = agent.get_conversation_history()[3]
    assert tool_message.tool_call_id == "c1"
    payload = json.loads(tool_message.content)
    assert payload["success"] is False and payload["code"] == -32002
    _assert_transcript_consistent(agent.get_conversation_history())
