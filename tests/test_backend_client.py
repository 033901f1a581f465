import json

import pytest
import requests

from llm.backend_client import LlmClient, LlmError, LlmErrorCode
from llm.chat_schema import ChatMessage, CompletionConfig
from protocol.message_schema import ToolDefinition


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, json=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def _client(response=None, error=None):
    session = FakeSession(response, error)
    return LlmClient("http://llm:8080/", timeout=12, session=session), session


def test_chat_with_tools_request_and_parsing() -> None:
    payload = {"choices": [{"finish_reason": "tool_calls", "message": {"content": None, "tool_calls": [
        {"id": "c1", "type": "function", "function": {"name": "read_file", "arguments": "{\"path\": \"a.txt\"}"}}
    ]}}]}
    client, session = _client(FakeResponse(payload=payload))
    tool = ToolDefinition(name="read_file", description="read", input_schema={"type": "object"})

    result = client.chat_with_tools([ChatMessage.user("hi")], [tool], CompletionConfig(temperature=0.2))

    call = session.calls[0]
    assert call["url"] == "http://llm:8080/v1/chat/completions"
    assert call["timeout"] == 12
    assert call["json"]["tool_choice"] == "auto"
    assert call["json"]["tools"][0]["function"]["name"] == "read_file"
    assert call["json"]["temperature"] == 0.2
    assert result.content == ""
    assert result.tool_calls[0].function.arguments == {"path": "a.txt"}
    assert result.finish_reason == "tool_calls"


def test_undecodable_arguments_are_kept_raw() -> None:
    payload = {"choices": [{"message": {"tool_calls": [
        {"id": "c1", "function": {"name": "x", "arguments": "{broken"}}
    ]}}]}
    client, _ = _client(FakeResponse(payload=payload))
    result = client.chat([ChatMessage.user("hi")])
    assert result.tool_calls[0].function.arguments == "{broken"


def test_tool_calls_without_id_get_one() -> None:
    payload = {"choices": [{"message": {"tool_calls": [
        {"function": {"name": "read_file", "arguments": {"path": "a"}}},
        {"id": None, "function": {"name": "list_directory", "arguments": {}}},
    ]}}]}
    client, _ = _client(FakeResponse(payload=payload))
    result = client.chat([ChatMessage.user("hi")])
    ids = [call.id for call in result.tool_calls]
    assert all(i.startswith("call_") and len(i) > len("call_") for i in ids)
    assert ids[0] != ids[1]


def test_complete_reads_either_shape() -> None:
    client, session = _client(FakeResponse(payload={"choices": [{"text": "CodeAssistant"}]}))
    assert client.complete("pick", CompletionConfig(max_tokens=50)) == "CodeAssistant"
    assert session.calls[0]["json"]["max_tokens"] == 50
    assert session.calls[0]["json"]["prompt"] == "pick"

    client, _ = _client(FakeResponse(payload={"content": "Docs"}))
    assert client.complete("pick") == "Docs"


@pytest.mark.parametrize("error, code", [
    (requests.exceptions.ConnectTimeout("slow"), LlmErrorCode.REQUEST_TIMEOUT),
    (requests.exceptions.ConnectionError("refused"), LlmErrorCode.CONNECTION_FAILED),
])
def test_transport_failures(error, code) -> None:
    client, _ = _client(error=error)
    with pytest.raises(LlmError) as exc:
        client.health_check()
    assert exc.value.code == code


def test_http_and_body_failures() -> None:
    client, _ = _client(FakeResponse(status_code=503, text="loading model"))
    with pytest.raises(LlmError) as exc:
        client.chat([ChatMessage.user("hi")])
    assert exc.value.code == LlmErrorCode.SERVER_ERROR
    assert exc.value.http_status == 503

    client, _ = _client(FakeResponse(status_code=200, payload=None, text="<html>"))
    with pytest.raises(LlmError) as exc:
        client.tokenize("x")
    assert exc.value.code == LlmErrorCode.INVALID_RESPONSE

    client, _ = _client(FakeResponse(payload={"choices": []}))
    with pytest.raises(LlmError) as exc:
        client.chat([ChatMessage.user("hi")])
    assert exc.value.code == LlmErrorCode.INVALID_RESPONSE


def test_tokenize_round_trip_endpoints() -> None:
    client, session = _client(FakeResponse(payload={"tokens": [1, 2, 3]}))
    assert client.tokenize("abc") == [1, 2, 3]
    assert session.calls[0]["url"].endswith("/tokenize")

    client, session = _client(FakeResponse(payload={"content": "abc"}))
    assert client.detokenize([1, 2, 3]) == "abc"
    assert session.calls[0]["json"] == {"tokens": [1, 2, 3]}


def test_health_check() -> None:
    client, session = _client(FakeResponse(payload={"status": "ok"}))
    assert client.health_check() is True
    assert session.calls[0]["method"] == "GET"
