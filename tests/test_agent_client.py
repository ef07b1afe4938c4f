import json

import httpx
import pytest

from envoy_backend.core.errors import AgentError, AgentNotConnectedError
from envoy_backend.services.agent_client import AgentConnection

AGENT_CARD = {"name": "Planner", "description": "Plans things"}


def _sse(*events):
    return "".join(f"data: {json.dumps(event)}\n\n" for event in events)


def _result(result):
    return {"jsonrpc": "2.0", "id": 1, "result": result}


def _connection(stream_body="", status_code=200, card_status=200, requests=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        if request.url.path == "/.well-known/agent.json":
            return httpx.Response(card_status, json=AGENT_CARD)
        if request.url.path == "/a2a":
            return httpx.Response(
                status_code, text=stream_body, headers={"Content-Type": "text/event-stream"}
            )
        return httpx.Response(404)

    client = httpx.AsyncClient(base_url="http://agent.test", transport=httpx.MockTransport(handler))
    return AgentConnection("http://agent.test", client=client)


async def _collect(connection, prompt="Hi", **kwargs):
    return [text async for text in connection.send_message(prompt, **kwargs)]


# ========================================================================
# Connecting
# ========================================================================


class TestConnect:
    async def test_connect_reads_agent_card(self):
        connection = _connection()
        card = await connection.connect()

        assert card == AGENT_CARD
        assert connection.is_agent_connected
        assert connection.agent_name == "Planner"
        await connection.aclose()
        assert not connection.is_agent_connected

    async def test_connect_failure(self):
        connection = _connection(card_status=500)
        with pytest.raises(AgentError):
            await connection.connect()
        assert not connection.is_agent_connected

    async def test_send_requires_connection(self):
        connection = _connection()
        with pytest.raises(AgentNotConnectedError):
            await _collect(connection)

    async def test_no_url_cannot_connect(self):
        with pytest.raises(AgentNotConnectedError):
            await AgentConnection(None).connect()


# ========================================================================
# Streaming messages
# ========================================================================


class TestSendMessage:
    async def test_streams_artifact_and_message_text(self):
        body = _sse(
            _result({"kind": "status-update", "context_id": "ctx-9", "status": {"state": "working"}}),
            _result({"kind": "artifact-update", "artifact": {"parts": [{"kind": "text", "text": "Hello"}]}}),
            _result({"kind": "message", "parts": [{"kind": "text", "text": " there"}]}),
            _result({"kind": "status-update", "status": {"state": "completed"}, "final": True}),
            _result({"kind": "message", "parts": [{"kind": "text", "text": "ignored"}]}),
        )
        requests = []
        connection = _connection(body, requests=requests)
        await connection.connect()

        seen = []
        fragments = await _collect(connection, "Plan my week", context_id="ctx-1", on_context_id=seen.append)

        assert fragments == ["Hello", " there"]
        assert seen == ["ctx-9"]

        payload = json.loads(requests[-1].content)
        assert payload["method"] == "SendStreamingMessage"
        message = payload["params"]["message"]
        assert message["parts"] == [{"kind": "text", "text": "Plan my week"}]
        assert message["context_id"] == "ctx-1"

    async def test_camel_case_context_id(self):
        body = _sse(_result({"kind": "message", "contextId": "ctx-7", "parts": [{"kind": "text", "text": "ok"}]}))
        connection = _connection(body)
        await connection.connect()

        seen = []
        assert await _collect(connection, on_context_id=seen.append) == ["ok"]
        assert seen == ["ctx-7"]

    async def test_json_rpc_error(self):
        body = _sse({"jsonrpc": "2.0", "id": 1, "error": {"code": -32603, "message": "Internal error"}})
        connection = _connection(body)
        await connection.connect()

        with pytest.raises(AgentError) as exc_info:
            await _collect(connection)
        assert exc_info.value.code == -32603
        assert "Internal error" in str(exc_info.value)

    async def test_failed_task(self):
        body = _sse(
            _result({
                "kind": "status-update",
                "status": {"state": "failed", "message": {"parts": [{"kind": "text", "text": "quota exceeded"}]}},
                "final": True,
            })
        )
        connection = _connection(body)
        await connection.connect()

        with pytest.raises(AgentError, match="quota exceeded"):
            await _collect(connection)

    async def test_http_error_status(self):
        connection = _connection(status_code=503)
        await connection.connect()
        with pytest.raises(AgentError, match="503"):
            await _collect(connection)

    async def test_invalid_payload(self):
        connection = _connection("data: {not json\n\n")
        await connection.connect()
        with pytest.raises(AgentError):
            await _collect(connection)
