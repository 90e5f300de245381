"""
Tests for the HTTP command interface.
Run with: pytest tests/test_http.py
"""

import json

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from llamadeck.backends.http import HttpCommandInterface
from llamadeck.errors import (
    ConfigError,
    NotRunningError,
    ServiceLifecycleError,
    TransportError,
)
from llamadeck.models import ChatRequest, Message, Role, ServiceConfig


def _iface(handler) -> HttpCommandInterface:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://fake:8080")
    return HttpCommandInterface(url="http://fake:8080/", client=client)


def test_init_strips_trailing_slash():
    iface = HttpCommandInterface(url="http://localhost:8080/", timeout=30)
    assert iface.url == "http://localhost:8080"
    assert iface.timeout == 30


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_initialize_sends_config():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"message": "LLM service initialized"})

    iface = _iface(handler)
    msg = await iface.initialize(ServiceConfig(model_name="tiny", n_threads=2))
    assert msg == "LLM service initialized"
    assert seen["path"] == "/llm/initialize"
    assert seen["body"]["config"]["model_name"] == "tiny"
    assert seen["body"]["config"]["n_threads"] == 2


@pytest.mark.asyncio
async def test_bare_string_message():
    iface = _iface(lambda request: httpx.Response(200, json="LLM service started"))
    assert await iface.start() == "LLM service started"


@pytest.mark.asyncio
async def test_get_status():
    iface = _iface(lambda request: httpx.Response(200, json={
        "is_running": True, "port": 0, "model_name": "tiny", "base_url": "local",
    }))
    status = await iface.get_status()
    assert status.is_running
    assert status.model_name == "tiny"


@pytest.mark.asyncio
async def test_chat_round_trip():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "id": "chatcmpl-1",
            "object": "chat.completion",
            "created": 1700000000,
            "model": "tiny",
            "choices": [{"index": 0, "message": {"role": "assistant", "content": "hi"}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
        })

    iface = _iface(handler)
    request = ChatRequest(model="tiny", messages=[Message(Role.USER, "hello")], temperature=0.8, stream=False)
    response = await iface.chat(request)

    assert seen["path"] == "/v1/chat/completions"
    assert seen["body"] == {
        "model": "tiny",
        "messages": [{"role": "user", "content": "hello"}],
        "temperature": 0.8,
        "stream": False,
    }
    assert response.content == "hi"
    assert response.choices[0].message.role is Role.ASSISTANT
    assert response.usage.total_tokens == 4


@pytest.mark.asyncio
async def test_list_models():
    iface = _iface(lambda request: httpx.Response(200, json={
        "object": "list",
        "data": [
            {"id": "a", "object": "model", "created": 1, "owned_by": "local"},
            {"id": "", "object": "model"},
            {"name": "b"},
        ],
    }))
    response = await iface.list_models()
    assert response.ids == ["a", "b"]


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_typed_model_error_is_lifecycle():
    iface = _iface(lambda request: httpx.Response(500, json={
        "error_type": "ModelError",
        "message": "Model 'x' not found in ./models. Available models: [a]",
    }))
    with pytest.raises(ServiceLifecycleError) as exc:
        await iface.initialize(ServiceConfig())
    assert "Available models: [a]" in str(exc.value)


@pytest.mark.asyncio
async def test_typed_config_error():
    iface = _iface(lambda request: httpx.Response(500, json={"error_type": "ConfigError", "message": "bad ctx"}))
    with pytest.raises(ConfigError):
        await iface.check_health()


@pytest.mark.asyncio
async def test_not_running_depends_on_command():
    body = {"error_type": "NotRunning", "message": "Service not running"}
    iface = _iface(lambda request: httpx.Response(409, json=body))
    with pytest.raises(NotRunningError):
        await iface.chat(ChatRequest(model="m", messages=[]))
    with pytest.raises(ServiceLifecycleError):
        await iface.stop()


@pytest.mark.asyncio
async def test_untyped_errors_by_status():
    iface = _iface(lambda request: httpx.Response(422, text="bad config"))
    with pytest.raises(ConfigError):
        await iface.initialize(ServiceConfig())

    iface = _iface(lambda request: httpx.Response(500, text="engine crashed"))
    with pytest.raises(ServiceLifecycleError):
        await iface.start()
    with pytest.raises(TransportError) as exc:
        await iface.get_status()
    assert "HTTP 500" in str(exc.value)


@pytest.mark.asyncio
async def test_connection_error_is_transport():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    with pytest.raises(TransportError) as exc:
        await _iface(handler).list_models()
    assert "connection refused" in str(exc.value)


@pytest.mark.asyncio
async def test_timeout_is_transport():
    def handler(request):
        raise httpx.ReadTimeout("timed out")

    with pytest.raises(TransportError) as exc:
        await _iface(handler).chat(ChatRequest(model="m", messages=[]))
    assert "Timeout" in str(exc.value)


@pytest.mark.asyncio
async def test_non_json_body_is_transport():
    iface = _iface(lambda request: httpx.Response(200, text="<html>proxy page</html>"))
    with pytest.raises(TransportError):
        await iface.get_status()


@pytest.mark.asyncio
async def test_aclose_closes_client():
    iface = HttpCommandInterface(url="http://fake:8080")
    with patch.object(iface._client, "aclose", new=AsyncMock()) as mock_close:
        await iface.aclose()
    mock_close.assert_awaited_once()
