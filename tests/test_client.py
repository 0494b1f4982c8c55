import json

import httpx
import pydantic
import pytest

from companion_sdk.client import CompanionClient
from companion_sdk.config import set_base_url
from companion_sdk.errors import ProtocolError, ProviderError, StreamUnavailableError, TransportError
from companion_sdk.schemas import ChatRequest

BASE_URL = "http://companion.test"


def _client(handler) -> CompanionClient:
    return CompanionClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


def _request() -> ChatRequest:
    return ChatRequest(provider="openai", model="gpt-4o", messages=[{"role": "user", "content": "hi"}])


def test_chat_request_validates_messages():
    request = _request()
    assert request.messages == [{"role": "user", "content": "hi"}]
    with pytest.raises(pydantic.ValidationError):
        ChatRequest(provider="openai", model="gpt-4o", messages=[{"role": "robot", "content": "hi"}])
    with pytest.raises(pydantic.ValidationError):
        ChatRequest(provider="openai", model="gpt-4o", messages=[{"role": "user"}])


@pytest.mark.asyncio
async def test_health_requires_ok_true():
    async with _client(lambda request: httpx.Response(200, json={"ok": True, "version": "1"})) as client:
        report = await client.health()
        assert report.ok is True
        assert report.version == "1"
        assert await client.is_healthy() is True

    async with _client(lambda request: httpx.Response(200, json={"ok": False, "error": "starting"})) as client:
        with pytest.raises(ProviderError, match="starting"):
            await client.health()
        assert await client.is_healthy() is False


@pytest.mark.asyncio
async def test_non_json_body_is_protocol_error():
    async with _client(lambda request: httpx.Response(502, text="<html>bad gateway</html>")) as client:
        with pytest.raises(ProtocolError, match="non-JSON 502"):
            await client.health()


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error():
    def _handler(request):
        raise httpx.ConnectError("All connection attempts failed", request=request)

    async with _client(_handler) as client:
        with pytest.raises(TransportError):
            await client.health()
        assert await client.is_healthy() is False


@pytest.mark.asyncio
async def test_error_status_carries_status_code():
    async with _client(lambda request: httpx.Response(401, json={"ok": False, "error": {"message": "bad key"}})) as client:
        with pytest.raises(ProviderError) as excinfo:
            await client.post_chat(_request())
    assert excinfo.value.status_code == 401
    assert "bad key" in excinfo.value.message


@pytest.mark.asyncio
async def test_post_chat_sends_payload_without_nulls():
    seen = {}

    def _handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "response": {"text": "hello"}})

    async with _client(_handler) as client:
        response = await client.post_chat(_request())

    assert response.text == "hello"
    assert seen["path"] == "/api/chat"
    assert seen["body"] == {"provider": "openai", "model": "gpt-4o", "messages": [{"role": "user", "content": "hi"}]}


@pytest.mark.asyncio
async def test_post_chat_requires_response_field():
    async with _client(lambda request: httpx.Response(200, json={"ok": True})) as client:
        with pytest.raises(ProtocolError):
            await client.post_chat(_request())


@pytest.mark.asyncio
async def test_stream_chat_yields_raw_bytes():
    body = b'{"type":"delta","delta":"a"}\n{"type":"final"}\n'
    async with _client(lambda request: httpx.Response(200, content=body)) as client:
        chunks = [chunk async for chunk in client.stream_chat(_request())]
    assert b"".join(chunks) == body


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [404, 405])
async def test_stream_chat_missing_endpoint(status):
    async with _client(lambda request: httpx.Response(status)) as client:
        with pytest.raises(StreamUnavailableError) as excinfo:
            async for _chunk in client.stream_chat(_request()):
                pass
    assert excinfo.value.status_code == status


@pytest.mark.asyncio
async def test_stream_chat_error_status():
    async with _client(lambda request: httpx.Response(500, json={"detail": "provider exploded"})) as client:
        with pytest.raises(ProviderError, match="provider exploded"):
            async for _chunk in client.stream_chat(_request()):
                pass


@pytest.mark.asyncio
async def test_keys_endpoints():
    seen = []

    def _handler(request):
        seen.append((request.method, request.url.path, dict(request.url.params), request.content))
        return httpx.Response(200, json={"ok": True})

    async with _client(_handler) as client:
        await client.post_keys({"OPENAI_API_KEY": "sk"})
        await client.delete_provider_key("openai")

    assert seen[0][:2] == ("POST", "/api/keys")
    assert json.loads(seen[0][3]) == {"keys": {"OPENAI_API_KEY": "sk"}}
    assert seen[1][:3] == ("DELETE", "/api/keys", {"provider": "openai"})


@pytest.mark.asyncio
async def test_list_models_normalizes_descriptors():
    def _handler(request):
        assert dict(request.url.params) == {"provider": "ollama", "refresh": "true"}
        return httpx.Response(
            200,
            json={
                "ok": True,
                "snapshot": {
                    "provider": "ollama",
                    "models": [
                        {"id": "llama3:8b", "context_window": 8192, "capabilities": {"fim": False}, "tags": ["local"]},
                        {"name": "qwen3"},
                        "bare-id",
                    ],
                },
            },
        )

    async with _client(_handler) as client:
        models = await client.list_models("ollama", refresh=True)

    assert [m.id for m in models] == ["llama3:8b", "qwen3", "bare-id"]
    assert models[0].context_length == 8192
    assert models[0].capabilities == {"fim": False}
    assert models[0].metadata["raw"]["tags"] == ["local"]
    assert all(m.provider == "ollama" for m in models)


@pytest.mark.asyncio
async def test_list_models_requires_snapshot():
    async with _client(lambda request: httpx.Response(200, json={"ok": True})) as client:
        with pytest.raises(ProtocolError):
            await client.list_models("ollama")


@pytest.mark.asyncio
async def test_list_providers():
    payload = {
        "ok": True,
        "providers": [
            {"id": "openai", "display_name": "OpenAI", "model_count": "3", "aliases": ["openAI"]},
            {"provider": "ollama", "model_count": -4, "enabled": False},
            "garbage",
        ],
    }
    async with _client(lambda request: httpx.Response(200, json=payload)) as client:
        providers = await client.list_providers()

    assert [p.id for p in providers] == ["openai", "ollama"]
    assert providers[0].model_count == 3
    assert providers[1].model_count == 0
    assert providers[1].display_name == "ollama"
    assert providers[1].enabled is False


@pytest.mark.asyncio
async def test_client_follows_published_base_url():
    seen = []

    def _handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json={"ok": True})

    set_base_url("http://127.0.0.1:9911/")
    async with CompanionClient(transport=httpx.MockTransport(_handler)) as client:
        await client.health()
        set_base_url("http://127.0.0.1:9912")
        await client.health()

    assert seen == ["http://127.0.0.1:9911/api/health", "http://127.0.0.1:9912/api/health"]
