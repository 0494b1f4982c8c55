"""Typed async client for the companion service HTTP surface."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator

import httpx

from companion_sdk.config import get_base_url, get_sdk_config
from companion_sdk.errors import ProtocolError, ProviderError, StreamUnavailableError, TransportError
from companion_sdk.logger import logger
from companion_sdk.schemas import ChatRequest, ChatResponse, HealthReport, ModelDescriptor, ProviderDescriptor

_STREAM_UNAVAILABLE_STATUSES = (404, 405)


def _error_message(data: Any) -> str:
    if isinstance(data, dict):
        for key in ("error", "detail", "message"):
            value = data.get(key)
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
            if value:
                return value if isinstance(value, str) else json.dumps(value)
    return json.dumps(data)


def _decode_json(response: httpx.Response, path: str) -> dict[str, Any]:
    """Parse a companion JSON body, enforcing ``ok: true``.

    Raises:
        ProtocolError: If the body is not a JSON object.
        ProviderError: If the service reported an error.
    """
    try:
        data = response.json()
    except ValueError:
        content_type = response.headers.get("content-type", "unknown")
        raise ProtocolError(
            f"{path} returned non-JSON {response.status_code} with content-type {content_type!r}: "
            f"{response.text[:512]}"
        ) from None

    if not isinstance(data, dict):
        raise ProtocolError(f"{path} returned a JSON {type(data).__name__}, expected an object")

    if response.is_error:
        raise ProviderError(f"{path} returned {response.status_code}: {_error_message(data)}", response.status_code)

    if data.get("ok") is not True:
        raise ProviderError(f"{path} did not report success: {_error_message(data)}", response.status_code)

    return data


def _normalize_model(raw: Any, provider: str) -> ModelDescriptor:
    if not isinstance(raw, dict):
        raw = {"id": raw}
    context = raw.get("context_length")
    if not isinstance(context, int):
        context = raw.get("context_window") if isinstance(raw.get("context_window"), int) else None
    capabilities = raw.get("capabilities")
    tags = raw.get("tags")
    return ModelDescriptor(
        id=str(raw.get("id") or raw.get("model") or raw.get("name") or ""),
        provider=provider,
        family=raw.get("family") if isinstance(raw.get("family"), str) else None,
        context_length=context,
        capabilities=capabilities if isinstance(capabilities, dict) else {},
        pricing=raw.get("pricing") if isinstance(raw.get("pricing"), dict) else None,
        tags=[str(t) for t in tags] if isinstance(tags, list) else [],
        metadata={"raw": raw},
    )


def _normalize_provider(raw: dict[str, Any]) -> ProviderDescriptor:
    provider_id = raw.get("id") or raw.get("provider") or ""
    try:
        model_count = max(int(raw.get("model_count") or 0), 0)
    except (TypeError, ValueError):
        model_count = 0
    aliases = raw.get("aliases")
    return ProviderDescriptor(
        id=str(provider_id),
        display_name=str(raw.get("display_name") or provider_id),
        aliases=[str(a) for a in aliases] if isinstance(aliases, list) else [],
        model_count=model_count,
        enabled=raw.get("enabled") if isinstance(raw.get("enabled"), bool) else True,
    )


class CompanionClient:
    """Async HTTP client for the companion service.

    The base URL is read from the process-wide config slot on every request
    unless one is passed explicitly, so a restarted service is picked up
    without rebuilding clients.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout if timeout is not None else get_sdk_config().connection.request_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url or get_base_url()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0), transport=self._transport
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> CompanionClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    async def _request(
        self, method: str, path: str, *, json_body: Any = None, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = await self._http().request(method, url, json=json_body, params=params)
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to {method} {path} at {url!r}: {exc!r}") from exc
        return _decode_json(response, path)

    async def health(self) -> HealthReport:
        """Return the health payload; raises unless the service reports ``ok: true``."""
        return HealthReport.model_validate(await self._request("GET", "/api/health"))

    async def is_healthy(self) -> bool:
        try:
            await self.health()
        except (TransportError, ProtocolError, ProviderError):
            return False
        return True

    async def post_chat(self, request: ChatRequest) -> ChatResponse:
        """Send a one-shot chat request.

        Raises:
            TransportError: If the service cannot be reached.
            ProtocolError: If the body is not JSON or lacks ``response``.
            ProviderError: If the service reported an error.
        """
        data = await self._request("POST", "/api/chat", json_body=request.payload())
        response = data.get("response")
        if not isinstance(response, dict):
            raise ProtocolError(f"/api/chat response missing 'response' field: {json.dumps(data)[:512]}")
        return ChatResponse.model_validate(response)

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[bytes]:
        """Yield raw NDJSON bytes from ``/api/chat/stream`` as they arrive.

        Raises:
            StreamUnavailableError: If the service has no streaming endpoint.
            TransportError: If the connection fails before or during the stream.
            ProviderError: If the service rejects the request.
        """
        url = f"{self.base_url}/api/chat/stream"
        try:
            async with self._http().stream(
                "POST", url, json=request.payload(), timeout=httpx.Timeout(None, connect=10.0)
            ) as response:
                if response.status_code in _STREAM_UNAVAILABLE_STATUSES:
                    raise StreamUnavailableError(response.status_code)
                if response.is_error:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    try:
                        message = _error_message(json.loads(body))
                    except ValueError:
                        message = body[:512] or "no body"
                    raise ProviderError(
                        f"/api/chat/stream returned {response.status_code}: {message}", response.status_code
                    )
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to stream /api/chat/stream at {url!r}: {exc!r}") from exc

    async def post_keys(self, keys: dict[str, str]) -> None:
        await self._request("POST", "/api/keys", json_body={"keys": keys})

    async def delete_provider_key(self, service_provider_id: str) -> None:
        await self._request("DELETE", "/api/keys", params={"provider": service_provider_id})

    async def list_models(self, service_provider_id: str, refresh: bool = False) -> list[ModelDescriptor]:
        """Fetch the registry snapshot for one provider."""
        logger.debug(f"Listing models for {service_provider_id} (refresh={refresh})")
        data = await self._request(
            "GET",
            "/api/models",
            params={"provider": service_provider_id, "refresh": "true" if refresh else "false"},
        )
        snapshot = data.get("snapshot")
        if not isinstance(snapshot, dict):
            raise ProtocolError("/api/models response did not contain a valid snapshot")
        provider = snapshot.get("provider") if isinstance(snapshot.get("provider"), str) else service_provider_id
        models = snapshot.get("models") if isinstance(snapshot.get("models"), list) else []
        return [_normalize_model(m, provider) for m in models]

    async def list_providers(self) -> list[ProviderDescriptor]:
        data = await self._request("GET", "/api/providers")
        providers = data.get("providers")
        if not isinstance(providers, list):
            raise ProtocolError("/api/providers response did not contain a valid providers array")
        return [_normalize_provider(p) for p in providers if isinstance(p, dict)]
