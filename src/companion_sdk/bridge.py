"""Provider-agnostic chat entry point backed by the companion service."""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Iterable, Mapping, Sequence

from companion_sdk.client import CompanionClient
from companion_sdk.config import get_sdk_config
from companion_sdk.errors import (
    CompanionError,
    StreamUnavailableError,
    UnsupportedOperationError,
    ValidationError,
    friendly_error_message,
)
from companion_sdk.keysync import KeySyncGateway
from companion_sdk.logger import logger
from companion_sdk.overlay import OverlayStore, build_overlay_for_models
from companion_sdk.providers import is_known_provider, to_service_provider_id
from companion_sdk.resolver import CapabilityResolver, FeatureName, OverridesOfModel, reasoning_request_fields
from companion_sdk.schemas import (
    ChatMessage,
    ChatRequest,
    FinalDelta,
    HealthReport,
    ModelDescriptor,
    ModelSelectionOptions,
    ProviderDescriptor,
    StreamDelta,
    TextDelta,
)
from companion_sdk.stream import OnError, OnFinal, OnText, StreamSession, iter_frames, text_from_response

if TYPE_CHECKING:
    from companion_sdk.supervisor import ServiceSupervisor


class AbortHandle:
    """Caller-held handle that cancels whatever request it is bound to.

    Aborting before an aborter is bound still takes effect: the aborter runs
    as soon as it is set.
    """

    def __init__(self):
        self._aborter: Callable[[], None] | None = None
        self._aborted = False

    @property
    def aborted(self) -> bool:
        return self._aborted

    def set_aborter(self, aborter: Callable[[], None]) -> None:
        self._aborter = aborter
        if self._aborted:
            aborter()

    def abort(self) -> None:
        if self._aborted:
            return
        self._aborted = True
        if self._aborter is not None:
            self._aborter()


class ChatBridge:
    """Builds chat requests and runs them against the companion service.

    Args:
        client: HTTP client for the companion service.
        overlay_store: Store refreshed from the model registry.
        resolver: Capability resolver; defaults to one bound to ``overlay_store``.
        key_sync: Credential gateway; defaults to one sharing ``client``.
        supervisor: When given, the service is started before each call.
    """

    def __init__(
        self,
        client: CompanionClient | None = None,
        overlay_store: OverlayStore | None = None,
        resolver: CapabilityResolver | None = None,
        key_sync: KeySyncGateway | None = None,
        supervisor: ServiceSupervisor | None = None,
    ):
        self.client = client or CompanionClient()
        self.overlay_store = overlay_store or OverlayStore()
        self.resolver = resolver or CapabilityResolver(overlay_store=self.overlay_store)
        self.key_sync = key_sync or KeySyncGateway(self.client)
        self.supervisor = supervisor

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _ensure_service(self) -> None:
        if self.supervisor is not None:
            await self.supervisor.start_if_needed()

    def build_request(
        self,
        provider: str,
        model: str,
        messages: Sequence[ChatMessage],
        system_message: str | None = None,
        *,
        overrides: OverridesOfModel | None = None,
        feature: FeatureName = "Chat",
        selection_options: ModelSelectionOptions | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        tools: list[dict[str, Any]] | None = None,
        response_format: Any = None,
        json_schema: Any = None,
        extra: Mapping[str, Any] | None = None,
    ) -> ChatRequest:
        """Assemble the service request for one chat turn.

        Raises:
            ValidationError: If the provider is unknown or no model is selected.
        """
        if not is_known_provider(provider):
            raise ValidationError(f"Provider {provider!r} is not supported by the companion service.")
        if not model or not model.strip():
            raise ValidationError(f"No model selected for provider {provider!r}.")

        caps = self.resolver.resolve(provider, model, overrides=overrides)

        chat_messages: list[ChatMessage] = []
        if system_message:
            chat_messages.append({"role": "system", "content": system_message})
        chat_messages.extend({"role": m["role"], "content": m["content"]} for m in messages)

        request_extra: dict[str, Any] = {"feature": feature}
        request_extra.update(reasoning_request_fields(provider, caps, feature, selection_options))
        request_extra.update(extra or {})

        return ChatRequest(
            provider=to_service_provider_id(provider),
            model=caps.model_name,
            messages=chat_messages,
            max_tokens=max_tokens,
            temperature=temperature,
            tools=tools,
            response_format=response_format,
            json_schema=json_schema,
            extra=request_extra,
        )

    async def _frames(self, request: ChatRequest, session: StreamSession) -> AsyncIterator[StreamDelta]:
        try:
            async with aclosing(self.client.stream_chat(request)) as chunks, aclosing(iter_frames(chunks)) as frames:
                async for frame in frames:
                    yield frame
            return
        except StreamUnavailableError as exc:
            logger.warning(f"{exc.message}; falling back to a single /api/chat call")

        session.pause_idle_timer()
        response = await self.client.post_chat(request)
        yield TextDelta(delta=text_from_response(response))
        yield FinalDelta(response=response)

    async def send_chat(
        self,
        provider: str,
        model: str,
        messages: Sequence[ChatMessage],
        *,
        on_text: OnText,
        on_final: OnFinal,
        on_error: OnError,
        abort_handle: AbortHandle | None = None,
        system_message: str | None = None,
        settings_of_provider: Mapping[str, Any] | None = None,
        idle_timeout: float | None = None,
        total_timeout: float | None = None,
        **request_options: Any,
    ) -> StreamSession:
        """Stream one chat turn, reporting through the callbacks.

        Exactly one of ``on_final`` or ``on_error`` is called unless the
        request is aborted, in which case neither is.

        Args:
            provider: IDE-facing provider id.
            model: Model id as selected by the user.
            messages: Conversation so far.
            on_text: Receives the accumulated text after each delta.
            on_final: Receives the full text and an optional tool call.
            on_error: Receives a plain, user-facing error message.
            abort_handle: Handle the caller may use to cancel the request.
            system_message: Optional leading system message.
            settings_of_provider: Provider settings; an ``api_key`` is synced first.
            idle_timeout: Overrides the configured idle window.
            total_timeout: Overrides the configured total ceiling.
            **request_options: Forwarded to ``build_request``.

        Returns:
            The finished session.
        """
        stream_config = get_sdk_config().stream
        session = StreamSession(
            on_text,
            on_final,
            on_error,
            idle_timeout=idle_timeout if idle_timeout is not None else stream_config.idle_timeout,
            total_timeout=total_timeout if total_timeout is not None else stream_config.total_timeout,
            format_error=lambda exc: friendly_error_message(provider, exc),
        )
        handle = abort_handle or AbortHandle()
        handle.set_aborter(session.abort)
        if session.done:
            return session

        try:
            request = self.build_request(provider, model, messages, system_message, **request_options)
            await self._ensure_service()
            if settings_of_provider is not None:
                await self.key_sync.sync_from_settings(provider, settings_of_provider)
        except CompanionError as exc:
            session.fail(exc)
            return session

        if not session.done:
            await session.run(self._frames(request, session))
        return session

    def send_fim(self, provider: str, *, on_error: OnError, abort_handle: AbortHandle | None = None) -> AbortHandle:
        """Reject fill-in-the-middle immediately; the returned handle does nothing."""
        handle = abort_handle or AbortHandle()
        handle.set_aborter(lambda: None)
        error = UnsupportedOperationError(f"Fill-in-the-middle is not supported for provider {provider!r}.")
        on_error(error.message)
        return handle

    async def health(self) -> HealthReport:
        await self._ensure_service()
        return await self.client.health()

    async def list_providers(self) -> list[ProviderDescriptor]:
        await self._ensure_service()
        return await self.client.list_providers()

    async def list_models(self, provider: str, refresh: bool = False) -> list[ModelDescriptor]:
        """Fetch a provider's registry and replace its overlay with it."""
        await self._ensure_service()
        models = await self.client.list_models(to_service_provider_id(provider), refresh=refresh)
        self.overlay_store.replace(provider, build_overlay_for_models(models))
        return models

    async def run_refresh_loop(self, providers: Iterable[str], interval: float = 300.0) -> None:
        """Refresh overlays for ``providers`` every ``interval`` seconds until cancelled."""
        providers = list(providers)
        while True:
            for provider in providers:
                try:
                    await self.list_models(provider)
                except CompanionError as exc:
                    logger.warning(f"Model refresh for {provider} failed: {exc.message}")
            await asyncio.sleep(interval)
