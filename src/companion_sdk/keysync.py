"""Normalized, deduplicated credential pushes to the companion service."""

from __future__ import annotations

from typing import Any, Mapping

from companion_sdk.client import CompanionClient
from companion_sdk.errors import ProtocolError, ProviderError, TransportError
from companion_sdk.logger import logger
from companion_sdk.providers import credential_env_var, to_service_provider_id


def normalize_key(raw: str | None) -> str | None:
    """Return the trimmed key, or None for values that must never be sent.

    Empty, whitespace-only, fully masked (``*****``) and non-ASCII values are
    rejected.
    """
    if not raw:
        return None
    trimmed = raw.strip()
    if not trimmed or not trimmed.isascii():
        return None
    if set(trimmed) == {"*"}:
        return None
    return trimmed


class KeySyncGateway:
    """Pushes provider API keys to the companion service at most once per value.

    The dedup cache is keyed by credential slot, not provider id, so providers
    sharing a slot (``openAI`` and ``openAICompatible``) share one cache entry.
    """

    def __init__(self, client: CompanionClient):
        self.client = client
        self._last_sent: dict[str, str] = {}

    async def push(self, provider: str, raw_value: str | None) -> bool:
        """Send a key if it is valid, mapped and changed.

        Returns:
            True if a network call was made.
        """
        env_name = credential_env_var(provider)
        if env_name is None:
            return False
        value = normalize_key(raw_value)
        if value is None:
            return False
        if self._last_sent.get(env_name) == value:
            return False

        logger.info(f"Posting {env_name} to the companion service for {provider}")
        await self.client.post_keys({env_name: value})
        self._last_sent[env_name] = value
        return True

    async def sync_from_settings(self, provider: str, settings_of_provider: Mapping[str, Any] | None) -> bool:
        """Push the UI-provided ``api_key`` from a provider's settings."""
        raw = (settings_of_provider or {}).get("api_key")
        return await self.push(provider, raw if isinstance(raw, str) else None)

    async def delete(self, provider: str) -> None:
        """Remove a provider's key; failures are logged, never raised."""
        service_id = to_service_provider_id(provider)
        try:
            await self.client.delete_provider_key(service_id)
        except (TransportError, ProtocolError, ProviderError) as exc:
            logger.error(f"Failed to delete key for {provider} ({service_id}): {exc}")
            return
        if (env_name := credential_env_var(provider)) is not None:
            self._last_sent.pop(env_name, None)
