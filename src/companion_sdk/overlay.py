"""Refreshable per-provider capability overlay fed by the companion model registry."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Mapping

from companion_sdk.logger import logger
from companion_sdk.schemas import ModelDescriptor

OverlayEntry = Mapping[str, Any]

_EMPTY: Mapping[str, OverlayEntry] = MappingProxyType({})

_SYSTEM_MESSAGE_VALUES = {"none", "system-role", "developer-role", "separated"}
_TOOL_FORMATS = {
    "openai": "openai-style",
    "openai-style": "openai-style",
    "anthropic": "anthropic-style",
    "anthropic-style": "anthropic-style",
    "gemini": "gemini-style",
    "gemini-style": "gemini-style",
}


class OverlayStore:
    """Owns the overlay snapshots, one immutable mapping per provider.

    ``replace`` swaps a provider's whole snapshot; nothing is merged across
    refreshes. ``get`` matches model ids exactly, without case folding.
    """

    def __init__(self):
        self._by_provider: dict[str, Mapping[str, OverlayEntry]] = {}

    def replace(self, provider: str, mapping: Mapping[str, OverlayEntry]) -> None:
        frozen = {model_id: MappingProxyType(dict(entry)) for model_id, entry in mapping.items()}
        self._by_provider[provider] = MappingProxyType(frozen)
        logger.debug(f"Overlay for {provider} replaced with {len(frozen)} entries")

    def get(self, provider: str, model_id: str) -> OverlayEntry | None:
        return self._by_provider.get(provider, _EMPTY).get(model_id)

    def snapshot(self, provider: str) -> Mapping[str, OverlayEntry]:
        return self._by_provider.get(provider, _EMPTY)

    def providers(self) -> list[str]:
        return list(self._by_provider)

    def clear(self, provider: str | None = None) -> None:
        if provider is None:
            self._by_provider = {}
        else:
            self._by_provider.pop(provider, None)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _reasoning_overlay(raw: Mapping[str, Any]) -> dict[str, Any] | bool | None:
    supports = raw.get("supports_reasoning")
    if supports is False:
        return False
    if supports is not True:
        return None

    reasoning: dict[str, Any] = {
        "supports_reasoning": True,
        "can_turn_off_reasoning": raw.get("can_turn_off_reasoning", True) is not False,
        "can_io_reasoning": raw.get("can_io_reasoning") is True,
    }
    if _is_number(reserved := raw.get("reserved_output_token_space")):
        reasoning["reasoning_reserved_output_token_space"] = int(reserved)

    slider = raw.get("slider")
    if isinstance(slider, Mapping):
        if all(_is_number(slider.get(k)) for k in ("min", "max", "default")):
            reasoning["reasoning_slider"] = {
                "type": "budget_slider",
                "min": int(slider["min"]),
                "max": int(slider["max"]),
                "default": int(slider["default"]),
            }
        elif isinstance(values := slider.get("values"), list) and values:
            default = slider.get("default")
            reasoning["reasoning_slider"] = {
                "type": "effort_slider",
                "values": [str(v) for v in values],
                "default": str(default) if isinstance(default, str) and default else str(values[0]),
            }

    tags = raw.get("think_tags")
    if isinstance(tags, (list, tuple)) and len(tags) == 2:
        reasoning["open_source_think_tags"] = (str(tags[0]), str(tags[1]))
    return reasoning


def _capabilities_of(model: ModelDescriptor) -> Mapping[str, Any]:
    if model.capabilities:
        return model.capabilities
    if isinstance(raw := model.metadata.get("raw"), Mapping):
        if isinstance(caps := raw.get("capabilities"), Mapping):
            return caps
    return {}


def overlay_entry_for_model(model: ModelDescriptor) -> dict[str, Any]:
    """Convert one registry descriptor into a partial capability record.

    Only fields the registry actually reports are emitted.
    """
    caps = _capabilities_of(model)
    entry: dict[str, Any] = {}

    context = caps.get("context_window") or model.context_length
    if _is_number(context) and context > 0:
        entry["context_window"] = int(context)

    if _is_number(reserved := caps.get("reserved_output_token_space")):
        entry["reserved_output_token_space"] = int(reserved)

    system_message = caps.get("system_message")
    if system_message is False:
        entry["supports_system_message"] = "none"
    elif system_message in _SYSTEM_MESSAGE_VALUES:
        entry["supports_system_message"] = system_message

    if (tool_format := _TOOL_FORMATS.get(str(caps.get("tool_format", "")).lower())) is not None:
        entry["special_tool_format"] = tool_format

    if isinstance(fim := caps.get("fim"), bool):
        entry["supports_fim"] = fim

    if isinstance(tools := caps.get("tools"), bool):
        entry["tools_supported"] = tools

    if _is_number(max_calls := caps.get("max_tool_calls_per_turn")):
        entry["max_tool_calls_per_turn"] = int(max_calls)

    if isinstance(raw_reasoning := caps.get("reasoning"), Mapping):
        if (reasoning := _reasoning_overlay(raw_reasoning)) is not None:
            entry["reasoning_capabilities"] = reasoning

    return entry


def build_overlay_for_models(models: Iterable[ModelDescriptor]) -> dict[str, dict[str, Any]]:
    """Build a provider overlay from a registry snapshot, skipping empty entries."""
    overlay: dict[str, dict[str, Any]] = {}
    for model in models:
        if entry := overlay_entry_for_model(model):
            overlay[model.id] = entry
    return overlay
