"""Layered capability resolution for a (provider, model) pair."""

from __future__ import annotations

import math
from typing import Any, Literal, Mapping

from pydantic import ValidationError as PydanticValidationError

from companion_sdk.catalog import CapabilityCatalog, get_default_catalog
from companion_sdk.fallback import FallbackMatcher
from companion_sdk.logger import logger
from companion_sdk.overlay import OverlayEntry, OverlayStore
from companion_sdk.providers import reasoning_payload
from companion_sdk.schemas import (
    BudgetReasoningValue,
    BudgetSlider,
    EffortReasoningValue,
    EffortSlider,
    ModelCapabilities,
    ModelSelectionOptions,
    Reasoning,
    ResolvedCapabilities,
    SendableReasoningInfo,
)

FeatureName = Literal["Chat", "Ctrl+K", "Autocomplete", "Apply", "SCM"]

# provider -> model id -> partial record
OverridesOfModel = Mapping[str, Mapping[str, Mapping[str, Any]]]

_CAPABILITY_FIELDS = frozenset(ModelCapabilities.model_fields)


class CapabilityResolver:
    """Merges static tables, heuristics, overlay data and user overrides.

    Resolution never fails: a model nobody knows about gets the default record
    and ``is_unrecognized_model=True``.
    """

    def __init__(
        self,
        catalog: CapabilityCatalog | None = None,
        overlay_store: OverlayStore | None = None,
    ):
        self.catalog = catalog or get_default_catalog()
        self.matcher = FallbackMatcher(self.catalog)
        self.overlay_store = overlay_store

    def _base_record(self, provider: str, model_id: str) -> tuple[ModelCapabilities, str | None]:
        if (exact := self.catalog.lookup(provider, model_id)) is not None:
            name, caps = exact
            return caps, name
        if (match := self.matcher.match(provider, model_id)) is not None:
            return match.capabilities, match.recognized_model_name
        if (shape := self.matcher.generic_shape(provider, model_id)) is not None:
            return shape.capabilities, shape.recognized_model_name
        return self.catalog.default_model_options, None

    @staticmethod
    def _apply_layer(
        record: dict[str, Any], layer: Mapping[str, Any] | None, label: str, where: str
    ) -> dict[str, Any]:
        if not layer:
            return record
        fields = {key: value for key, value in layer.items() if key in _CAPABILITY_FIELDS}
        if not fields:
            return record
        candidate = {**record, **fields}
        try:
            return ModelCapabilities.model_validate(candidate).model_dump()
        except PydanticValidationError as exc:
            logger.warning(f"Ignoring invalid {label} for {where}: {exc.error_count()} invalid field(s)")
            return record

    def resolve(
        self,
        provider: str,
        model_id: str,
        overlay: Mapping[str, OverlayEntry] | None = None,
        overrides: OverridesOfModel | None = None,
    ) -> ResolvedCapabilities:
        """Compute the effective capability record.

        Args:
            provider: IDE-facing provider id.
            model_id: Model id as requested by the caller.
            overlay: The provider's overlay snapshot. When omitted, the bound
                overlay store is consulted, if any.
            overrides: User override map keyed by provider, then model id.

        Returns:
            The merged record with its recognition outcome.
        """
        base, recognized_name = self._base_record(provider, model_id)
        resolved_name = recognized_name if recognized_name is not None else model_id

        if overlay is None and self.overlay_store is not None:
            overlay = self.overlay_store.snapshot(provider)
        overlay_entry = (overlay or {}).get(resolved_name)
        if overlay_entry:
            recognized_name = resolved_name

        user_overrides = ((overrides or {}).get(provider) or {}).get(model_id)

        where = f"{provider}/{model_id}"
        record = base.model_dump()
        record = self._apply_layer(record, overlay_entry, "overlay", where)
        record = self._apply_layer(record, user_overrides, "overrides", where)

        return ResolvedCapabilities.model_validate(
            {
                **record,
                "model_name": model_id,
                "recognized_model_name": recognized_name,
                "is_unrecognized_model": recognized_name is None,
            }
        )


def resolve_capabilities(
    provider: str,
    model_id: str,
    overlay: Mapping[str, OverlayEntry] | None = None,
    overrides: OverridesOfModel | None = None,
) -> ResolvedCapabilities:
    """Resolve against the bundled catalog."""
    return CapabilityResolver().resolve(provider, model_id, overlay, overrides)


def is_reasoning_enabled(
    caps: ModelCapabilities, feature: FeatureName, options: ModelSelectionOptions | None = None
) -> bool:
    reasoning = caps.reasoning_capabilities
    if not isinstance(reasoning, Reasoning):
        return False
    # Chat defaults to reasoning on, as does any model that cannot turn it off
    default_enabled = feature == "Chat" or not reasoning.can_turn_off_reasoning
    if options is not None and options.reasoning_enabled is not None:
        return options.reasoning_enabled
    return default_enabled


def reserved_output_token_space(caps: ModelCapabilities, reasoning_enabled: bool) -> int | None:
    reasoning = caps.reasoning_capabilities
    if reasoning_enabled and isinstance(reasoning, Reasoning):
        return reasoning.reasoning_reserved_output_token_space
    return caps.reserved_output_token_space


def sendable_reasoning_info(
    caps: ModelCapabilities, feature: FeatureName, options: ModelSelectionOptions | None = None
) -> SendableReasoningInfo:
    """Collapse reasoning state into the single value a request needs."""
    reasoning = caps.reasoning_capabilities
    if not isinstance(reasoning, Reasoning) or not is_reasoning_enabled(caps, feature, options):
        return None
    slider = reasoning.reasoning_slider

    if isinstance(slider, BudgetSlider):
        budget = options.reasoning_budget if options and options.reasoning_budget is not None else slider.default
        if budget:
            return BudgetReasoningValue(reasoning_budget=budget)
    if isinstance(slider, EffortSlider):
        effort = options.reasoning_effort if options and options.reasoning_effort else slider.default
        if effort:
            return EffortReasoningValue(reasoning_effort=effort)
    return None


def tools_enabled(caps: ModelCapabilities) -> bool:
    if caps.tools_supported is None:
        return True
    return caps.tools_supported


def max_tool_calls_per_turn(caps: ModelCapabilities) -> int | None:
    value = caps.max_tool_calls_per_turn
    if value is not None and math.isfinite(value) and value > 0:
        return value
    return None


def reasoning_request_fields(
    provider: str, caps: ModelCapabilities, feature: FeatureName, options: ModelSelectionOptions | None = None
) -> dict[str, Any]:
    """Payload fields to merge into a chat request for reasoning control."""
    fields = dict(caps.additional_openai_payload or {})
    fields.update(reasoning_payload(provider, sendable_reasoning_info(caps, feature, options)) or {})
    return fields
