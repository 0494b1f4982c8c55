"""Validated, read-only view over the static capability tables."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Mapping

from companion_sdk.catalog_data import DEFAULT_MODEL_OPTIONS, OPEN_SOURCE_MODELS, PROVIDER_MODELS
from companion_sdk.schemas import ModelCapabilities


def _validate_table(table: Mapping[str, Mapping[str, Any]]) -> dict[str, ModelCapabilities]:
    return {name: ModelCapabilities.model_validate(record) for name, record in table.items()}


class CapabilityCatalog:
    """Static per-provider model tables plus the shared open-model table.

    Records are validated once at construction; lookups never mutate state.
    """

    def __init__(
        self,
        provider_models: Mapping[str, Mapping[str, Mapping[str, Any]]] | None = None,
        open_source_models: Mapping[str, Mapping[str, Any]] | None = None,
        default_options: Mapping[str, Any] | None = None,
    ):
        tables = PROVIDER_MODELS if provider_models is None else provider_models
        self._tables = {provider: _validate_table(table) for provider, table in tables.items()}
        self._folded = {
            provider: {name.lower(): name for name in table} for provider, table in self._tables.items()
        }
        self._open_source = _validate_table(OPEN_SOURCE_MODELS if open_source_models is None else open_source_models)
        self._open_source_folded = {name.lower(): name for name in self._open_source}
        self.default_model_options = ModelCapabilities.model_validate(default_options or DEFAULT_MODEL_OPTIONS)

    def providers(self) -> list[str]:
        return list(self._tables)

    def models(self, provider: str) -> list[str]:
        return list(self._tables.get(provider, {}))

    def lookup(self, provider: str, model_id: str) -> tuple[str, ModelCapabilities] | None:
        """Case-insensitive lookup in the provider's table.

        Returns:
            The canonical table key and its record, or None.
        """
        canonical = self._folded.get(provider, {}).get(model_id.lower())
        if canonical is None:
            return None
        return canonical, self._tables[provider][canonical]

    def get(self, provider: str, canonical_name: str) -> ModelCapabilities:
        return self._tables[provider][canonical_name]

    def lookup_open_source(self, model_id: str) -> tuple[str, ModelCapabilities] | None:
        canonical = self._open_source_folded.get(model_id.lower())
        if canonical is None:
            return None
        return canonical, self._open_source[canonical]

    def get_open_source(self, canonical_name: str) -> ModelCapabilities:
        return self._open_source[canonical_name]


@lru_cache(maxsize=1)
def get_default_catalog() -> CapabilityCatalog:
    """Return the catalog built from the bundled tables."""
    return CapabilityCatalog()
