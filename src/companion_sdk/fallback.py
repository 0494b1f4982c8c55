"""
Family heuristics mapping unrecognized model ids onto the closest static entry.

Rules only look at the lower-cased model id. The first matching rule wins, so
more specific families are listed before the broader ones they overlap with.
"""

from __future__ import annotations

from typing import Any, Callable, Final, NamedTuple

from companion_sdk.catalog import CapabilityCatalog
from companion_sdk.schemas import ModelCapabilities

# None stands for the shared open-model table.
TableRef = tuple["str | None", str]
Rule = tuple[Callable[[str], bool], TableRef]


class FallbackMatch(NamedTuple):
    recognized_model_name: str
    capabilities: ModelCapabilities


def _norm(model_id: str) -> str:
    return model_id.lower().strip()


def _has_all(*fragments: str) -> Callable[[str], bool]:
    return lambda s: all(f in s for f in fragments)


def _has_any(*fragments: str) -> Callable[[str], bool]:
    return lambda s: any(f in s for f in fragments)


def _starts_with(*prefixes: str) -> Callable[[str], bool]:
    return lambda s: s.startswith(prefixes)


_EXTENSIVE_RULES: Final[tuple[Rule, ...]] = (
    (lambda s: "gemini" in s and ("2.5" in s or "2-5" in s), ("gemini", "gemini-2.5-pro")),
    (_has_any("claude-3-5", "claude-3.5"), ("anthropic", "claude-3-5-sonnet-20241022")),
    (_has_any("claude"), ("anthropic", "claude-3-7-sonnet-20250219")),
    (_has_any("grok-2"), ("xAI", "grok-2")),
    (_has_any("grok"), ("xAI", "grok-3")),
    (_has_any("deepseek-r1", "deepseek-reasoner"), (None, "deepseekR1")),
    (_has_all("deepseek", "v2"), (None, "deepseekCoderV2")),
    (_has_any("deepseek"), (None, "deepseekCoderV3")),
    (_has_any("llama3.1", "llama-3.1"), (None, "llama3.1")),
    (_has_any("llama3", "llama-3"), (None, "llama3")),
    (_has_all("qwen", "2.5", "coder"), (None, "qwen2.5coder")),
    (_has_all("qwen", "3"), (None, "qwen3")),
    (_has_any("qwq"), (None, "qwq")),
    (_has_any("phi4", "phi-4"), (None, "phi4")),
    (_has_any("codestral"), (None, "codestral")),
    (_has_any("devstral"), (None, "devstral")),
    (_has_any("gemma"), (None, "gemma")),
    (_has_any("starcoder2"), (None, "starcoder2")),
    (_has_any("openhands"), (None, "openhands")),
    (_has_any("gpt-4.1-mini"), ("openAI", "gpt-4.1-mini")),
    (_has_any("gpt-4.1-nano"), ("openAI", "gpt-4.1-nano")),
    (_has_any("gpt-4.1"), ("openAI", "gpt-4.1")),
    (_has_any("o4-mini"), ("openAI", "o4-mini")),
    (_starts_with("o1"), ("openAI", "o1")),
    (_starts_with("o3"), ("openAI", "o3")),
    (_has_any("gpt-4o-mini"), ("openAI", "gpt-4o-mini")),
    (_has_any("gpt-4o"), ("openAI", "gpt-4o")),
)

_OWN_TABLE_RULES: Final[dict[str, tuple[Rule, ...]]] = {
    "xAI": (
        (_has_any("grok-2"), ("xAI", "grok-2")),
        (_has_all("grok-3", "mini"), ("xAI", "grok-3-mini")),
        (_has_any("grok"), ("xAI", "grok-3")),
    ),
    "gemini": (
        (lambda s: ("2.5" in s or "2-5" in s) and "flash" in s, ("gemini", "gemini-2.5-flash")),
        (_has_any("2.5", "2-5"), ("gemini", "gemini-2.5-pro")),
        (_has_any("2.0", "2-0"), ("gemini", "gemini-2.0-flash")),
        (_has_any("1.5", "1-5"), ("gemini", "gemini-1.5-pro")),
    ),
    "deepseek": (
        (_has_any("reasoner", "r1"), ("deepseek", "deepseek-reasoner")),
        (_has_any("deepseek"), ("deepseek", "deepseek-chat")),
    ),
    "mistral": (
        (_has_any("codestral"), ("mistral", "codestral-latest")),
        (_has_any("devstral"), ("mistral", "devstral-small-latest")),
        (_has_any("large"), ("mistral", "mistral-large-latest")),
    ),
    "groq": (
        (_has_any("qwq"), ("groq", "qwen-qwq-32b")),
        (_has_any("llama"), ("groq", "llama-3.3-70b-versatile")),
    ),
}

_LOCAL_DOWNLOAD: Final[dict[str, Any]] = {"downloadable": {"size_gb": "not-known"}}

# Providers routed through the extensive heuristics, with values known to hold
# for every model served by that provider.
_EXTENSIVE_PROVIDERS: Final[dict[str, dict[str, Any]]] = {
    "openAI": {},
    "anthropic": {},
    "openRouter": {},
    "openAICompatible": {},
    "ollama": _LOCAL_DOWNLOAD,
    "vLLM": _LOCAL_DOWNLOAD,
    "liteLLM": _LOCAL_DOWNLOAD,
    "lmStudio": {**_LOCAL_DOWNLOAD, "context_window": 4_096},
}

# Providers whose ids follow a recognizable lexical shape.
_GENERIC_SHAPE_PREFIXES: Final[dict[str, tuple[str, ...]]] = {
    "awsBedrock": ("anthropic.", "amazon.", "meta.", "mistral.", "cohere.", "ai21.", "us.", "eu.", "apac."),
    "googleVertex": ("google/", "meta/", "mistralai/", "anthropic/"),
}


def _normalize_system_message(record: dict[str, Any]) -> None:
    if record.get("supports_system_message") == "separated":
        record["supports_system_message"] = "system-role"


class FallbackMatcher:
    """Heuristic tiers of capability resolution for ids missing from the static tables."""

    def __init__(self, catalog: CapabilityCatalog):
        self.catalog = catalog

    def _entry(self, ref: TableRef) -> tuple[str, ModelCapabilities] | None:
        provider, key = ref
        try:
            caps = self.catalog.get_open_source(key) if provider is None else self.catalog.get(provider, key)
        except KeyError:
            # custom catalogs may omit rule targets
            return None
        return key, caps

    def _first_match(self, rules: tuple[Rule, ...], model_id: str) -> tuple[str, ModelCapabilities] | None:
        s = _norm(model_id)
        for predicate, ref in rules:
            if predicate(s):
                return self._entry(ref)
        return None

    def match(self, provider: str, model_id: str) -> FallbackMatch | None:
        """Redirect ``model_id`` to the nearest static entry for ``provider``.

        Returns:
            The matched canonical name and the replayed record, or None when
            the provider has no heuristics or nothing matched.
        """
        if provider in _EXTENSIVE_PROVIDERS:
            found = self.catalog.lookup_open_source(_norm(model_id))
            if found is None:
                found = self._first_match(_EXTENSIVE_RULES, model_id)
            if found is None:
                return None
            name, caps = found
            record = caps.model_dump()
            _normalize_system_message(record)
            record["cost"] = {"input": 0, "output": 0}
            record["downloadable"] = False
            record.update(_EXTENSIVE_PROVIDERS[provider])
            if provider == "openRouter" and record.get("special_tool_format") == "gemini-style":
                record["special_tool_format"] = "openai-style"
            return FallbackMatch(name, ModelCapabilities.model_validate(record))

        if (rules := _OWN_TABLE_RULES.get(provider)) is not None:
            found = self._first_match(rules, model_id)
            if found is None:
                return None
            name, caps = found
            record = caps.model_dump()
            _normalize_system_message(record)
            return FallbackMatch(name, ModelCapabilities.model_validate(record))

        return None

    def generic_shape(self, provider: str, model_id: str) -> FallbackMatch | None:
        """Synthesize a conservative chat record for ids with a known provider shape."""
        prefixes = _GENERIC_SHAPE_PREFIXES.get(provider)
        if prefixes is None or not _norm(model_id).startswith(prefixes):
            return None
        record = self.catalog.default_model_options.model_dump()
        record["supports_system_message"] = "system-role"
        record["special_tool_format"] = None
        return FallbackMatch(model_id, ModelCapabilities.model_validate(record))
