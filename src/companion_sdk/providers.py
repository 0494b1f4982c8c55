"""Provider identifiers and the per-provider wiring that is not model data."""

from __future__ import annotations

from typing import Any, Callable, Literal, get_args

from companion_sdk.schemas import BudgetReasoningValue, EffortReasoningValue, SendableReasoningInfo

ProviderName = Literal[
    "openAI",
    "anthropic",
    "xAI",
    "gemini",
    "deepseek",
    "groq",
    "openRouter",
    "vLLM",
    "ollama",
    "openAICompatible",
    "mistral",
    "liteLLM",
    "lmStudio",
    "googleVertex",
    "microsoftAzure",
    "awsBedrock",
]

PROVIDER_NAMES: tuple[str, ...] = get_args(ProviderName)

# IDE-facing id -> companion-service id. Unlisted ids are lower-cased.
SERVICE_PROVIDER_ALIASES: dict[str, str] = {
    "openAI": "openai",
    "openAICompatible": "openai",
    "openRouter": "openrouter",
    "xAI": "xai",
    "googleVertex": "googlevertex",
    "microsoftAzure": "microsoftazure",
    "awsBedrock": "awsbedrock",
    "liteLLM": "litellm",
    "vLLM": "vllm",
    "lmStudio": "lmstudio",
}

# Credential slot each provider's API key is stored under by the service.
CREDENTIAL_ENV_VARS: dict[str, str] = {
    "openAI": "OPENAI_API_KEY",
    "openAICompatible": "OPENAI_API_KEY",
    "openRouter": "OPENROUTER_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "xAI": "XAI_API_KEY",
}

DISPLAY_NAMES: dict[str, str] = {
    "openAI": "OpenAI",
    "anthropic": "Anthropic",
    "xAI": "Grok (xAI)",
    "gemini": "Gemini",
    "deepseek": "DeepSeek",
    "groq": "Groq",
    "openRouter": "OpenRouter",
    "vLLM": "vLLM",
    "ollama": "Ollama",
    "openAICompatible": "OpenAI-Compatible",
    "mistral": "Mistral",
    "liteLLM": "LiteLLM",
    "lmStudio": "LM Studio",
    "googleVertex": "Google Vertex AI",
    "microsoftAzure": "Microsoft Azure OpenAI",
    "awsBedrock": "AWS Bedrock",
}


def is_known_provider(provider: str) -> bool:
    return provider in PROVIDER_NAMES


def to_service_provider_id(provider: str) -> str:
    """Translate an IDE provider id to the companion service's lowercase id."""
    return SERVICE_PROVIDER_ALIASES.get(provider, provider.lower())


def display_name(provider: str) -> str:
    return DISPLAY_NAMES.get(provider, provider)


def credential_env_var(provider: str) -> str | None:
    return CREDENTIAL_ENV_VARS.get(provider)


PayloadEncoder = Callable[[SendableReasoningInfo], "dict[str, Any] | None"]


def _openai_compatible_payload(info: SendableReasoningInfo) -> dict[str, Any] | None:
    if isinstance(info, EffortReasoningValue):
        return {"reasoning_effort": info.reasoning_effort}
    return None


def _anthropic_payload(info: SendableReasoningInfo) -> dict[str, Any] | None:
    if isinstance(info, BudgetReasoningValue):
        return {"thinking": {"type": "enabled", "budget_tokens": info.reasoning_budget}}
    return None


def _groq_payload(info: SendableReasoningInfo) -> dict[str, Any] | None:
    # Groq requires parsed (or hidden) reasoning when tools are in play
    if isinstance(info, BudgetReasoningValue):
        return {"reasoning_format": "parsed"}
    return None


def _openrouter_payload(info: SendableReasoningInfo) -> dict[str, Any] | None:
    if isinstance(info, BudgetReasoningValue):
        return {"reasoning": {"max_tokens": info.reasoning_budget}}
    if isinstance(info, EffortReasoningValue):
        return {"reasoning": {"effort": info.reasoning_effort}}
    return None


REASONING_ENCODERS: dict[str, PayloadEncoder | None] = {
    "openAI": _openai_compatible_payload,
    "anthropic": _anthropic_payload,
    "xAI": _openai_compatible_payload,
    "gemini": None,
    "deepseek": _openai_compatible_payload,
    "groq": _groq_payload,
    "openRouter": _openrouter_payload,
    "vLLM": _openai_compatible_payload,
    "ollama": _openai_compatible_payload,
    "openAICompatible": _openai_compatible_payload,
    "mistral": _openai_compatible_payload,
    "liteLLM": _openai_compatible_payload,
    "lmStudio": _openai_compatible_payload,
    "googleVertex": _openai_compatible_payload,
    "microsoftAzure": _openai_compatible_payload,
    "awsBedrock": None,
}


def reasoning_payload(provider: str, info: SendableReasoningInfo) -> dict[str, Any] | None:
    """Return the request fragment enabling reasoning for ``provider``, if any."""
    if info is None:
        return None
    encode = REASONING_ENCODERS.get(provider)
    if encode is None:
        return None
    return encode(info)
