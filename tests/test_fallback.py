import pytest

from companion_sdk.catalog import get_default_catalog
from companion_sdk.fallback import FallbackMatcher
from companion_sdk.resolver import CapabilityResolver
from companion_sdk.schemas import Downloadable


@pytest.fixture
def matcher():
    return FallbackMatcher(get_default_catalog())


def test_local_provider_replays_open_model_entry(matcher):
    match = matcher.match("ollama", "llama3.1:8b-instruct")
    assert match.recognized_model_name == "llama3.1"
    assert match.capabilities.downloadable == Downloadable(size_gb="not-known")
    assert match.capabilities.cost.input == 0
    assert match.capabilities.cost.output == 0


def test_exact_open_model_key_wins_over_rules(matcher):
    match = matcher.match("vLLM", "QwQ")
    assert match.recognized_model_name == "qwq"


def test_separated_system_message_becomes_system_role(matcher):
    match = matcher.match("openRouter", "anthropic/claude-3.7-sonnet")
    assert match.recognized_model_name == "claude-3-7-sonnet-20250219"
    assert match.capabilities.supports_system_message == "system-role"
    assert match.capabilities.special_tool_format == "anthropic-style"


def test_openrouter_gemini_uses_openai_tool_format(matcher):
    match = matcher.match("openRouter", "google/gemini-2.5-pro-preview")
    assert match.recognized_model_name == "gemini-2.5-pro"
    assert match.capabilities.special_tool_format == "openai-style"
    assert match.capabilities.downloadable is False


def test_lmstudio_forces_small_context_window(matcher):
    match = matcher.match("lmStudio", "qwen2.5-coder-7b-instruct")
    assert match.recognized_model_name == "qwen2.5coder"
    assert match.capabilities.context_window == 4_096


def test_more_specific_family_is_matched_first(matcher):
    assert matcher.match("openAI", "gpt-4.1-mini-2025-04-14").recognized_model_name == "gpt-4.1-mini"
    assert matcher.match("openAI", "gpt-4o-mini-2024-07-18").recognized_model_name == "gpt-4o-mini"
    assert matcher.match("openAICompatible", "deepseek-r1-distill").recognized_model_name == "deepseekR1"


def test_own_table_provider_matches_its_families(matcher):
    assert matcher.match("xAI", "grok-3-mini-beta").recognized_model_name == "grok-3-mini"
    assert matcher.match("gemini", "gemini-2.5-flash-preview-05-20").recognized_model_name == "gemini-2.5-flash"
    assert matcher.match("deepseek", "deepseek-r1").recognized_model_name == "deepseek-reasoner"


def test_own_table_provider_keeps_cost(matcher):
    match = matcher.match("gemini", "gemini-2.5-pro-exp")
    assert match.capabilities.cost.input > 0
    assert match.capabilities.supports_system_message == "system-role"


def test_no_heuristics_for_bedrock(matcher):
    assert matcher.match("awsBedrock", "anthropic.claude-3-7-sonnet") is None


def test_unmatched_id_returns_none(matcher):
    assert matcher.match("ollama", "my-private-finetune") is None


def test_generic_shape_for_bedrock_and_vertex(matcher):
    bedrock = matcher.generic_shape("awsBedrock", "meta.llama3-70b")
    assert bedrock.recognized_model_name == "meta.llama3-70b"
    assert bedrock.capabilities.supports_system_message == "system-role"
    assert bedrock.capabilities.special_tool_format is None
    assert matcher.generic_shape("googleVertex", "google/gemini-pro") is not None
    assert matcher.generic_shape("awsBedrock", "totally-unknown-id") is None
    assert matcher.generic_shape("openAI", "anthropic.claude") is None


def test_heuristic_hit_counts_as_recognized():
    caps = CapabilityResolver().resolve("ollama", "deepseek-coder-v2:16b")
    assert caps.is_unrecognized_model is False
    assert caps.recognized_model_name == "deepseekCoderV2"
    assert caps.model_name == "deepseek-coder-v2:16b"
