"""Static capability tables, keyed by provider then canonical model id.

Records use the field names of ``ModelCapabilities`` and are validated once
when ``CapabilityCatalog`` loads them.
"""

THINK_TAGS = ("<think>", "</think>")

_OPENAI_EFFORT = {"type": "effort_slider", "values": ["low", "medium", "high"], "default": "low"}
_ANTHROPIC_BUDGET = {"type": "budget_slider", "min": 1024, "max": 8192, "default": 1024}
_GEMINI_BUDGET = {"type": "budget_slider", "min": 1024, "max": 8192, "default": 1024}

DEFAULT_MODEL_OPTIONS = {
    "context_window": 128_000,
    "reserved_output_token_space": 8_192,
    "supports_system_message": "none",
    "special_tool_format": None,
    "supports_fim": False,
    "reasoning_capabilities": False,
    "cost": {"input": 0, "output": 0},
    "downloadable": False,
}

OPEN_SOURCE_MODELS = {
    "deepseekR1": {
        "context_window": 32_000,
        "reserved_output_token_space": 4_096,
        "supports_system_message": "none",
        "supports_fim": False,
        "reasoning_capabilities": {
            "supports_reasoning": True,
            "can_turn_off_reasoning": False,
            "can_io_reasoning": True,
            "open_source_think_tags": THINK_TAGS,
        },
    },
    "deepseekCoderV3": {
        "context_window": 32_000,
        "reserved_output_token_space": 4_096,
        "supports_system_message": "none",
        "supports_fim": False,
    },
    "deepseekCoderV2": {
        "context_window": 32_000,
        "reserved_output_token_space": 4_096,
        "supports_system_message": "none",
        "supports_fim": False,
    },
    "codestral": {
        "context_window": 32_000,
        "reserved_output_token_space": 4_096,
        "supports_system_message": "system-role",
        "supports_fim": True,
    },
    "devstral": {
        "context_window": 131_000,
        "reserved_output_token_space": 8_192,
        "supports_system_message": "system-role",
        "special_tool_format": "openai-style",
        "supports_fim": False,
    },
    "openhands": {
        "context_window": 128_000,
        "reserved_output_token_space": 4_096,
        "supports_system_message": "system-role",
        "supports_fim": False,
    },
    "phi4": {
        "context_window": 16_000,
        "reserved_output_token_space": 4_096,
        "supports_system_message": "system-role",
        "supports_fim": False,
    },
    "gemma": {
        "context_window": 32_000,
        "reserved_output_token_space": 4_096,
        "supports_system_message": "system-role",
        "supports_fim": False,
    },
    "llama3": {
        "context_window": 32_000,
        "reserved_output_token_space": 4_096,
        "supports_system_message": "system-role",
        "supports_fim": False,
    },
    "llama3.1": {
        "context_window": 32_000,
        "reserved_output_token_space": 4_096,
        "supports_system_message": "system-role",
        "special_tool_format": "openai-style",
        "supports_fim": False,
    },
    "qwen2.5coder": {
        "context_window": 32_000,
        "reserved_output_token_space": 4_096,
        "supports_system_message": "system-role",
        "supports_fim": True,
    },
    "qwen3": {
        "context_window": 32_768,
        "reserved_output_token_space": 8_192,
        "supports_system_message": "system-role",
        "special_tool_format": "openai-style",
        "supports_fim": False,
        "reasoning_capabilities": {
            "supports_reasoning": True,
            "can_turn_off_reasoning": True,
            "can_io_reasoning": True,
            "open_source_think_tags": THINK_TAGS,
        },
    },
    "qwq": {
        "context_window": 128_000,
        "reserved_output_token_space": 8_192,
        "supports_system_message": "none",
        "supports_fim": False,
        "reasoning_capabilities": {
            "supports_reasoning": True,
            "can_turn_off_reasoning": False,
            "can_io_reasoning": True,
            "open_source_think_tags": THINK_TAGS,
        },
    },
    "starcoder2": {
        "context_window": 128_000,
        "reserved_output_token_space": 8_192,
        "supports_system_message": "none",
        "supports_fim": True,
    },
}

PROVIDER_MODELS = {
    "openAI": {
        "gpt-4.1": {
            "context_window": 1_047_576,
            "reserved_output_token_space": 32_768,
            "cost": {"input": 2.0, "output": 8.0, "cache_read": 0.5},
            "supports_system_message": "developer-role",
            "special_tool_format": "openai-style",
        },
        "gpt-4.1-mini": {
            "context_window": 1_047_576,
            "reserved_output_token_space": 32_768,
            "cost": {"input": 0.4, "output": 1.6, "cache_read": 0.1},
            "supports_system_message": "developer-role",
            "special_tool_format": "openai-style",
        },
        "gpt-4.1-nano": {
            "context_window": 1_047_576,
            "reserved_output_token_space": 32_768,
            "cost": {"input": 0.1, "output": 0.4, "cache_read": 0.03},
            "supports_system_message": "developer-role",
            "special_tool_format": "openai-style",
        },
        "o3": {
            "context_window": 1_047_576,
            "reserved_output_token_space": 32_768,
            "cost": {"input": 10.0, "output": 40.0, "cache_read": 2.5},
            "supports_system_message": "developer-role",
            "special_tool_format": "openai-style",
            "reasoning_capabilities": {
                "supports_reasoning": True,
                "can_turn_off_reasoning": False,
                "can_io_reasoning": False,
                "reasoning_slider": _OPENAI_EFFORT,
            },
        },
        "o4-mini": {
            "context_window": 1_047_576,
            "reserved_output_token_space": 32_768,
            "cost": {"input": 1.1, "output": 4.4, "cache_read": 0.275},
            "supports_system_message": "developer-role",
            "special_tool_format": "openai-style",
            "reasoning_capabilities": {
                "supports_reasoning": True,
                "can_turn_off_reasoning": False,
                "can_io_reasoning": False,
                "reasoning_slider": _OPENAI_EFFORT,
            },
        },
        "o1": {
            "context_window": 128_000,
            "reserved_output_token_space": 100_000,
            "cost": {"input": 15.0, "output": 60.0, "cache_read": 7.5},
            "supports_system_message": "developer-role",
            "special_tool_format": "openai-style",
            "reasoning_capabilities": {
                "supports_reasoning": True,
                "can_turn_off_reasoning": False,
                "can_io_reasoning": False,
                "reasoning_slider": _OPENAI_EFFORT,
            },
        },
        "gpt-4o": {
            "context_window": 128_000,
            "reserved_output_token_space": 16_384,
            "cost": {"input": 2.5, "output": 10.0, "cache_read": 1.25},
            "supports_system_message": "system-role",
            "special_tool_format": "openai-style",
        },
        "gpt-4o-mini": {
            "context_window": 128_000,
            "reserved_output_token_space": 16_384,
            "cost": {"input": 0.15, "output": 0.6, "cache_read": 0.075},
            "supports_system_message": "system-role",
            "special_tool_format": "openai-style",
        },
    },
    "anthropic": {
        "claude-sonnet-4-20250514": {
            "context_window": 200_000,
            "reserved_output_token_space": 8_192,
            "cost": {"input": 3.0, "output": 15.0, "cache_read": 0.3, "cache_write": 3.75},
            "supports_system_message": "separated",
            "special_tool_format": "anthropic-style",
            "reasoning_capabilities": {
                "supports_reasoning": True,
                "can_turn_off_reasoning": True,
                "can_io_reasoning": True,
                "reasoning_reserved_output_token_space": 8_192,
                "reasoning_slider": _ANTHROPIC_BUDGET,
            },
        },
        "claude-3-7-sonnet-20250219": {
            "context_window": 200_000,
            "reserved_output_token_space": 8_192,
            "cost": {"input": 3.0, "output": 15.0, "cache_read": 0.3, "cache_write": 3.75},
            "supports_system_message": "separated",
            "special_tool_format": "anthropic-style",
            "reasoning_capabilities": {
                "supports_reasoning": True,
                "can_turn_off_reasoning": True,
                "can_io_reasoning": True,
                "reasoning_reserved_output_token_space": 8_192,
                "reasoning_slider": _ANTHROPIC_BUDGET,
            },
        },
        "claude-3-5-sonnet-20241022": {
            "context_window": 200_000,
            "reserved_output_token_space": 8_192,
            "cost": {"input": 3.0, "output": 15.0, "cache_read": 0.3, "cache_write": 3.75},
            "supports_system_message": "separated",
            "special_tool_format": "anthropic-style",
        },
        "claude-3-5-haiku-20241022": {
            "context_window": 200_000,
            "reserved_output_token_space": 8_192,
            "cost": {"input": 0.8, "output": 4.0, "cache_read": 0.08, "cache_write": 1.0},
            "supports_system_message": "separated",
            "special_tool_format": "anthropic-style",
        },
        "claude-3-opus-20240229": {
            "context_window": 200_000,
            "reserved_output_token_space": 4_096,
            "cost": {"input": 15.0, "output": 75.0, "cache_read": 1.5, "cache_write": 18.75},
            "supports_system_message": "separated",
            "special_tool_format": "anthropic-style",
        },
    },
    "xAI": {
        "grok-2": {
            "context_window": 131_072,
            "reserved_output_token_space": None,
            "cost": {"input": 2.0, "output": 10.0},
            "supports_system_message": "system-role",
            "special_tool_format": "openai-style",
        },
        "grok-3": {
            "context_window": 131_072,
            "reserved_output_token_space": None,
            "cost": {"input": 3.0, "output": 15.0},
            "supports_system_message": "system-role",
            "special_tool_format": "openai-style",
        },
        "grok-3-mini": {
            "context_window": 131_072,
            "reserved_output_token_space": None,
            "cost": {"input": 0.3, "output": 0.5},
            "supports_system_message": "system-role",
            "special_tool_format": "openai-style",
            "reasoning_capabilities": {
                "supports_reasoning": True,
                "can_turn_off_reasoning": False,
                "can_io_reasoning": False,
                "reasoning_slider": {"type": "effort_slider", "values": ["low", "high"], "default": "low"},
            },
        },
    },
    "gemini": {
        "gemini-2.5-pro": {
            "context_window": 1_048_576,
            "reserved_output_token_space": 8_192,
            "cost": {"input": 1.25, "output": 10.0},
            "supports_system_message": "separated",
            "special_tool_format": "gemini-style",
            "reasoning_capabilities": {
                "supports_reasoning": True,
                "can_turn_off_reasoning": False,
                "can_io_reasoning": False,
                "reasoning_reserved_output_token_space": 8_192,
                "reasoning_slider": _GEMINI_BUDGET,
            },
        },
        "gemini-2.5-flash": {
            "context_window": 1_048_576,
            "reserved_output_token_space": 8_192,
            "cost": {"input": 0.15, "output": 3.5},
            "supports_system_message": "separated",
            "special_tool_format": "gemini-style",
            "reasoning_capabilities": {
                "supports_reasoning": True,
                "can_turn_off_reasoning": True,
                "can_io_reasoning": False,
                "reasoning_reserved_output_token_space": 8_192,
                "reasoning_slider": _GEMINI_BUDGET,
            },
        },
        "gemini-2.0-flash": {
            "context_window": 1_048_576,
            "reserved_output_token_space": 8_192,
            "cost": {"input": 0.1, "output": 0.4},
            "supports_system_message": "separated",
            "special_tool_format": "gemini-style",
        },
        "gemini-1.5-pro": {
            "context_window": 2_097_152,
            "reserved_output_token_space": 8_192,
            "cost": {"input": 1.25, "output": 5.0},
            "supports_system_message": "separated",
            "special_tool_format": "gemini-style",
        },
    },
    "deepseek": {
        "deepseek-chat": {
            "context_window": 64_000,
            "reserved_output_token_space": 8_000,
            "cost": {"input": 0.27, "output": 1.1, "cache_read": 0.07},
            "supports_system_message": "system-role",
            "special_tool_format": "openai-style",
        },
        "deepseek-reasoner": {
            "context_window": 64_000,
            "reserved_output_token_space": 8_000,
            "cost": {"input": 0.55, "output": 2.19, "cache_read": 0.14},
            "supports_system_message": "system-role",
            "reasoning_capabilities": {
                "supports_reasoning": True,
                "can_turn_off_reasoning": False,
                "can_io_reasoning": True,
            },
        },
    },
    "mistral": {
        "codestral-latest": {
            "context_window": 256_000,
            "reserved_output_token_space": 8_192,
            "cost": {"input": 0.3, "output": 0.9},
            "supports_system_message": "system-role",
            "supports_fim": True,
        },
        "mistral-large-latest": {
            "context_window": 131_000,
            "reserved_output_token_space": 8_192,
            "cost": {"input": 2.0, "output": 6.0},
            "supports_system_message": "system-role",
            "special_tool_format": "openai-style",
        },
        "devstral-small-latest": {
            "context_window": 131_000,
            "reserved_output_token_space": 8_192,
            "cost": {"input": 0.1, "output": 0.3},
            "supports_system_message": "system-role",
            "special_tool_format": "openai-style",
        },
    },
    "groq": {
        "llama-3.3-70b-versatile": {
            "context_window": 128_000,
            "reserved_output_token_space": 32_768,
            "cost": {"input": 0.59, "output": 0.79},
            "supports_system_message": "system-role",
            "special_tool_format": "openai-style",
        },
        "qwen-qwq-32b": {
            "context_window": 128_000,
            "reserved_output_token_space": 8_192,
            "cost": {"input": 0.29, "output": 0.39},
            "supports_system_message": "system-role",
            "reasoning_capabilities": {
                "supports_reasoning": True,
                "can_turn_off_reasoning": False,
                "can_io_reasoning": True,
                "open_source_think_tags": THINK_TAGS,
            },
        },
    },
    "openRouter": {},
    "vLLM": {},
    "ollama": {},
    "openAICompatible": {},
    "liteLLM": {},
    "lmStudio": {},
    "googleVertex": {},
    "microsoftAzure": {},
    "awsBedrock": {},
}
