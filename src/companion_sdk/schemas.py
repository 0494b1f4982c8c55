from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing_extensions import TypedDict

SystemMessageSupport = Literal["none", "system-role", "developer-role", "separated"]
ToolFormat = Literal["openai-style", "anthropic-style", "gemini-style"]


class ChatMessage(TypedDict):
    """Chat completion message payload.

    Attributes:
        role: Message author role.
        content: Message text content.
    """

    role: Literal["system", "user", "assistant", "developer"]
    content: str


class BudgetSlider(BaseModel):
    type: Literal["budget_slider"] = "budget_slider"
    min: int
    max: int
    default: int


class EffortSlider(BaseModel):
    type: Literal["effort_slider"] = "effort_slider"
    values: list[str]
    default: str


ReasoningSlider = Annotated[Union[BudgetSlider, EffortSlider], Field(discriminator="type")]


class NoReasoning(BaseModel):
    """Marker for models without a reasoning mode."""

    model_config = ConfigDict(frozen=True)

    supports_reasoning: Literal[False] = False


class Reasoning(BaseModel):
    """Reasoning controls of a model that supports a reasoning mode.

    Attributes:
        can_turn_off_reasoning: Whether the user may disable reasoning.
        can_io_reasoning: Whether reasoning output is visible to the caller.
        reasoning_reserved_output_token_space: Output reservation while reasoning.
        reasoning_slider: Budget or effort control exposed to the user.
        open_source_think_tags: Tag pair wrapping inline reasoning text.
    """

    model_config = ConfigDict(frozen=True)

    supports_reasoning: Literal[True] = True
    can_turn_off_reasoning: bool = True
    can_io_reasoning: bool = False
    reasoning_reserved_output_token_space: int | None = None
    reasoning_slider: ReasoningSlider | None = None
    open_source_think_tags: tuple[str, str] | None = None


class Cost(BaseModel):
    model_config = ConfigDict(frozen=True)

    input: float = 0
    output: float = 0
    cache_read: float | None = None
    cache_write: float | None = None


class Downloadable(BaseModel):
    model_config = ConfigDict(frozen=True)

    size_gb: float | Literal["not-known"]


class ModelCapabilities(BaseModel):
    """Behavioral facts about a model used to decide how to talk to it."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    context_window: int
    reserved_output_token_space: int | None = None
    supports_system_message: SystemMessageSupport = "none"
    special_tool_format: ToolFormat | None = None
    supports_fim: bool = False
    reasoning_capabilities: Union[NoReasoning, Reasoning] = Field(default_factory=NoReasoning)
    cost: Cost = Field(default_factory=Cost)
    downloadable: Literal[False] | Downloadable = False
    additional_openai_payload: dict[str, str] | None = None
    tools_supported: bool | None = None
    max_tool_calls_per_turn: int | None = None

    @field_validator("supports_system_message", mode="before")
    @classmethod
    def _coerce_system_message(cls, value: Any) -> Any:
        if value is False or value is None:
            return "none"
        return value

    @field_validator("reasoning_capabilities", mode="before")
    @classmethod
    def _coerce_reasoning(cls, value: Any) -> Any:
        if value is False or value is None:
            return NoReasoning()
        if isinstance(value, dict) and "supports_reasoning" not in value:
            return {**value, "supports_reasoning": True}
        return value


class ResolvedCapabilities(ModelCapabilities):
    """Capability record for a requested model plus its recognition outcome."""

    model_config = ConfigDict(protected_namespaces=())

    model_name: str
    recognized_model_name: str | None = None
    is_unrecognized_model: bool

    @model_validator(mode="after")
    def _check_recognition(self) -> "ResolvedCapabilities":
        if self.is_unrecognized_model and self.recognized_model_name is not None:
            raise ValueError("An unrecognized model cannot carry a recognized_model_name")
        if not self.is_unrecognized_model and self.recognized_model_name is None:
            raise ValueError("A recognized model requires recognized_model_name")
        return self


class ModelSelectionOptions(BaseModel):
    """Per-model reasoning choices made by the user."""

    reasoning_enabled: bool | None = None
    reasoning_budget: int | None = None
    reasoning_effort: str | None = None


class BudgetReasoningValue(BaseModel):
    type: Literal["budget_slider_value"] = "budget_slider_value"
    reasoning_budget: int


class EffortReasoningValue(BaseModel):
    type: Literal["effort_slider_value"] = "effort_slider_value"
    reasoning_effort: str


SendableReasoningInfo = Union[BudgetReasoningValue, EffortReasoningValue, None]


class ChatRequest(BaseModel):
    """Body of ``/api/chat`` and ``/api/chat/stream``."""

    provider: str
    model: str
    messages: list[ChatMessage]
    max_tokens: int | None = None
    temperature: float | None = None
    response_format: Any = None
    json_schema: Any = None
    tools: list[dict[str, Any]] | None = None
    extra: dict[str, Any] | None = None

    def payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ToolCall(BaseModel):
    """Tool invocation requested by the model in a final response."""

    id: str
    name: str
    raw_params: str = ""
    done_params: dict[str, Any] = Field(default_factory=dict)
    is_done: bool = True


class ChatResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: str | None = None
    parts: list[dict[str, Any]] | None = None


class TextDelta(BaseModel):
    type: Literal["delta"] = "delta"
    delta: str = ""
    finish: bool = False

    @field_validator("delta", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> Any:
        return value if isinstance(value, str) else ""

    @field_validator("finish", mode="before")
    @classmethod
    def _null_is_false(cls, value: Any) -> Any:
        return False if value is None else value


class FinalDelta(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["final"] = "final"
    response: ChatResponse | None = None


class ErrorDelta(BaseModel):
    type: Literal["error"] = "error"
    error: str = "Unknown provider error"

    @field_validator("error", mode="before")
    @classmethod
    def _flatten_error(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return str(value.get("message") or value)
        if value is None:
            return "Unknown provider error"
        return value if isinstance(value, str) else str(value)


StreamDelta = Annotated[Union[TextDelta, FinalDelta, ErrorDelta], Field(discriminator="type")]


class ModelDescriptor(BaseModel):
    """One entry of a provider's model registry snapshot."""

    model_config = ConfigDict(extra="allow")

    id: str
    provider: str | None = None
    family: str | None = None
    context_length: int | None = None
    capabilities: dict[str, Any] = Field(default_factory=dict)
    pricing: dict[str, Any] | None = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProviderDescriptor(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    display_name: str = ""
    aliases: list[str] = Field(default_factory=list)
    model_count: int = 0
    enabled: bool = True


class ServiceHealthState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    HEALTHY = "healthy"
    FAILED = "failed"
    DISPOSED = "disposed"


class HealthReport(BaseModel):
    """Body of ``/api/health``."""

    model_config = ConfigDict(extra="allow")

    ok: bool
