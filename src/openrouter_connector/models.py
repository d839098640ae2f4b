"""OpenRouter wire models.

Pydantic models mirroring the JSON exchanged with OpenRouter's
chat-completion and generation endpoints. Field names are the wire's
snake_case names; unknown response fields are ignored and ``None`` values
are dropped when a request is serialized.
"""

from typing import Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from .content import (
    FileContentItem,
    ImageContentItem,
    MessageContent,
    decode_content,
    encode_content,
    extract_text,
)


# =============================================================================
# Tool calls
# =============================================================================


class FunctionCall(BaseModel):
    """Function name and JSON-encoded arguments of a tool call."""

    name: str = ""
    arguments: str = ""


class ToolCall(BaseModel):
    """A model-issued request to invoke a function."""

    id: str = ""
    type: Literal["function"] = "function"
    function: FunctionCall = Field(default_factory=FunctionCall)


class StreamFunctionCall(BaseModel):
    """Partial function call carried by one streamed chunk."""

    name: str | None = None
    arguments: str | None = None


class StreamToolCall(BaseModel):
    """Tool call fragment; fragments sharing ``index`` belong to one call."""

    index: int | None = None
    id: str | None = None
    type: str | None = None
    function: StreamFunctionCall | None = None


# =============================================================================
# Tool definitions (request side)
# =============================================================================


class FunctionProperty(BaseModel):
    """JSON-schema description of one function parameter."""

    type: str = "string"
    description: str | None = None
    items: "FunctionProperty | None" = None
    properties: "dict[str, FunctionProperty] | None" = None
    enum: list[str] | None = None


FunctionProperty.model_rebuild()


class FunctionParameters(BaseModel):
    """JSON-schema object describing a function's parameters."""

    type: Literal["object"] = "object"
    properties: dict[str, FunctionProperty] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)


class ToolFunction(BaseModel):
    """Function definition advertised to the model."""

    name: str
    description: str | None = None
    parameters: FunctionParameters | None = None


class Tool(BaseModel):
    type: Literal["function"] = "function"
    function: ToolFunction


class ToolChoiceFunctionName(BaseModel):
    name: str


class ToolChoiceFunction(BaseModel):
    """Forces the model to call one specific function."""

    type: Literal["function"] = "function"
    function: ToolChoiceFunctionName

    @classmethod
    def for_function(cls, name: str) -> "ToolChoiceFunction":
        return cls(function=ToolChoiceFunctionName(name=name))


ToolChoice = Union[Literal["auto", "none", "required"], ToolChoiceFunction]


# =============================================================================
# Response format
# =============================================================================


class JsonSchemaFormat(BaseModel):
    """Named JSON schema for structured output."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str | None = None
    schema_: dict[str, Any] | None = Field(default=None, alias="schema")
    strict: bool = True


class ResponseFormat(BaseModel):
    """Structured output format: plain text, any JSON object, or a JSON schema."""

    type: Literal["text", "json_object", "json_schema"]
    json_schema: JsonSchemaFormat | None = None

    @model_validator(mode="after")
    def _schema_required_for_json_schema(self) -> "ResponseFormat":
        if self.type == "json_schema" and self.json_schema is None:
            raise ValueError("json_schema response format requires a json_schema definition")
        return self

    @classmethod
    def text(cls) -> "ResponseFormat":
        return cls(type="text")

    @classmethod
    def json_object(cls) -> "ResponseFormat":
        return cls(type="json_object")

    @classmethod
    def from_schema(
        cls,
        name: str,
        schema: dict[str, Any],
        description: str | None = None,
        strict: bool = True,
    ) -> "ResponseFormat":
        """Build a ``json_schema`` response format.

        Args:
            name: Name of the response format.
            schema: JSON schema the output must follow.
            description: Optional description of the expected response.
            strict: Whether the provider must enforce strict schema compliance.
        """
        return cls(
            type="json_schema",
            json_schema=JsonSchemaFormat(
                name=name,
                description=description,
                schema=schema,
                strict=strict,
            ),
        )


# =============================================================================
# Messages and requests
# =============================================================================


class Message(BaseModel):
    """A single chat message on the wire.

    ``content`` is either a plain string or a list of content items; the
    representation is decided when the message is serialized.
    """

    role: str
    content: MessageContent | None = None
    name: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _decode_content(cls, value: Any) -> Any:
        return decode_content(value)

    @field_serializer("content")
    def _encode_content(self, value: Any) -> Any:
        return encode_content(value)

    @property
    def is_text_only(self) -> bool:
        return isinstance(self.content, str)

    @property
    def is_multimodal(self) -> bool:
        return isinstance(self.content, list)

    @property
    def text(self) -> str | None:
        return extract_text(self.content)

    @property
    def attachments(self) -> list[ImageContentItem | FileContentItem]:
        if not isinstance(self.content, list):
            return []
        return [item for item in self.content if isinstance(item, (ImageContentItem, FileContentItem))]


class ChatRequest(BaseModel):
    """OpenRouter chat-completion request."""

    model: str = Field(min_length=1)
    messages: list[Message]
    stream: bool = False

    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    repetition_penalty: float | None = None
    stop: list[str] | None = None
    seed: int | None = None

    # OpenRouter routing
    models: list[str] | None = None
    provider: dict[str, Any] | None = None

    tools: list[Tool] | None = None
    tool_choice: ToolChoice | None = None
    parallel_tool_calls: bool | None = None

    response_format: ResponseFormat | None = None
    logit_bias: dict[int, int] | None = None
    user: str | None = None
    max_completion_tokens: int | None = None
    store: bool | None = None
    metadata: dict[str, Any] | None = None
    top_logprobs: int | None = None
    logprobs: bool | None = None
    service_tier: str | None = None


# =============================================================================
# Responses
# =============================================================================


class Usage(BaseModel):
    """Normalized token usage reported with a completion."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Choice(BaseModel):
    index: int = 0
    message: Message | None = None
    finish_reason: str | None = None


class ChatResponse(BaseModel):
    """Non-streaming chat-completion response."""

    id: str | None = None
    object: str | None = None
    created: int = 0
    model: str | None = None
    choices: list[Choice]
    usage: Usage | None = None


class StreamDelta(BaseModel):
    """Partial message carried by a stream chunk; every field is optional."""

    role: str | None = None
    content: str | None = None
    tool_calls: list[StreamToolCall] | None = None


class StreamChoice(BaseModel):
    index: int = 0
    delta: StreamDelta | None = None
    finish_reason: str | None = None


class StreamChunk(BaseModel):
    """One decoded ``data:`` line of a streaming response."""

    id: str | None = None
    object: str | None = None
    created: int = 0
    model: str | None = None
    choices: list[StreamChoice]
    usage: Usage | None = None


# =============================================================================
# Generation metrics
# =============================================================================


class GenerationMetrics(BaseModel):
    """Post-hoc accounting record returned by ``GET /generation``."""

    id: str | None = None
    model: str | None = None
    created_at: str | None = None

    total_cost: float | None = None
    upstream_inference_cost: float | None = None
    cache_discount: float | None = None
    provider_name: str | None = None

    tokens_prompt: int = 0
    tokens_completion: int = 0
    native_tokens_prompt: int = 0
    native_tokens_completion: int = 0
    native_tokens_reasoning: int | None = None

    num_media_prompt: int | None = None
    num_media_completion: int | None = None

    generation_time: float | None = None
    latency: float | None = None
    finish_reason: str | None = None
    origin: str | None = None

    is_byok: bool = False
    streamed: bool = False
    cancelled: bool = False

    def total_native_tokens(self) -> int:
        return (
            self.native_tokens_prompt
            + self.native_tokens_completion
            + (self.native_tokens_reasoning or 0)
        )

    def total_normalized_tokens(self) -> int:
        return self.tokens_prompt + self.tokens_completion


class GenerationResponse(BaseModel):
    data: GenerationMetrics
