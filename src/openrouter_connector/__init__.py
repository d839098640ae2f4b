"""OpenRouter chat-completion connector.

Exposes OpenRouter's unified chat-completion API to LLM-orchestration hosts:
request/response translation, SSE streaming, automatic tool calling and
best-effort generation metrics.
"""

from .chat import (
    AuthorRole,
    ChatHistory,
    ChatMessageContent,
    FunctionCallContent,
    FunctionResultContent,
    StreamingChatMessageContent,
    StreamingTextContent,
    TextContent,
)
from .client import OpenRouterClient, WireSerializer, __version__
from .errors import (
    ApiError,
    AuthenticationError,
    ContentDecodeError,
    InvalidConfigurationError,
    InvalidRequestError,
    ModelNotFoundError,
    OpenRouterError,
    ProviderError,
    RateLimitError,
    RequestTimeoutError,
    TransportError,
)
from .functions import (
    FunctionChoiceBehavior,
    ParameterMetadata,
    RegisteredFunction,
    SimpleToolRegistry,
    ToolRegistry,
)
from .models import ChatRequest, ChatResponse, GenerationMetrics, ResponseFormat, StreamChunk
from .service import OpenRouterChatCompletionService
from .settings import OpenRouterExecutionSettings
from .telemetry import OpenRouterTelemetry, TelemetryEvent

__all__ = [
    "__version__",
    "OpenRouterChatCompletionService",
    "OpenRouterClient",
    "OpenRouterExecutionSettings",
    "OpenRouterTelemetry",
    "TelemetryEvent",
    "WireSerializer",
    "ChatRequest",
    "ChatResponse",
    "StreamChunk",
    "GenerationMetrics",
    "ResponseFormat",
    "AuthorRole",
    "ChatHistory",
    "ChatMessageContent",
    "FunctionCallContent",
    "FunctionResultContent",
    "StreamingChatMessageContent",
    "StreamingTextContent",
    "TextContent",
    "FunctionChoiceBehavior",
    "ParameterMetadata",
    "RegisteredFunction",
    "SimpleToolRegistry",
    "ToolRegistry",
    "OpenRouterError",
    "ApiError",
    "AuthenticationError",
    "InvalidRequestError",
    "ModelNotFoundError",
    "RateLimitError",
    "ProviderError",
    "InvalidConfigurationError",
    "ContentDecodeError",
    "RequestTimeoutError",
    "TransportError",
]
