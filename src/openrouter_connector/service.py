"""OpenRouter chat completion service.

Entry point for host applications: takes a ChatHistory and execution
settings, talks to OpenRouter through OpenRouterClient, and returns host-side
message objects. Handles the automatic tool-call loop, stream reassembly of
tool calls, and request telemetry.

Configuration (env vars):
- OPENROUTER_API_KEY: API key (required if not passed explicitly)
- OPENROUTER_MODEL: Default model id
- OPENROUTER_BASE_URL: API base URL (default: https://openrouter.ai/api/v1)
- OPENROUTER_TIMEOUT_SECONDS: Request timeout (default: 60)
- OPENROUTER_HTTP_REFERER / OPENROUTER_APP_TITLE: App identification headers
"""

import asyncio
import json
import logging
import os
import time
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

import httpx

from .chat import (
    AuthorRole,
    ChatHistory,
    ChatMessageContent,
    FunctionCallContent,
    StreamingChatMessageContent,
    StreamingTextContent,
    TextContent,
)
from .client import OpenRouterClient
from .errors import InvalidConfigurationError
from .functions import DEFAULT_FUNCTION_NAME_SEPARATOR, ToolRegistry, parse_function_name
from .invoker import FunctionInvoker
from .models import ChatResponse, Choice, StreamChunk, StreamToolCall, ToolCall, Usage
from .request_builder import ChatRequestBuilder, parse_role
from .settings import OpenRouterExecutionSettings
from .telemetry import OpenRouterTelemetry, OperationType, create_tags

logger = logging.getLogger(__name__)

MODEL_ID_KEY = "model_id"

SettingsLike = OpenRouterExecutionSettings | Mapping[str, Any] | None


def decode_arguments(arguments: str | None) -> tuple[dict[str, Any], str | None]:
    """Decode a tool-call arguments string.

    Returns:
        ``(arguments, None)`` for a JSON object, otherwise ``({}, raw)``
        so the raw string is not lost.
    """
    if not arguments:
        return {}, None
    try:
        decoded = json.loads(arguments)
    except json.JSONDecodeError:
        return {}, arguments
    if isinstance(decoded, dict):
        return decoded, None
    return {}, arguments


def function_call_content(
    call_id: str | None,
    name: str,
    arguments: str | None,
    separator: str = DEFAULT_FUNCTION_NAME_SEPARATOR,
) -> FunctionCallContent:
    plugin_name, function_name = parse_function_name(name, separator)
    decoded, raw = decode_arguments(arguments)
    return FunctionCallContent(
        function_name=function_name,
        plugin_name=plugin_name,
        id=call_id,
        arguments=decoded,
        raw_arguments=raw,
    )


def usage_metadata(usage: Usage | None) -> dict[str, Any]:
    if usage is None:
        return {}
    return {
        "Usage": usage,
        "PromptTokens": usage.prompt_tokens,
        "CompletionTokens": usage.completion_tokens,
        "TotalTokens": usage.total_tokens,
    }


@dataclass
class _PartialToolCall:
    id: str | None = None
    name: str = ""
    arguments: list[str] = field(default_factory=list)


class StreamingToolCallAccumulator:
    """Merges streamed tool-call fragments into complete calls.

    Fragments are keyed by ``(choice index, tool-call index)``; ``complete``
    releases the calls of one choice once it reports a finish reason.
    """

    def __init__(self, separator: str = DEFAULT_FUNCTION_NAME_SEPARATOR):
        self._separator = separator
        self._calls: dict[tuple[int, int], _PartialToolCall] = {}

    def add(self, choice_index: int, fragments: Iterable[StreamToolCall]) -> None:
        for position, fragment in enumerate(fragments):
            index = fragment.index if fragment.index is not None else position
            partial = self._calls.setdefault((choice_index, index), _PartialToolCall())
            if fragment.id:
                partial.id = fragment.id
            if fragment.function is not None:
                if fragment.function.name:
                    partial.name += fragment.function.name
                if fragment.function.arguments:
                    partial.arguments.append(fragment.function.arguments)

    def has_pending(self, choice_index: int) -> bool:
        return any(key[0] == choice_index for key in self._calls)

    def pending_choices(self) -> list[int]:
        return sorted({key[0] for key in self._calls})

    def complete(self, choice_index: int) -> list[FunctionCallContent]:
        keys = sorted(key for key in self._calls if key[0] == choice_index)
        calls = []
        for key in keys:
            partial = self._calls.pop(key)
            calls.append(
                function_call_content(
                    partial.id, partial.name, "".join(partial.arguments), self._separator
                )
            )
        return calls


class OpenRouterChatCompletionService:
    """Chat completion service backed by OpenRouter.

    Configuration precedence: constructor arguments, then environment
    variables, then the class defaults.
    """

    DEFAULT_BASE_URL = OpenRouterClient.DEFAULT_BASE_URL
    DEFAULT_TIMEOUT = OpenRouterClient.DEFAULT_TIMEOUT

    def __init__(
        self,
        api_key: str | None = None,
        model_id: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        telemetry: OpenRouterTelemetry | None = None,
        http_referer: str | None = None,
        app_title: str | None = None,
        function_name_separator: str = DEFAULT_FUNCTION_NAME_SEPARATOR,
        function_logger: logging.Logger | None = None,
        metrics_delay: float | None = None,
    ):
        """Initialize the service.

        Args:
            api_key: OpenRouter API key. Defaults to OPENROUTER_API_KEY env var.
            model_id: Default model. Defaults to OPENROUTER_MODEL env var.
            base_url: API base URL. Defaults to OPENROUTER_BASE_URL env var.
            http_client: Shared HTTP client; not closed by ``aclose``.
            timeout: Request timeout in seconds. Defaults to OPENROUTER_TIMEOUT_SECONDS env var.
            telemetry: Telemetry recorder. A private one is created if omitted.
            http_referer: Defaults to OPENROUTER_HTTP_REFERER env var.
            app_title: Defaults to OPENROUTER_APP_TITLE env var.
            function_name_separator: Joins plugin and function names in tool names.
            function_logger: Logger used by the tool-call loop.
            metrics_delay: Delay before the generation-metrics fetch.

        Raises:
            InvalidConfigurationError: If no API key is configured.
        """
        api_key = api_key or os.environ.get("OPENROUTER_API_KEY")
        if not api_key or not api_key.strip():
            raise InvalidConfigurationError(
                "OpenRouter API key not configured. Set OPENROUTER_API_KEY environment variable."
            )

        model_id = model_id or os.environ.get("OPENROUTER_MODEL")
        self._timeout = (
            timeout
            if timeout is not None
            else float(os.environ.get("OPENROUTER_TIMEOUT_SECONDS", self.DEFAULT_TIMEOUT))
        )
        self._telemetry = telemetry or OpenRouterTelemetry()
        self._separator = function_name_separator

        self._client = OpenRouterClient(
            api_key,
            base_url=base_url or os.environ.get("OPENROUTER_BASE_URL", self.DEFAULT_BASE_URL),
            http_client=http_client,
            timeout=self._timeout,
            telemetry=self._telemetry,
            http_referer=http_referer or os.environ.get("OPENROUTER_HTTP_REFERER"),
            app_title=app_title or os.environ.get("OPENROUTER_APP_TITLE"),
            metrics_delay=metrics_delay,
        )
        self._builder = ChatRequestBuilder(
            default_model_id=model_id if model_id and model_id.strip() else None,
            function_name_separator=function_name_separator,
        )
        self._invoker = FunctionInvoker(self, function_logger)

        self.attributes: dict[str, Any] = {}
        if self._builder.default_model_id:
            self.attributes[MODEL_ID_KEY] = self._builder.default_model_id

    @property
    def client(self) -> OpenRouterClient:
        return self._client

    @property
    def telemetry(self) -> OpenRouterTelemetry:
        return self._telemetry

    @property
    def model_id(self) -> str | None:
        return self.attributes.get(MODEL_ID_KEY)

    # -------------------------------------------------------------------------
    # Chat
    # -------------------------------------------------------------------------

    async def get_chat_message_contents(
        self,
        history: ChatHistory | Iterable[ChatMessageContent],
        settings: SettingsLike = None,
        registry: ToolRegistry | None = None,
    ) -> list[ChatMessageContent]:
        """Get chat completions for a conversation.

        When a registry is supplied and the settings carry a function-choice
        behavior, requested functions are invoked and the conversation is
        resent until the model answers without tool calls.

        Args:
            history: Conversation so far; never modified.
            settings: Execution settings, a mapping of them, or None.
            registry: Functions the model may call.

        Returns:
            One message per choice, or the full tool-loop transcript.

        Raises:
            InvalidConfigurationError: If no model id is configured.
            ApiError: On HTTP or decode failures.
        """
        history = history if isinstance(history, ChatHistory) else ChatHistory(history)
        settings = OpenRouterExecutionSettings.from_execution_settings(settings)

        if registry is not None and settings.function_choice_behavior is not None:
            return await self._invoker.process_function_calls(history, settings, registry)
        return await self.get_chat_message_contents_once(history, settings, registry)

    async def get_chat_message_contents_once(
        self,
        history: ChatHistory,
        settings: OpenRouterExecutionSettings,
        registry: ToolRegistry | None = None,
    ) -> list[ChatMessageContent]:
        """Send one non-streaming request; tool calls are returned, not invoked."""
        request = self._builder.build(history, settings, registry)
        tags = create_tags(request.model, OperationType.CHAT_COMPLETION, False)
        start_time = time.perf_counter()

        try:
            response = await self._client.get_chat_completion(request)
        except Exception:
            self._telemetry.record_request(tags, error=True)
            raise

        self._telemetry.record_duration(
            OperationType.CHAT_COMPLETION, time.perf_counter() - start_time, tags
        )
        self._telemetry.record_request(tags)
        if response.usage is not None:
            self._telemetry.record_token_usage(
                tags,
                response.usage.prompt_tokens,
                response.usage.completion_tokens,
                response.usage.total_tokens,
            )

        return [self._to_chat_message(choice, response) for choice in response.choices]

    def _to_chat_message(self, choice: Choice, response: ChatResponse) -> ChatMessageContent:
        message = choice.message
        metadata = usage_metadata(response.usage)
        metadata.update({
            "Id": response.id,
            "FinishReason": choice.finish_reason,
            "Created": response.created,
        })

        content = ChatMessageContent(
            role=parse_role(message.role if message else None),
            content=message.text if message else None,
            model_id=response.model,
            inner_content=response,
            metadata=metadata,
        )
        if message is not None:
            for tool_call in message.tool_calls or []:
                content.items.append(self._to_function_call(tool_call))
        return content

    def _to_function_call(self, tool_call: ToolCall) -> FunctionCallContent:
        return function_call_content(
            tool_call.id or None,
            tool_call.function.name,
            tool_call.function.arguments,
            self._separator,
        )

    async def get_streaming_chat_message_contents(
        self,
        history: ChatHistory | Iterable[ChatMessageContent],
        settings: SettingsLike = None,
        registry: ToolRegistry | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamingChatMessageContent]:
        """Stream chat completion deltas.

        Yields one delta per choice per chunk. Tool-call fragments are merged
        and attached, as FunctionCallContent items, to the delta carrying the
        choice's finish reason. Calls still pending when the stream ends without
        a finish reason are released on a final delta. Tools are never invoked
        while streaming.
        """
        history = history if isinstance(history, ChatHistory) else ChatHistory(history)
        settings = OpenRouterExecutionSettings.from_execution_settings(settings)
        request = self._builder.build(history, settings, registry)

        tags = create_tags(request.model, OperationType.CHAT_COMPLETION, True)
        accumulator = StreamingToolCallAccumulator(self._separator)
        last_chunk: StreamChunk | None = None
        start_time = time.perf_counter()

        try:
            async with aclosing(self._client.stream_chat_completion(request, cancel_event)) as chunks:
                async for chunk in chunks:
                    last_chunk = chunk
                    for choice in chunk.choices:
                        delta = choice.delta
                        if delta is not None and delta.tool_calls:
                            accumulator.add(choice.index, delta.tool_calls)

                        metadata = usage_metadata(chunk.usage)
                        metadata.update({"Id": chunk.id, "Created": chunk.created})
                        if choice.finish_reason:
                            metadata["FinishReason"] = choice.finish_reason

                        message = StreamingChatMessageContent(
                            role=parse_role(delta.role if delta else None),
                            content=delta.content if delta else None,
                            choice_index=choice.index,
                            model_id=chunk.model,
                            inner_content=chunk,
                            metadata=metadata,
                        )
                        if choice.finish_reason and accumulator.has_pending(choice.index):
                            message.items.extend(accumulator.complete(choice.index))
                        yield message

            cancelled = cancel_event is not None and cancel_event.is_set()
            for choice_index in [] if cancelled else accumulator.pending_choices():
                calls = accumulator.complete(choice_index)
                logger.warning(
                    "Stream ended without a finish reason for choice %d, releasing %d tool calls",
                    choice_index,
                    len(calls),
                    extra={"model": request.model},
                )
                yield StreamingChatMessageContent(
                    role=AuthorRole.ASSISTANT,
                    choice_index=choice_index,
                    model_id=last_chunk.model if last_chunk else request.model,
                    inner_content=last_chunk,
                    metadata={
                        "Id": last_chunk.id if last_chunk else None,
                        "Created": last_chunk.created if last_chunk else None,
                    },
                    items=list(calls),
                )
        except Exception:
            self._telemetry.record_request(tags, error=True)
            raise

        self._telemetry.record_duration(
            OperationType.CHAT_COMPLETION, time.perf_counter() - start_time, tags
        )
        self._telemetry.record_request(tags)

    # -------------------------------------------------------------------------
    # Text
    # -------------------------------------------------------------------------

    @staticmethod
    def _prompt_history(prompt: str) -> ChatHistory:
        if not prompt or not prompt.strip():
            raise ValueError("Prompt must not be empty")
        history = ChatHistory()
        history.add_user_message(prompt)
        return history

    async def get_text_contents(
        self,
        prompt: str,
        settings: SettingsLike = None,
        registry: ToolRegistry | None = None,
    ) -> list[TextContent]:
        """Complete a single prompt.

        Raises:
            ValueError: If the prompt is blank.
        """
        history = self._prompt_history(prompt)
        settings = OpenRouterExecutionSettings.from_execution_settings(settings)
        tags = create_tags(
            settings.model_id or self.model_id, OperationType.TEXT_GENERATION, False
        )
        start_time = time.perf_counter()

        messages = await self.get_chat_message_contents(history, settings, registry)

        self._telemetry.record_duration(
            OperationType.TEXT_GENERATION, time.perf_counter() - start_time, tags
        )
        return [
            TextContent(
                text=message.content,
                model_id=message.model_id,
                inner_content=message.inner_content,
                metadata=message.metadata,
            )
            for message in messages
        ]

    async def get_streaming_text_contents(
        self,
        prompt: str,
        settings: SettingsLike = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamingTextContent]:
        """Stream a single prompt's completion as text deltas.

        Raises:
            ValueError: If the prompt is blank.
        """
        history = self._prompt_history(prompt)
        stream = self.get_streaming_chat_message_contents(
            history, settings, cancel_event=cancel_event
        )
        async with aclosing(stream) as messages:
            async for message in messages:
                yield StreamingTextContent(
                    text=message.content,
                    choice_index=message.choice_index,
                    model_id=message.model_id,
                    inner_content=message.inner_content,
                )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def drain_background_tasks(self) -> None:
        await self._client.drain_background_tasks()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "OpenRouterChatCompletionService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
