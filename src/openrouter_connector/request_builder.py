"""Maps a conversation and execution settings onto a ChatRequest."""

import json
import logging
import uuid
from collections.abc import Iterable
from typing import Any

from .chat import AuthorRole, ChatMessageContent, FunctionCallContent
from .content import text_item
from .errors import InvalidConfigurationError
from .functions import (
    DEFAULT_FUNCTION_NAME_SEPARATOR,
    ToolRegistry,
    combine_function_name,
    enabled_functions,
    result_to_text,
    to_tools,
    tool_choice_for,
)
from .models import ChatRequest, FunctionCall, Message, ToolCall
from .settings import OpenRouterExecutionSettings

logger = logging.getLogger(__name__)

_OUTBOUND_ROLES = {
    AuthorRole.USER: "user",
    AuthorRole.ASSISTANT: "assistant",
    AuthorRole.SYSTEM: "system",
    AuthorRole.TOOL: "tool",
}

_INBOUND_ROLES = {wire: role for role, wire in _OUTBOUND_ROLES.items()}


def convert_role(role: Any) -> str:
    """Host role to wire role; anything unrecognized is sent as ``user``."""
    try:
        return _OUTBOUND_ROLES[AuthorRole(role)]
    except ValueError:
        return "user"


def parse_role(role: str | None) -> AuthorRole:
    """Wire role to host role; anything unrecognized is read as ``assistant``."""
    return _INBOUND_ROLES.get(role or "", AuthorRole.ASSISTANT)


class ChatRequestBuilder:
    """Builds wire requests from chat histories.

    Args:
        default_model_id: Model used when the settings do not name one.
        function_name_separator: Joins plugin and function names in tool names.
    """

    def __init__(
        self,
        default_model_id: str | None = None,
        function_name_separator: str = DEFAULT_FUNCTION_NAME_SEPARATOR,
    ):
        self.default_model_id = default_model_id
        self.function_name_separator = function_name_separator

    def build(
        self,
        history: Iterable[ChatMessageContent],
        settings: OpenRouterExecutionSettings | None = None,
        registry: ToolRegistry | None = None,
    ) -> ChatRequest:
        """Build a chat request.

        Raises:
            InvalidConfigurationError: If no model id can be resolved.
        """
        settings = settings or OpenRouterExecutionSettings()

        model_id = settings.model_id or self.default_model_id
        if not model_id or not model_id.strip():
            raise InvalidConfigurationError(
                "Model ID must be specified either in settings or service attributes"
            )

        tools = None
        tool_choice = None
        behavior = settings.function_choice_behavior
        if registry is not None and behavior is not None:
            functions = enabled_functions(behavior, registry)
            if functions:
                tools = to_tools(functions, self.function_name_separator)
                tool_choice = tool_choice_for(behavior, self.function_name_separator)
                logger.debug("Advertising %d tools", len(tools), extra={"model": model_id})

        return ChatRequest(
            model=model_id,
            messages=[self.to_message(message) for message in history],
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            top_p=settings.top_p,
            top_k=settings.top_k,
            frequency_penalty=settings.frequency_penalty,
            presence_penalty=settings.presence_penalty,
            repetition_penalty=settings.repetition_penalty,
            stop=settings.stop_sequences,
            seed=settings.seed,
            models=settings.models,
            provider=settings.provider,
            tools=tools,
            tool_choice=tool_choice,
            parallel_tool_calls=settings.parallel_tool_calls,
            response_format=settings.response_format,
            logit_bias=settings.logit_bias,
            user=settings.user,
            max_completion_tokens=settings.max_completion_tokens,
            store=settings.store,
            metadata=settings.metadata,
            top_logprobs=settings.top_logprobs,
            logprobs=settings.logprobs,
            service_tier=settings.service_tier,
        )

    def to_message(self, message: ChatMessageContent) -> Message:
        """Convert one host message to its wire form."""
        attachments = message.attachments
        if attachments:
            content: Any = ([text_item(message.content)] if message.content else []) + attachments
        else:
            content = message.content or None

        wire = Message(
            role=convert_role(message.role),
            content=content,
            name=message.author_name,
        )

        function_calls = message.function_calls
        if function_calls:
            wire.tool_calls = [self.to_tool_call(call) for call in function_calls]

        function_result = message.function_result
        if function_result is not None:
            wire.tool_call_id = function_result.call_id
            wire.content = result_to_text(function_result.result)

        return wire

    def to_tool_call(self, call: FunctionCallContent) -> ToolCall:
        if call.raw_arguments is not None and not call.arguments:
            arguments = call.raw_arguments
        else:
            arguments = json.dumps(call.arguments)

        return ToolCall(
            id=call.id or str(uuid.uuid4()),
            function=FunctionCall(
                name=combine_function_name(
                    call.plugin_name, call.function_name, self.function_name_separator
                ),
                arguments=arguments,
            ),
        )
