"""Automatic function invocation loop."""

import logging
from typing import TYPE_CHECKING

from .chat import (
    AuthorRole,
    ChatHistory,
    ChatMessageContent,
    FunctionCallContent,
    FunctionResultContent,
)
from .functions import ToolRegistry, combine_function_name, result_to_text
from .settings import OpenRouterExecutionSettings

if TYPE_CHECKING:
    from .service import OpenRouterChatCompletionService

default_logger = logging.getLogger(__name__)


def _tool_message(result: FunctionResultContent) -> ChatMessageContent:
    return ChatMessageContent(
        role=AuthorRole.TOOL,
        content=result_to_text(result.result),
        items=[result],
    )


class FunctionInvoker:
    """Runs the completion / tool-call / completion cycle until the model stops calling tools.

    Each iteration sends the working history, appends the first choice, and
    when that choice requests functions and auto-invoke is enabled, invokes
    them one by one and appends their results as tool messages. The loop
    stops at the iteration ceiling with a warning and returns what it has.
    """

    def __init__(
        self,
        service: "OpenRouterChatCompletionService",
        logger: logging.Logger | None = None,
    ):
        self._service = service
        self._logger = logger or default_logger

    async def process_function_calls(
        self,
        history: ChatHistory,
        settings: OpenRouterExecutionSettings,
        registry: ToolRegistry,
    ) -> list[ChatMessageContent]:
        """Run the tool-call loop.

        Args:
            history: Caller's conversation; it is copied, never modified.
            settings: Settings carrying the function-choice behavior.
            registry: Registry used to invoke the requested functions.

        Returns:
            Every assistant message and tool-result message produced, in order.
        """
        auto_invoke = settings.auto_invoke
        max_iterations = settings.resolved_max_tool_iterations

        working_history = history.copy()
        results: list[ChatMessageContent] = []
        iteration = 0

        while iteration < max_iterations:
            iteration += 1

            messages = await self._service.get_chat_message_contents_once(
                working_history, settings, registry
            )
            results.extend(messages)
            if not messages:
                break

            message = messages[0]
            working_history.add_message(message)

            function_calls = message.function_calls
            if not function_calls:
                break
            if not auto_invoke:
                break

            for function_result in await self.invoke_functions(function_calls, registry):
                tool_message = _tool_message(function_result)
                working_history.add_message(tool_message)
                results.append(tool_message)
        else:
            self._logger.warning(
                "Maximum function calling iterations (%d) reached. Stopping function invocation.",
                max_iterations,
            )

        return results

    async def invoke_functions(
        self,
        function_calls: list[FunctionCallContent],
        registry: ToolRegistry,
    ) -> list[FunctionResultContent]:
        """Invoke calls sequentially; a failing call yields an ``Error: ...`` result."""
        results = []
        for call in function_calls:
            qualified = combine_function_name(call.plugin_name, call.function_name, ".")
            try:
                value = await registry.invoke(call)
                result = result_to_text(value)
                self._logger.debug("Function %s invoked successfully with result: %s", qualified, result)
            except Exception as e:
                self._logger.error(
                    "Error invoking function %s: %s",
                    qualified,
                    e,
                    exc_info=True,
                )
                result = f"Error: {e}"

            results.append(
                FunctionResultContent(
                    function_name=call.function_name,
                    plugin_name=call.plugin_name,
                    call_id=call.id,
                    result=result,
                )
            )
        return results
