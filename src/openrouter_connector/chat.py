"""Host-side conversation types.

Framework-neutral representation of a conversation: messages with an author
role, plain text, and typed items (function calls, function results, image
and file attachments). The request builder maps these to wire messages and
the service maps wire responses back.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .content import FileContentItem, ImageContentItem


class AuthorRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass
class FunctionCallContent:
    """A function call requested by the model."""

    function_name: str
    plugin_name: Optional[str] = None
    id: Optional[str] = None
    arguments: dict[str, Any] = field(default_factory=dict)
    # Set when the model sent arguments that are not a JSON object
    raw_arguments: Optional[str] = None


@dataclass
class FunctionResultContent:
    """The outcome of invoking a function call."""

    function_name: str
    plugin_name: Optional[str] = None
    call_id: Optional[str] = None
    result: Any = None


@dataclass
class ChatMessageContent:
    role: AuthorRole
    content: Optional[str] = None
    items: list[Any] = field(default_factory=list)
    author_name: Optional[str] = None
    model_id: Optional[str] = None
    inner_content: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def function_calls(self) -> list[FunctionCallContent]:
        return [item for item in self.items if isinstance(item, FunctionCallContent)]

    @property
    def function_result(self) -> Optional[FunctionResultContent]:
        for item in self.items:
            if isinstance(item, FunctionResultContent):
                return item
        return None

    @property
    def attachments(self) -> list[ImageContentItem | FileContentItem]:
        return [item for item in self.items if isinstance(item, (ImageContentItem, FileContentItem))]


@dataclass
class StreamingChatMessageContent:
    """Partial message produced from one choice of one stream chunk."""

    role: Optional[AuthorRole] = None
    content: Optional[str] = None
    choice_index: int = 0
    model_id: Optional[str] = None
    inner_content: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)
    items: list[Any] = field(default_factory=list)

    @property
    def function_calls(self) -> list[FunctionCallContent]:
        return [item for item in self.items if isinstance(item, FunctionCallContent)]


@dataclass
class TextContent:
    text: Optional[str] = None
    model_id: Optional[str] = None
    inner_content: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class StreamingTextContent:
    text: Optional[str] = None
    choice_index: int = 0
    model_id: Optional[str] = None
    inner_content: Any = None


class ChatHistory:
    """Ordered list of chat messages."""

    def __init__(self, messages: Optional[Iterable[ChatMessageContent]] = None):
        self.messages: list[ChatMessageContent] = list(messages or [])

    def add_message(self, message: ChatMessageContent) -> None:
        self.messages.append(message)

    def add_system_message(self, content: str) -> None:
        self.add_message(ChatMessageContent(role=AuthorRole.SYSTEM, content=content))

    def add_user_message(self, content: str, items: Optional[Iterable[Any]] = None) -> None:
        self.add_message(
            ChatMessageContent(role=AuthorRole.USER, content=content, items=list(items or []))
        )

    def add_assistant_message(self, content: str) -> None:
        self.add_message(ChatMessageContent(role=AuthorRole.ASSISTANT, content=content))

    def copy(self) -> ChatHistory:
        """Return a new history with the same messages; the original list is untouched."""
        return ChatHistory(self.messages)

    def __iter__(self) -> Iterator[ChatMessageContent]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    def __getitem__(self, index: int) -> ChatMessageContent:
        return self.messages[index]
