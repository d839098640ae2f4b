"""Multimodal message content and its wire codec.

A message body on the wire is either a plain JSON string or an array of
content items, each tagged with ``type``:

- ``{"type": "text", "text": ...}``
- ``{"type": "image_url", "image_url": {"url": ..., "detail": ...}}``
- ``{"type": "file", "file": {"filename": ..., "file_data": ..., "processing_engine": ...}}``

Decoding dispatches on the tag through an explicit table so an unknown tag
fails with a ContentDecodeError naming it. Encoding dumps each item on its
own, never going back through the message-content serializer.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from .errors import ContentDecodeError

ImageDetail = Literal["auto", "low", "high"]
ProcessingEngine = Literal["pdf-text", "mistral-ocr", "native"]


class TextContentItem(BaseModel):
    """Plain text part of a multimodal message."""

    type: Literal["text"] = "text"
    text: str


class ImageUrl(BaseModel):
    """Image location: an http(s) URL or a base64 data URL."""

    url: str
    detail: ImageDetail | None = None


class ImageContentItem(BaseModel):
    """Image part of a multimodal message."""

    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl


class FileAttachment(BaseModel):
    """File payload, ``file_data`` is a data URL (``data:application/pdf;base64,...``)."""

    filename: str
    file_data: str
    processing_engine: ProcessingEngine | None = None


class FileContentItem(BaseModel):
    """File (PDF, document) part of a multimodal message."""

    type: Literal["file"] = "file"
    file: FileAttachment


ContentItem = Annotated[
    Union[TextContentItem, ImageContentItem, FileContentItem],
    Field(discriminator="type"),
]
MessageContent = Union[str, list[ContentItem]]

CONTENT_ITEM_TYPES: dict[str, type[BaseModel]] = {
    "text": TextContentItem,
    "image_url": ImageContentItem,
    "file": FileContentItem,
}


def decode_content_item(value: Any) -> TextContentItem | ImageContentItem | FileContentItem:
    """Decode one content item by its ``type`` tag.

    Raises:
        ContentDecodeError: If the value is not an object or the tag is unknown.
    """
    if isinstance(value, (TextContentItem, ImageContentItem, FileContentItem)):
        return value
    if not isinstance(value, dict):
        raise ContentDecodeError(
            f"Content item must be a JSON object, got {type(value).__name__}"
        )

    tag = value.get("type")
    item_type = CONTENT_ITEM_TYPES.get(tag) if isinstance(tag, str) else None
    if item_type is None:
        raise ContentDecodeError(f"Unknown content item type: {tag!r}", tag=tag)
    return item_type.model_validate(value)


def decode_content(value: Any) -> str | list[Any] | None:
    """Decode a wire message body into plain text or a list of content items.

    Args:
        value: Parsed JSON value of the ``content`` field.

    Returns:
        The string unchanged, a list of content items, or None.

    Raises:
        ContentDecodeError: On unknown item tags or unsupported JSON shapes.
    """
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return [decode_content_item(item) for item in value]
    raise ContentDecodeError(
        f"Message content must be a string or an array, got {type(value).__name__}"
    )


def encode_content(content: str | list[Any] | None) -> str | list[dict[str, Any]] | None:
    """Encode message content to its JSON value (nulls omitted inside items)."""
    if content is None or isinstance(content, str):
        return content
    return [
        decode_content_item(item).model_dump(mode="json", exclude_none=True)
        for item in content
    ]


def extract_text(content: str | list[Any] | None) -> str | None:
    """Return the text of a message body.

    Plain strings are returned as-is; for item arrays the text items are
    joined in order and non-text items are skipped.
    """
    if content is None or isinstance(content, str):
        return content
    return "".join(item.text for item in content if isinstance(item, TextContentItem))


def text_item(text: str) -> TextContentItem:
    return TextContentItem(text=text)


def image_url_item(url: str, detail: ImageDetail | None = None) -> ImageContentItem:
    return ImageContentItem(image_url=ImageUrl(url=url, detail=detail))


def image_base64_item(
    base64_data: str,
    mime_type: str,
    detail: ImageDetail | None = None,
) -> ImageContentItem:
    """Build an image item from base64 data (``image/png``, ``image/jpeg``, ...)."""
    return image_url_item(f"data:{mime_type};base64,{base64_data}", detail)


def file_item(
    filename: str,
    base64_data: str,
    mime_type: str,
    processing_engine: ProcessingEngine | None = None,
) -> FileContentItem:
    """Build a file item from base64 data.

    ``processing_engine`` selects how PDFs are read: ``pdf-text`` (free text
    extraction), ``mistral-ocr`` (scanned documents) or ``native``.
    """
    return FileContentItem(
        file=FileAttachment(
            filename=filename,
            file_data=f"data:{mime_type};base64,{base64_data}",
            processing_engine=processing_engine,
        )
    )
