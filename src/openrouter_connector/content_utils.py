"""Helpers for building multimodal content from files and bytes.

Provides:
- Image and file content items from paths or raw bytes
- Data URL creation, validation and parsing
- MIME type lookup by file extension
"""

from __future__ import annotations

import base64
from pathlib import Path
from urllib.parse import urlparse

from .content import (
    FileContentItem,
    ImageContentItem,
    ImageDetail,
    ProcessingEngine,
    file_item,
    image_base64_item,
)

SUPPORTED_IMAGE_MIME_TYPES = frozenset({
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
})

SUPPORTED_FILE_MIME_TYPES = frozenset({
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
})

DEFAULT_MIME_TYPE = "application/octet-stream"

_EXTENSION_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


class PdfProcessingEngine:
    """PDF processing engines accepted by OpenRouter."""

    PDF_TEXT = "pdf-text"  # free text extraction, clear text documents
    MISTRAL_OCR = "mistral-ocr"  # OCR, scanned documents
    NATIVE = "native"  # model-specific file processing


def mime_type_from_extension(extension: str) -> str:
    """Map a file extension (with or without leading dot) to a MIME type.

    Returns:
        The MIME type, or ``application/octet-stream`` when unknown.
    """
    if not extension or not extension.strip():
        return DEFAULT_MIME_TYPE
    return _EXTENSION_MIME_TYPES.get(extension.lstrip(".").lower(), DEFAULT_MIME_TYPE)


def _check_image_mime_type(mime_type: str) -> None:
    if mime_type.lower() not in SUPPORTED_IMAGE_MIME_TYPES:
        supported = ", ".join(sorted(SUPPORTED_IMAGE_MIME_TYPES))
        raise ValueError(f"Unsupported image format: {mime_type}. Supported formats: {supported}")


def _check_file_mime_type(mime_type: str) -> None:
    if mime_type.lower() not in SUPPORTED_FILE_MIME_TYPES:
        supported = ", ".join(sorted(SUPPORTED_FILE_MIME_TYPES))
        raise ValueError(f"Unsupported file format: {mime_type}. Supported formats: {supported}")


def image_from_bytes(
    data: bytes,
    mime_type: str,
    detail: ImageDetail | None = None,
) -> ImageContentItem:
    """Create an image content item from raw bytes.

    Args:
        data: Raw image bytes.
        mime_type: Image MIME type (PNG, JPEG or WebP).
        detail: Optional detail level (``auto``, ``low``, ``high``).

    Raises:
        ValueError: If the MIME type is not supported.
    """
    _check_image_mime_type(mime_type)
    return image_base64_item(base64.b64encode(data).decode("ascii"), mime_type, detail)


def image_from_file(path: str | Path, detail: ImageDetail | None = None) -> ImageContentItem:
    """Create an image content item from a file on disk.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the extension is not a supported image type.
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise FileNotFoundError(f"Image file not found: {file_path}")

    mime_type = mime_type_from_extension(file_path.suffix)
    _check_image_mime_type(mime_type)
    return image_from_bytes(file_path.read_bytes(), mime_type, detail)


def file_from_bytes(
    data: bytes,
    filename: str,
    mime_type: str,
    processing_engine: ProcessingEngine | None = None,
) -> FileContentItem:
    """Create a file content item from raw bytes.

    Raises:
        ValueError: If the MIME type is not supported.
    """
    _check_file_mime_type(mime_type)
    return file_item(
        filename,
        base64.b64encode(data).decode("ascii"),
        mime_type,
        processing_engine,
    )


def file_from_path(
    path: str | Path,
    processing_engine: ProcessingEngine | None = None,
) -> FileContentItem:
    """Create a file content item from a document on disk.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the extension is not a supported document type.
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise FileNotFoundError(f"File not found: {file_path}")

    mime_type = mime_type_from_extension(file_path.suffix)
    _check_file_mime_type(mime_type)
    return file_from_bytes(file_path.read_bytes(), file_path.name, mime_type, processing_engine)


def is_valid_data_url(data_url: str | None) -> bool:
    """Check for a ``data:<mime>;base64,<payload>`` URL."""
    if not data_url or not data_url.strip():
        return False
    lowered = data_url.lower()
    return lowered.startswith("data:") and ";base64," in lowered


def is_valid_http_url(url: str | None) -> bool:
    """Check for an absolute http or https URL."""
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def mime_type_from_data_url(data_url: str) -> str | None:
    """Extract the MIME type from a data URL, or None if it is not one."""
    if not is_valid_data_url(data_url):
        return None
    header = data_url.split(";", 1)[0]
    return header[len("data:"):]


def base64_from_data_url(data_url: str) -> str | None:
    """Extract the base64 payload from a data URL, or None if it is not one."""
    if not is_valid_data_url(data_url):
        return None
    index = data_url.lower().index(";base64,")
    return data_url[index + len(";base64,"):]


def create_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
